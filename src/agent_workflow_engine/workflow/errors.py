"""Error taxonomy for workflow lookup, sessions and step execution.

Lookup and validation errors are raised immediately and never recorded.
`StepExecutionFailed` is the only error that is also written into a session's
terminal state.
"""

from __future__ import annotations


class WorkflowEngineError(Exception):
    """Base class for every error the engine raises on purpose."""

    code: str = "WorkflowEngineError"


class WorkflowNotFound(WorkflowEngineError):
    code = "WorkflowNotFound"

    def __init__(self, name: str, available: list[str] | None = None) -> None:
        self.name = name
        self.available = sorted(available or [])
        message = f"Workflow '{name}' not found"
        if self.available:
            message += f" (available: {', '.join(self.available)})"
        super().__init__(message)


class InvalidSessionId(WorkflowEngineError):
    code = "InvalidSessionId"

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Invalid session id: {session_id!r}")


class SessionNotFound(WorkflowEngineError):
    code = "SessionNotFound"

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session '{session_id}' not found")


class SessionExpired(WorkflowEngineError):
    """The session exceeded the idle timeout before this continuation."""

    code = "SessionExpired"

    def __init__(self, session_id: str, idle_seconds: float) -> None:
        self.session_id = session_id
        self.idle_seconds = idle_seconds
        super().__init__(
            f"Session '{session_id}' expired after {idle_seconds:.0f}s of inactivity"
        )


class SessionNotRunning(WorkflowEngineError):
    code = "SessionNotRunning"

    def __init__(self, session_id: str, status: str) -> None:
        self.session_id = session_id
        self.status = status
        super().__init__(f"Session '{session_id}' is {status} and cannot be continued")


class CircularInterpolationInput(WorkflowEngineError):
    code = "CircularInterpolationInput"

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Circular reference in step input at {path}")


class StepExecutionFailed(WorkflowEngineError):
    code = "StepExecutionFailed"

    def __init__(self, step_name: str, step_index: int, reason: str) -> None:
        self.step_name = step_name
        self.step_index = step_index
        self.reason = reason
        super().__init__(f"Step '{step_name}' (index {step_index}) failed: {reason}")
