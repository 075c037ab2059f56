"""In-memory session map and the session record itself."""

from __future__ import annotations

import re
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from agent_workflow_engine.session.state_machine import SessionStatus, transition
from agent_workflow_engine.workflow.interpolation import BindingContext
from agent_workflow_engine.workflow.outputs import StepOutputReference
from agent_workflow_engine.workflow.schemas import WorkflowDefinition

SESSION_ID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$"
)


def is_valid_session_id(session_id: object) -> bool:
    return isinstance(session_id, str) and SESSION_ID_PATTERN.match(session_id) is not None


def new_session_id() -> str:
    session_id = str(uuid.uuid4())
    if not is_valid_session_id(session_id):
        raise RuntimeError(f"Generated session id has an unexpected shape: {session_id}")
    return session_id


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True, slots=True)
class SessionError:
    code: str
    message: str
    step_index: int

    def to_json(self) -> dict[str, object]:
        return {"code": self.code, "message": self.message, "stepIndex": self.step_index}


@dataclass(frozen=True, slots=True)
class CompletionSummary:
    """Closing payload of a completed session."""

    step_count: int
    text: str

    def to_json(self) -> dict[str, object]:
        return {"stepCount": self.step_count, "text": self.text}


@dataclass
class WorkflowSession:
    """State of one resumable execution.

    Mutated only by the call that holds the session's lock. `last_updated`
    is a monotonic-clock reading and is the only input to expiry.
    """

    session_id: str
    workflow: WorkflowDefinition
    query: str
    bindings: BindingContext
    last_updated: float
    output_directory: Path | None = None
    has_manifest: bool = False
    workflow_id: str = ""
    current_step_index: int = 0
    previous_output: StepOutputReference | None = None
    status: SessionStatus = SessionStatus.RUNNING
    error: SessionError | None = None
    completion: CompletionSummary | None = None
    start_time: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)

    def __post_init__(self) -> None:
        if not self.workflow_id:
            self.workflow_id = self.session_id

    @property
    def total_steps(self) -> int:
        return len(self.workflow.steps)

    @property
    def step_outputs(self) -> dict[str, StepOutputReference]:
        return self.bindings.step_outputs

    def touch(self, now: float) -> None:
        self.last_updated = now
        self.updated_at = _utc_now()

    def advance_to(self, index: int) -> None:
        if index < self.current_step_index or index > self.total_steps:
            raise ValueError(
                f"Step index must stay within [{self.current_step_index}, {self.total_steps}]"
                f", got {index}"
            )
        self.current_step_index = index

    def mark_completed(self, completion: CompletionSummary) -> None:
        self.status = transition(current=self.status, to=SessionStatus.COMPLETED)
        self.current_step_index = self.total_steps
        self.completion = completion

    def mark_failed(self, error: SessionError) -> None:
        self.status = transition(current=self.status, to=SessionStatus.FAILED)
        self.error = error

    def to_json(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "workflowId": self.workflow_id,
            "workflowName": self.workflow.name,
            "status": self.status.value,
            "currentStepIndex": self.current_step_index,
            "totalSteps": self.total_steps,
            "startTime": self.start_time.isoformat(),
            "lastUpdated": self.updated_at.isoformat(),
            "outputDirectory": str(self.output_directory) if self.output_directory else None,
            "stepOutputs": {name: ref.to_json() for name, ref in self.step_outputs.items()},
            "error": self.error.to_json() if self.error else None,
            "completion": self.completion.to_json() if self.completion else None,
        }


class SessionStore:
    """Session map guarded by a `threading.Lock`.

    The per-session `SessionLock` serializes work on one session; this lock
    only protects the map itself.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, WorkflowSession] = {}
        self._lock = threading.Lock()

    def add(self, session: WorkflowSession) -> None:
        with self._lock:
            if session.session_id in self._sessions:
                raise KeyError(f"Session already exists: {session.session_id}")
            self._sessions[session.session_id] = session

    def get(self, session_id: str) -> WorkflowSession | None:
        with self._lock:
            return self._sessions.get(session_id)

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def delete_where(self, predicate: Callable[[WorkflowSession], bool]) -> list[str]:
        with self._lock:
            doomed = [sid for sid, session in self._sessions.items() if predicate(session)]
            for sid in doomed:
                del self._sessions[sid]
            return doomed

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
