"""Resumable session state: records, map, lock and reaper."""

from agent_workflow_engine.session.lock import SessionLock
from agent_workflow_engine.session.reaper import SessionReaper
from agent_workflow_engine.session.state_machine import (
    IllegalTransitionError,
    SessionStatus,
)
from agent_workflow_engine.session.store import (
    CompletionSummary,
    SessionError,
    SessionStore,
    WorkflowSession,
    is_valid_session_id,
    new_session_id,
)

__all__ = [
    "CompletionSummary",
    "IllegalTransitionError",
    "SessionError",
    "SessionLock",
    "SessionReaper",
    "SessionStatus",
    "SessionStore",
    "WorkflowSession",
    "is_valid_session_id",
    "new_session_id",
]
