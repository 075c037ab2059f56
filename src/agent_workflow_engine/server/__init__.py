"""FastAPI server adapter for agent-workflow-engine.

Business logic stays in `agent_workflow_engine.engine`; routing, CORS and
error mapping live here.
"""

from __future__ import annotations

__all__ = ["create_app"]

from agent_workflow_engine.server.app import create_app
