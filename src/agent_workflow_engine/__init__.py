"""Agent workflow engine.

Executes declarative multi-step workflows against pluggable tool
capabilities, either to completion in one call or as resumable
step-by-step sessions.
"""

__version__ = "0.1.0"

from agent_workflow_engine.core.config import AppConfig, EngineConfig, LLMConfig
from agent_workflow_engine.engine import StepResult, WorkflowExecutionEngine

__all__ = [
    "__version__",
    "AppConfig",
    "EngineConfig",
    "LLMConfig",
    "StepResult",
    "WorkflowExecutionEngine",
]
