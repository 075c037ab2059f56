"""Core package initialization."""

from agent_workflow_engine.core.config import AppConfig, EngineConfig, LLMConfig
from agent_workflow_engine.core.logging import JsonFormatter, configure_logging

__all__ = [
    "AppConfig",
    "EngineConfig",
    "JsonFormatter",
    "LLMConfig",
    "configure_logging",
]
