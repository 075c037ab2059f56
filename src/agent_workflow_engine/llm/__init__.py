"""LLM package initialization."""

from agent_workflow_engine.llm.factory import LLMFactory
from agent_workflow_engine.llm.provider import LLMProvider

__all__ = [
    "LLMFactory",
    "LLMProvider",
]
