"""Build a ready-to-use engine from configuration."""

from __future__ import annotations

import logging

from agent_workflow_engine.core.config import AppConfig
from agent_workflow_engine.engine import WorkflowExecutionEngine
from agent_workflow_engine.llm.factory import LLMFactory
from agent_workflow_engine.workflow.catalog import WorkflowCatalog
from agent_workflow_engine.workflow.tools import ProviderToolInvoker, ToolInvoker, ToolRegistry

logger = logging.getLogger(__name__)


def build_catalog(config: AppConfig) -> WorkflowCatalog:
    catalog = WorkflowCatalog()
    errors = catalog.discover(config.engine.workflow_dirs)
    logger.info(
        "Workflow catalog ready",
        extra={"workflows": catalog.names(), "load_errors": len(errors)},
    )
    return catalog


def build_invoker(config: AppConfig) -> ToolRegistry:
    """Tool registry whose unregistered tools fall back to the configured LLM."""
    return ToolRegistry(fallback=ProviderToolInvoker(LLMFactory.create(config.llm)))


def build_engine(
    config: AppConfig | None = None,
    *,
    invoker: ToolInvoker | None = None,
    catalog: WorkflowCatalog | None = None,
) -> WorkflowExecutionEngine:
    config = config or AppConfig()
    return WorkflowExecutionEngine(
        catalog if catalog is not None else build_catalog(config),
        invoker if invoker is not None else build_invoker(config),
        config=config.engine,
    )
