"""Test configuration and fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from agent_workflow_engine.core.config import EngineConfig, LLMConfig
from agent_workflow_engine.engine import WorkflowExecutionEngine
from agent_workflow_engine.workflow.catalog import WorkflowCatalog
from tests._support.doubles import FakeClock, ScriptedInvoker, make_workflow


@pytest.fixture
def llm_config() -> LLMConfig:
    """Provide a test LLM configuration."""
    return LLMConfig(
        provider="openai",
        openai_api_key="test-key",
        openai_model="gpt-4",
    )


@pytest.fixture
def engine_config(tmp_path: Path) -> EngineConfig:
    """Provide an engine configuration writing under a temporary directory."""
    return EngineConfig(
        output_dir=tmp_path / "workflow-output",
        session_idle_timeout_seconds=600,
        reaper_interval_seconds=60,
        completed_session_grace_seconds=30,
    )


@pytest.fixture
def invoker() -> ScriptedInvoker:
    return ScriptedInvoker()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def catalog() -> WorkflowCatalog:
    """Small workflows shared by the engine and server tests."""
    return WorkflowCatalog(
        [
            make_workflow(
                "two-step",
                [
                    {"name": "A", "tool": "tool-a", "output": {"variable": "a_out"}},
                    {"name": "B", "tool": "tool-b", "input": {"prompt": "Use ${A.output}"}},
                ],
            ),
            make_workflow(
                "three-step",
                [
                    {"name": "first", "tool": "slow"},
                    {"name": "second", "tool": "slow"},
                    {"name": "third", "tool": "slow"},
                ],
            ),
            make_workflow("empty", []),
        ]
    )


@pytest.fixture
def engine(
    catalog: WorkflowCatalog,
    invoker: ScriptedInvoker,
    engine_config: EngineConfig,
    clock: FakeClock,
) -> WorkflowExecutionEngine:
    return WorkflowExecutionEngine(catalog, invoker, config=engine_config, clock=clock)
