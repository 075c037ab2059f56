"""Test doubles shared across the unit tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from agent_workflow_engine.workflow.schemas import StepInput, WorkflowDefinition
from agent_workflow_engine.workflow.tools import InvokeOptions, ToolResult

Response = ToolResult | Exception | Callable[[StepInput, InvokeOptions], ToolResult]


class ScriptedInvoker:
    """Tool invoker double with per-tool canned responses.

    Unknown tools answer with "<tool> output". Every call is recorded.
    """

    def __init__(self, delay: float = 0.0) -> None:
        self.responses: dict[str, Response] = {}
        self.delay = delay
        self.calls: list[tuple[str, StepInput, InvokeOptions]] = []

    async def invoke(
        self, tool_name: str, tool_input: StepInput, options: InvokeOptions
    ) -> ToolResult:
        self.calls.append((tool_name, tool_input, options))
        if self.delay:
            await asyncio.sleep(self.delay)
        response = self.responses.get(
            tool_name, ToolResult(text=f"{tool_name} output", model_used="fake-model")
        )
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(tool_input, options)
        return response

    def inputs_for(self, tool_name: str) -> list[StepInput]:
        return [tool_input for name, tool_input, _ in self.calls if name == tool_name]


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_workflow(name: str, steps: list[dict[str, Any]], **fields: Any) -> WorkflowDefinition:
    return WorkflowDefinition.model_validate({"name": name, "steps": steps, **fields})
