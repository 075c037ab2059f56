"""Seam to the external tool capabilities a step invokes.

The engine treats every capability the same way: a tool name plus resolved
input goes in, text plus the identifier of the backend that produced it comes
out, or an exception is raised.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

from agent_workflow_engine.llm.provider import LLMProvider
from agent_workflow_engine.workflow.schemas import StepInput

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class InvokeOptions:
    model: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None
    skip_validation: bool = False


@dataclass(frozen=True, slots=True)
class ToolResult:
    text: str
    model_used: str


class ToolInvoker(Protocol):
    """Anything that can run a named capability."""

    async def invoke(
        self, tool_name: str, tool_input: StepInput, options: InvokeOptions
    ) -> ToolResult: ...


ToolHandler = Callable[[StepInput, InvokeOptions], Awaitable[ToolResult]]


class UnknownTool(LookupError):
    def __init__(self, tool_name: str) -> None:
        self.tool_name = tool_name
        super().__init__(f"No tool registered under {tool_name!r}")


class ToolRegistry:
    """Name -> handler table with an optional fallback invoker.

    Tools without a dedicated handler go to the fallback (typically a
    `ProviderToolInvoker`), so any tool name in a workflow file can be served
    by the configured LLM.
    """

    def __init__(self, fallback: ToolInvoker | None = None) -> None:
        self._handlers: dict[str, ToolHandler] = {}
        self._fallback = fallback

    def register(self, tool_name: str, handler: ToolHandler) -> None:
        if tool_name in self._handlers:
            logger.info("Replacing tool handler", extra={"tool": tool_name})
        self._handlers[tool_name] = handler

    def names(self) -> list[str]:
        return sorted(self._handlers)

    async def invoke(
        self, tool_name: str, tool_input: StepInput, options: InvokeOptions
    ) -> ToolResult:
        handler = self._handlers.get(tool_name)
        if handler is not None:
            return await handler(tool_input, options)
        if self._fallback is not None:
            return await self._fallback.invoke(tool_name, tool_input, options)
        raise UnknownTool(tool_name)


def render_prompt(tool_input: StepInput) -> str:
    """Flatten a structured step input into a single prompt.

    `prompt` (or `query`) leads; every other field follows as a labelled
    section in declaration order.
    """

    if isinstance(tool_input, str):
        return tool_input

    lead_key = next((k for k in ("prompt", "query") if k in tool_input), None)
    sections: list[str] = []
    if lead_key is not None:
        sections.append(_as_text(tool_input[lead_key]))
    for key, value in tool_input.items():
        if key == lead_key or value is None:
            continue
        sections.append(f"{key}:\n{_as_text(value)}")
    return "\n\n".join(sections)


def _as_text(value: object) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


class ProviderToolInvoker:
    """Serve any tool name with a (synchronous) LLM provider."""

    def __init__(self, provider: LLMProvider) -> None:
        self._provider = provider

    async def invoke(
        self, tool_name: str, tool_input: StepInput, options: InvokeOptions
    ) -> ToolResult:
        prompt = render_prompt(tool_input)
        logger.debug(
            "Invoking provider",
            extra={"tool": tool_name, "model": options.model, "prompt_chars": len(prompt)},
        )
        # Provider SDKs block; keep the event loop free for other sessions.
        text = await asyncio.to_thread(
            self._provider.generate,
            prompt,
            max_tokens=options.max_tokens,
            temperature=options.temperature,
            model=options.model,
        )
        return ToolResult(text=text, model_used=options.model or self._provider.model_name)
