#!/usr/bin/env python3
"""Step-by-step session example.

This drives the engine directly, without the CLI or the REST server:

* load settings from `.env`
* discover workflows (built-in, user, project)
* run a workflow one step per call, printing each step's output

Pass `--offline` to answer every tool with a local echo handler instead of
the configured LLM.
"""

from __future__ import annotations

import argparse
import asyncio
from typing import Sequence

from agent_workflow_engine.core.config import AppConfig
from agent_workflow_engine.runtime import build_engine
from agent_workflow_engine.workflow.errors import WorkflowEngineError
from agent_workflow_engine.workflow.schemas import StepInput
from agent_workflow_engine.workflow.tools import (
    InvokeOptions,
    ToolResult,
    render_prompt,
)


class EchoInvoker:
    async def invoke(
        self, tool_name: str, tool_input: StepInput, options: InvokeOptions
    ) -> ToolResult:
        prompt = render_prompt(tool_input)
        return ToolResult(text=f"[{tool_name}] {prompt[:120]}", model_used="echo")


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a workflow one step at a time.")
    parser.add_argument("workflow", help='Workflow name, e.g. "research-brief"')
    parser.add_argument("query", help="Query passed to the workflow")
    parser.add_argument("--offline", action="store_true", help="Use a local echo tool")
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> int:
    config = AppConfig()
    config.setup_logging()

    invoker = EchoInvoker() if args.offline else None
    async with build_engine(config, invoker=invoker) as engine:
        try:
            result = await engine.start_workflow_step_by_step(args.workflow, args.query)
            while True:
                print(f"--- step {result.step}/{result.total_steps}: {result.step_name}")
                print(result.output)
                if not result.has_more:
                    break
                result = await engine.continue_workflow(result.session_id)
        except WorkflowEngineError as exc:
            print(str(exc))
            return 1

    if result.completion is not None:
        print()
        print(result.completion.text)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    return asyncio.run(_run(_parse_args(argv)))


if __name__ == "__main__":
    raise SystemExit(main())
