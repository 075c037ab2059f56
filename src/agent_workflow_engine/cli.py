"""`workflow-engine` command line entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from agent_workflow_engine import __version__
from agent_workflow_engine.core.config import AppConfig
from agent_workflow_engine.runtime import build_catalog, build_engine
from agent_workflow_engine.workflow.catalog import validation_errors
from agent_workflow_engine.workflow.errors import WorkflowEngineError
from agent_workflow_engine.workflow.tools import ToolRegistry

logger = logging.getLogger(__name__)


def _parse_vars(values: list[str]) -> dict[str, str]:
    variables: dict[str, str] = {}
    for raw in values:
        key, sep, value = raw.partition("=")
        if not sep or not key.strip():
            raise argparse.ArgumentTypeError(f"Expected KEY=VALUE, got {raw!r}")
        variables[key.strip()] = value
    return variables


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="workflow-engine",
        description="Run declarative multi-step LLM workflows",
    )
    parser.add_argument(
        "--version", action="version", version=f"agent-workflow-engine {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("list", help="List discovered workflows")

    run = subparsers.add_parser("run", help="Run a workflow to completion")
    run.add_argument("name", help="Workflow name")
    run.add_argument("query", help="Query passed to the workflow as ${query}")
    run.add_argument(
        "--var",
        dest="variables",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Extra variable binding (repeatable)",
    )
    run.add_argument(
        "--format",
        dest="output_format",
        choices=["summary", "detailed", "json"],
        default=None,
        help="Output format (defaults to the workflow's own setting)",
    )
    run.add_argument(
        "--truncate-steps",
        action="store_true",
        default=None,
        help="Truncate step outputs in the final result",
    )
    run.add_argument(
        "--dry-run",
        action="store_true",
        help="Resolve inputs and parameters without calling any tool",
    )

    validate = subparsers.add_parser("validate", help="Validate a workflow definition file")
    validate.add_argument("path", type=Path, help="YAML or JSON workflow file")

    return parser


async def _run(config: AppConfig, args: argparse.Namespace) -> str | dict[str, object]:
    # Dry runs never reach a tool, so they need no LLM credentials.
    invoker = ToolRegistry() if args.dry_run else None
    async with build_engine(config, invoker=invoker) as engine:
        return await engine.execute_workflow(
            args.name,
            args.query,
            _parse_vars(args.variables),
            output_format=args.output_format,
            truncate_steps=args.truncate_steps,
            dry_run=args.dry_run,
        )


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = AppConfig()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    config.setup_logging()

    try:
        if args.command == "list":
            catalog = build_catalog(config)
            for summary in catalog.list_summaries():
                print(
                    f"{summary.name:<24} {summary.step_count:>3} steps  "
                    f"[{summary.source}]  {summary.description}"
                )
            return 0

        if args.command == "validate":
            problems = validation_errors(args.path)
            if problems:
                for problem in problems:
                    print(f"{args.path}: {problem}", file=sys.stderr)
                return 1
            print(f"{args.path}: OK")
            return 0

        if args.command == "run":
            result = asyncio.run(_run(config, args))
            print(result if isinstance(result, str) else json.dumps(result, indent=2))
            return 0

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except argparse.ArgumentTypeError as e:
        print(str(e), file=sys.stderr)
        return 2

    except WorkflowEngineError as e:
        logger.warning(str(e), extra={"code": e.code})
        print(str(e), file=sys.stderr)
        return 3

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
