"""Final output of a run-to-completion execution."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal

from agent_workflow_engine.workflow.outputs import truncate_text

OutputFormat = Literal["summary", "detailed", "json"]


@dataclass(slots=True)
class ExecutedStep:
    step: str
    output: str
    input_preview: str = ""
    file_path: Path | None = None
    model_used: str | None = None
    duration: float = 0.0
    is_synthesis: bool = False


@dataclass(slots=True)
class ExecutionRecord:
    workflow_name: str
    workflow_id: str
    output_dir: Path | None = None
    status: str = "running"
    start_time: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    end_time: datetime | None = None
    steps: list[ExecutedStep] = field(default_factory=list)


def format_execution(
    record: ExecutionRecord,
    fmt: OutputFormat = "summary",
    *,
    truncate_steps: bool = False,
    max_step_tokens: int = 2500,
) -> str | dict[str, Any]:
    """Render a finished run.

    When the run was auto-synthesized only the synthesis output is returned,
    whatever the requested format.
    """

    for executed in record.steps:
        if executed.is_synthesis:
            return executed.output

    def shown(text: str) -> str:
        return truncate_text(text, max_step_tokens * 4) if truncate_steps else text

    if fmt == "json":
        return {
            "workflowName": record.workflow_name,
            "workflowId": record.workflow_id,
            "outputDir": str(record.output_dir) if record.output_dir else None,
            "status": record.status,
            "steps": [
                {
                    "step": executed.step,
                    "summary": shown(executed.output),
                    "filePath": str(executed.file_path) if executed.file_path else None,
                    "modelUsed": executed.model_used,
                }
                for executed in record.steps
            ],
        }
    if fmt == "detailed":
        return _format_detailed(record, shown)
    return _format_summary(record, shown)


def _format_detailed(record: ExecutionRecord, shown) -> str:
    end = record.end_time or datetime.now(tz=UTC)
    duration = (end - record.start_time).total_seconds()

    parts = [
        f"# Workflow: {record.workflow_name}\n",
        f"**Duration:** {duration:.1f}s",
        f"**Steps Completed:** {len(record.steps)}",
    ]
    if record.output_dir:
        parts.append(f"**Output Directory:** {record.output_dir}")
    parts.append("\n---\n")

    for number, executed in enumerate(record.steps, start=1):
        parts.append(f"## Step {number}: {executed.step}\n")
        if executed.input_preview:
            parts.append(f"**Input:**\n{executed.input_preview}...\n")
        parts.append(f"{shown(executed.output)}\n")
        if executed.file_path:
            parts.append(f"*Full output saved to: {executed.file_path}*\n")
        parts.append("---\n")

    parts.append("**Workflow Complete**")
    return "\n".join(parts) + "\n"


def _format_summary(record: ExecutionRecord, shown) -> str:
    if not record.steps:
        return "Workflow completed"

    result = shown(record.steps[-1].output)
    saved = [
        f"  - {executed.step}: {executed.file_path}"
        for executed in record.steps
        if executed.file_path
    ]
    if saved:
        result += "\n\n**Files saved:**\n" + "\n".join(saved)
    return result
