"""Automatic executive-summary step for runs that produce a lot of output."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from agent_workflow_engine.workflow.helpers import estimate_tokens
from agent_workflow_engine.workflow.schemas import (
    SYNTHESIS_STEP_NAME,
    StepOutputSpec,
    WorkflowDefinition,
    WorkflowStep,
)

logger = logging.getLogger(__name__)

SYNTHESIS_OUTPUT_VARIABLE = "executive_summary"

_SYNTHESIS_TASK = """Synthesize all workflow outputs into an executive summary:

1. Key findings (brief, top 3-5 points)
2. Main insights or patterns discovered
3. Critical issues or challenges identified
4. Recommended next steps with priorities
5. Overall assessment{file_note}

Keep it under 2000 words."""


class AutoSynthesizer:
    def __init__(self, default_tool: str = "analyze_text") -> None:
        self.default_tool = default_tool

    def should_synthesize(
        self, workflow: WorkflowDefinition, outputs: Iterable[str], *, upto_index: int | None = None
    ) -> bool:
        """True when synthesis is enabled and the run produced enough to need it.

        Triggers when any step up to `upto_index` saves to file, or when the
        accumulated outputs reach the token threshold.
        """

        settings = workflow.settings.auto_synthesis
        if not settings.enabled:
            return False

        steps = workflow.steps if upto_index is None else workflow.steps[: upto_index + 1]
        if any(step.save_to_file for step in steps):
            return True

        total = sum(estimate_tokens(text) for text in outputs)
        if total >= settings.token_threshold:
            if settings.log_level == "info":
                logger.info(
                    "Accumulated output crossed synthesis threshold",
                    extra={"workflow": workflow.name, "tokens": total},
                )
            return True
        return False

    def create_synthesis_step(
        self, workflow: WorkflowDefinition, output_directory: Path | None = None
    ) -> WorkflowStep:
        """Build the step that summarises every captured output variable.

        The input carries `${variable}` references, so the step sees each
        output's full text at execution time.
        """

        settings = workflow.settings.auto_synthesis
        variables = [step.output_variable for step in workflow.steps if step.output_variable]
        text = "\n\n".join(f"${{{name}}}" for name in variables)

        file_note = ""
        saved = [f"- {step.name}.md" for step in workflow.steps if step.save_to_file]
        if output_directory is not None and saved:
            file_note = (
                f"\n\nNote: Full outputs saved to {output_directory}/\nFiles:\n"
                + "\n".join(saved)
                + "\n\nEnd by pointing readers at the saved files for the full analysis."
            )

        return WorkflowStep(
            name=SYNTHESIS_STEP_NAME,
            tool=settings.synthesis_tool or self.default_tool,
            input={"text": text, "task": _SYNTHESIS_TASK.format(file_note=file_note)},
            max_tokens=settings.synthesis_max_tokens,
            output=StepOutputSpec(variable=SYNTHESIS_OUTPUT_VARIABLE),
        )
