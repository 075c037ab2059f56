"""Step lifecycle hooks.

Extensions (prompt enhancement, step tracking, error reporting) subclass
`StepHooks` and override only what they need. The engine awaits every
registered hook in registration order.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from agent_workflow_engine.workflow.outputs import StepOutputReference
from agent_workflow_engine.workflow.schemas import StepInput, WorkflowDefinition, WorkflowStep


@dataclass(frozen=True, slots=True)
class StepContext:
    """What a hook can see about the step being executed."""

    session_id: str
    workflow: WorkflowDefinition
    step: WorkflowStep
    step_index: int
    output_directory: Path | None


class StepHooks:
    async def before_step(self, context: StepContext, step_input: StepInput) -> StepInput | None:
        """Return a replacement input, or None to keep `step_input`."""
        return None

    async def after_step(self, context: StepContext, reference: StepOutputReference) -> None:
        return None

    async def on_failure(self, context: StepContext, error: Exception) -> None:
        return None
