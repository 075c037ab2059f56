"""Small pure helpers shared by the engine and the synthesizer."""

from __future__ import annotations

import logging
import string
from collections.abc import Iterable

from agent_workflow_engine.workflow.interpolation import (
    MISSING,
    BindingContext,
    VariableInterpolator,
    stringify,
)
from agent_workflow_engine.workflow.outputs import StepOutputReference
from agent_workflow_engine.workflow.schemas import WorkflowDefinition, WorkflowStep

logger = logging.getLogger(__name__)

_FALSY_TEXT = {"", "false", "0", "no", "null", "none", "undefined"}


def estimate_tokens(text: str) -> int:
    """Rough token count (four characters per token)."""
    return -(-len(text) // 4)


def evaluate_condition(expression: str, context: BindingContext) -> bool:
    """Evaluate a step condition.

    Supported forms are `name == value`, `name != value` and a bare `name`
    (truthiness). Either side may use `${...}`; quotes around literal values
    are ignored.
    """

    for operator in ("==", "!="):
        if operator in expression:
            left, right = (_operand(part, context) for part in expression.split(operator, 1))
            return (left == right) if operator == "==" else (left != right)

    return _operand(expression, context).lower() not in _FALSY_TEXT


def _operand(raw: str, context: BindingContext) -> str:
    raw = raw.strip()
    if "${" in raw:
        return VariableInterpolator().substitute(raw, context).strip().strip("'\"")
    if raw[:1] in {"'", '"'}:
        return raw.strip("'\"")
    value = context.lookup(raw)
    if value is MISSING:
        return raw
    if isinstance(value, StepOutputReference):
        return value.summary
    return stringify(value)


def group_steps(steps: Iterable[WorkflowStep]) -> list[list[WorkflowStep]]:
    """Split steps into execution groups.

    Consecutive `parallel` steps share one group; every other step is a group
    of its own.
    """

    groups: list[list[WorkflowStep]] = []
    for step in steps:
        if step.parallel and groups and groups[-1][-1].parallel:
            groups[-1].append(step)
        else:
            groups.append([step])
    return groups


def calculate_step_numbers(workflow: WorkflowDefinition) -> dict[str, str]:
    """Display numbers per step name: `1`, `2`, `3a`, `3b`, `4`..."""

    numbers: dict[str, str] = {}
    for position, group in enumerate(group_steps(workflow.steps), start=1):
        if len(group) == 1:
            numbers[group[0].name] = str(position)
            continue
        for letter, step in zip(string.ascii_lowercase, group, strict=False):
            numbers[step.name] = f"{position}{letter}"
        if len(group) > len(string.ascii_lowercase):
            logger.warning(
                "Parallel group too large for letter suffixes",
                extra={"group": position, "size": len(group)},
            )
            for extra_index, step in enumerate(group[len(string.ascii_lowercase) :], start=27):
                numbers[step.name] = f"{position}-{extra_index}"
    return numbers
