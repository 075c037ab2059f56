"""Effective model parameters for a step.

Precedence, highest first: per-call override > step field > workflow default >
system default. Step fields may be `${reference}` strings; a numeric field that
does not resolve to a number falls through to the next level.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from agent_workflow_engine.workflow.interpolation import BindingContext, VariableInterpolator
from agent_workflow_engine.workflow.schemas import WorkflowSettings, WorkflowStep

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ResolvedParameters:
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None


@dataclass(frozen=True, slots=True)
class ParameterOverrides:
    """Per-call overrides; `None` means "not overridden"."""

    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None


class StepParameterResolver:
    def __init__(
        self,
        system_defaults: ResolvedParameters | None = None,
        interpolator: VariableInterpolator | None = None,
    ) -> None:
        self.system_defaults = system_defaults or ResolvedParameters()
        self._interpolator = interpolator or VariableInterpolator()

    def resolve(
        self,
        step: WorkflowStep,
        context: BindingContext,
        *,
        settings: WorkflowSettings | None = None,
        overrides: ParameterOverrides | None = None,
    ) -> ResolvedParameters:
        settings = settings or WorkflowSettings()
        overrides = overrides or ParameterOverrides()
        defaults = self.system_defaults

        model = _first(
            overrides.model,
            self._text(step.model, context),
            settings.default_model,
            defaults.model,
        )
        temperature = _first(
            overrides.temperature,
            self._number(step.temperature, context, "temperature", step.name),
            settings.default_temperature,
            defaults.temperature,
        )
        max_tokens = _first(
            overrides.max_tokens,
            self._number(step.max_tokens, context, "maxTokens", step.name),
            settings.default_max_tokens,
            defaults.max_tokens,
        )

        return ResolvedParameters(
            model=model,
            temperature=float(temperature) if temperature is not None else None,
            max_tokens=int(max_tokens) if max_tokens is not None else None,
        )

    def _text(self, value: str | None, context: BindingContext) -> str | None:
        if value is None:
            return None
        resolved = self._interpolator.substitute(value, context).strip()
        return resolved or None

    def _number(
        self,
        value: int | float | str | None,
        context: BindingContext,
        field_name: str,
        step_name: str,
    ) -> float | None:
        if value is None:
            return None
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value
        resolved = self._interpolator.substitute(str(value), context)
        try:
            return float(resolved)
        except ValueError:
            logger.warning(
                "Could not convert step parameter to a number; using default",
                extra={"step": step_name, "field": field_name, "value": resolved},
            )
            return None


def _first(*candidates: Any) -> Any:
    for candidate in candidates:
        if candidate is not None:
            return candidate
    return None
