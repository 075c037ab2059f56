"""Workflow definition models.

Definitions are loaded from YAML/JSON files that use camelCase keys
(`maxTokens`, `saveToFile`, `defaultModel`); Python code uses the snake_case
attribute names. All models are frozen: a loaded definition never changes, and
reloading a workflow replaces the catalog entry instead of mutating it.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

# A step input is either a single template string or a structured map whose
# string leaves are templates.
StepInput = str | dict[str, Any]

# Name of the step appended by auto-synthesis; workflows may not use it.
SYNTHESIS_STEP_NAME = "auto-synthesis"


class _DefinitionModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class OptimizationSettings(_DefinitionModel):
    enabled: bool = True
    cache_results: bool = True
    compress_prompts: bool = True
    smart_routing: bool = True


class AutoSynthesisSettings(_DefinitionModel):
    """Append a summarising step when accumulated output grows large."""

    enabled: bool = False
    token_threshold: int = Field(default=20_000, gt=0)
    synthesis_tool: str | None = Field(
        default=None,
        description="Tool used for the synthesis step (engine default when unset)",
    )
    synthesis_max_tokens: int = Field(default=6000, gt=0)
    log_level: Literal["silent", "error", "info"] = "info"


class WorkflowSettings(_DefinitionModel):
    max_cost: float | None = Field(default=None, description="Max cost in dollars (informational)")
    max_time: float | None = Field(default=None, description="Max time in seconds (informational)")
    default_model: str | None = None
    default_temperature: float | None = None
    default_max_tokens: int | None = None
    optimization: OptimizationSettings = Field(default_factory=OptimizationSettings)
    auto_synthesis: AutoSynthesisSettings = Field(default_factory=AutoSynthesisSettings)


class StepCondition(_DefinitionModel):
    if_: str | None = Field(default=None, alias="if")
    skip: bool = False


class StepOutputSpec(_DefinitionModel):
    variable: str | None = Field(
        default=None,
        description="Binding name that captures this step's output",
    )
    format: Literal["text", "json", "markdown"] | None = None


class WorkflowStep(_DefinitionModel):
    name: str
    tool: str
    input: StepInput | None = None
    model: str | None = Field(default=None, description="Model override, may be a ${reference}")
    max_tokens: int | str | None = None
    temperature: float | str | None = None
    condition: StepCondition | None = None
    parallel: bool = Field(
        default=False,
        description="Run concurrently with adjacent parallel steps (run-to-completion only)",
    )
    output: StepOutputSpec | None = None
    save_to_file: bool = False

    @property
    def output_variable(self) -> str | None:
        return self.output.variable if self.output is not None else None


class OutputSettings(_DefinitionModel):
    format: Literal["summary", "detailed", "json"] = "summary"
    truncate_steps: bool | None = None
    max_step_tokens: int | None = None


class WorkflowDefinition(_DefinitionModel):
    name: str
    description: str = ""
    version: str = "1.0"
    settings: WorkflowSettings = Field(default_factory=WorkflowSettings)
    variables: dict[str, Any] = Field(default_factory=dict)
    steps: list[WorkflowStep]
    output: OutputSettings = Field(default_factory=OutputSettings)

    @model_validator(mode="after")
    def _check_step_names(self) -> WorkflowDefinition:
        seen: set[str] = set()
        for step in self.steps:
            if step.name == SYNTHESIS_STEP_NAME:
                raise ValueError(
                    f"Step name {SYNTHESIS_STEP_NAME!r} is reserved for auto-synthesis "
                    f"(workflow {self.name!r})"
                )
            if step.name in seen:
                raise ValueError(f"Duplicate step name in workflow {self.name!r}: {step.name!r}")
            seen.add(step.name)
        return self

    def step_names(self) -> list[str]:
        return [step.name for step in self.steps]


class WorkflowSummary(BaseModel):
    """Listing view of a catalog entry."""

    name: str
    description: str
    version: str
    step_count: int
    source: str
