"""Workflow definitions, interpolation and step execution building blocks."""

from agent_workflow_engine.workflow.catalog import WorkflowCatalog, WorkflowLoadError
from agent_workflow_engine.workflow.errors import (
    CircularInterpolationInput,
    InvalidSessionId,
    SessionExpired,
    SessionNotFound,
    SessionNotRunning,
    StepExecutionFailed,
    WorkflowEngineError,
    WorkflowNotFound,
)
from agent_workflow_engine.workflow.hooks import StepContext, StepHooks
from agent_workflow_engine.workflow.interpolation import (
    BindingContext,
    DeepInterpolator,
    VariableInterpolator,
)
from agent_workflow_engine.workflow.outputs import OutputFileManager, StepOutputReference
from agent_workflow_engine.workflow.parameters import (
    ParameterOverrides,
    ResolvedParameters,
    StepParameterResolver,
)
from agent_workflow_engine.workflow.schemas import WorkflowDefinition, WorkflowStep
from agent_workflow_engine.workflow.tools import (
    InvokeOptions,
    ProviderToolInvoker,
    ToolInvoker,
    ToolRegistry,
    ToolResult,
)

__all__ = [
    "BindingContext",
    "CircularInterpolationInput",
    "DeepInterpolator",
    "InvalidSessionId",
    "InvokeOptions",
    "OutputFileManager",
    "ParameterOverrides",
    "ProviderToolInvoker",
    "ResolvedParameters",
    "SessionExpired",
    "SessionNotFound",
    "SessionNotRunning",
    "StepContext",
    "StepExecutionFailed",
    "StepHooks",
    "StepOutputReference",
    "StepParameterResolver",
    "ToolInvoker",
    "ToolRegistry",
    "ToolResult",
    "VariableInterpolator",
    "WorkflowCatalog",
    "WorkflowDefinition",
    "WorkflowEngineError",
    "WorkflowLoadError",
    "WorkflowNotFound",
    "WorkflowStep",
]
