"""Pydantic models for the REST server."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class StartRequest(BaseModel):
    query: str
    variables: dict[str, Any] = Field(default_factory=dict)


class RunRequest(StartRequest):
    format: Literal["summary", "detailed", "json"] | None = None
    truncate_steps: bool | None = None
    max_step_tokens: int | None = Field(default=None, gt=0)
    dry_run: bool = False


class RunResponse(BaseModel):
    workflow: str
    result: str | dict[str, Any]


class CompletionModel(BaseModel):
    step_count: int
    text: str


class StepResultModel(BaseModel):
    session_id: str
    step: int
    total_steps: int
    step_name: str | None
    output: str
    has_more: bool
    duration: float
    model_used: str | None = None
    skipped: bool = False
    completion: CompletionModel | None = None


class StepOutputModel(BaseModel):
    summary: str
    size_bytes: int
    file_path: str | None = None
    model_used: str | None = None
    duration: float = 0.0


class SessionErrorModel(BaseModel):
    code: str
    message: str
    step_index: int


class SessionModel(BaseModel):
    session_id: str
    workflow_id: str
    workflow_name: str
    status: Literal["running", "completed", "failed"]
    current_step_index: int
    total_steps: int
    start_time: str
    last_updated: str
    output_directory: str | None = None
    step_outputs: dict[str, StepOutputModel] = Field(default_factory=dict)
    error: SessionErrorModel | None = None
    completion: CompletionModel | None = None


class ErrorResponse(BaseModel):
    code: str
    detail: str
