"""FastAPI app factory.

Endpoints are thin wrappers over `WorkflowExecutionEngine`; engine errors are
mapped to HTTP status codes by a single exception handler.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from agent_workflow_engine import __version__
from agent_workflow_engine.engine import StepResult, WorkflowExecutionEngine
from agent_workflow_engine.runtime import build_engine
from agent_workflow_engine.server.config import ServerSettings
from agent_workflow_engine.server.models import (
    CompletionModel,
    ErrorResponse,
    RunRequest,
    RunResponse,
    SessionErrorModel,
    SessionModel,
    StartRequest,
    StepOutputModel,
    StepResultModel,
)
from agent_workflow_engine.session.store import WorkflowSession
from agent_workflow_engine.workflow.errors import (
    InvalidSessionId,
    SessionExpired,
    SessionNotFound,
    SessionNotRunning,
    StepExecutionFailed,
    WorkflowEngineError,
    WorkflowNotFound,
)
from agent_workflow_engine.workflow.schemas import WorkflowSummary

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[WorkflowEngineError], int] = {
    WorkflowNotFound: 404,
    SessionNotFound: 404,
    InvalidSessionId: 400,
    SessionExpired: 410,
    SessionNotRunning: 409,
    StepExecutionFailed: 502,
}


def _status_for(exc: WorkflowEngineError) -> int:
    for error_type, status in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status
    return 500


def _to_step_model(result: StepResult) -> StepResultModel:
    return StepResultModel(
        session_id=result.session_id,
        step=result.step,
        total_steps=result.total_steps,
        step_name=result.step_name,
        output=result.output,
        has_more=result.has_more,
        duration=result.duration,
        model_used=result.model_used,
        skipped=result.skipped,
        completion=(
            CompletionModel(step_count=result.completion.step_count, text=result.completion.text)
            if result.completion
            else None
        ),
    )


def _to_session_model(session: WorkflowSession) -> SessionModel:
    return SessionModel(
        session_id=session.session_id,
        workflow_id=session.workflow_id,
        workflow_name=session.workflow.name,
        status=session.status.value,
        current_step_index=session.current_step_index,
        total_steps=session.total_steps,
        start_time=session.start_time.isoformat(),
        last_updated=session.updated_at.isoformat(),
        output_directory=str(session.output_directory) if session.output_directory else None,
        step_outputs={
            name: StepOutputModel(
                summary=ref.summary,
                size_bytes=ref.size_bytes,
                file_path=str(ref.file_path) if ref.file_path else None,
                model_used=ref.model_used,
                duration=ref.duration,
            )
            for name, ref in session.step_outputs.items()
        },
        error=(
            SessionErrorModel(
                code=session.error.code,
                message=session.error.message,
                step_index=session.error.step_index,
            )
            if session.error
            else None
        ),
        completion=(
            CompletionModel(
                step_count=session.completion.step_count, text=session.completion.text
            )
            if session.completion
            else None
        ),
    )


def create_app(
    engine: WorkflowExecutionEngine | None = None,
    settings: ServerSettings | None = None,
) -> FastAPI:
    settings = settings or ServerSettings()
    engine = engine or build_engine()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        engine.start()
        try:
            yield
        finally:
            await engine.shutdown()

    app = FastAPI(
        title="Agent Workflow Engine",
        version=__version__,
        description="REST API over the workflow execution engine.",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.parsed_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(WorkflowEngineError)
    async def engine_error(request: Request, exc: WorkflowEngineError) -> JSONResponse:
        status = _status_for(exc)
        if status >= 500:
            logger.warning(
                "Workflow request failed", extra={"path": request.url.path, "code": exc.code}
            )
        body = ErrorResponse(code=exc.code, detail=str(exc))
        return JSONResponse(status_code=status, content=body.model_dump())

    @app.get("/api/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/workflows", response_model=list[WorkflowSummary])
    def list_workflows() -> list[WorkflowSummary]:
        return engine.catalog.list_summaries()

    @app.post("/api/workflows/{name}/run", response_model=RunResponse)
    async def run_workflow(name: str, req: RunRequest) -> RunResponse:
        result = await engine.execute_workflow(
            name,
            req.query,
            req.variables,
            output_format=req.format,
            truncate_steps=req.truncate_steps,
            max_step_tokens=req.max_step_tokens,
            dry_run=req.dry_run,
        )
        return RunResponse(workflow=name, result=result)

    @app.post("/api/workflows/{name}/sessions", response_model=StepResultModel)
    async def start_session(name: str, req: StartRequest) -> StepResultModel:
        result = await engine.start_workflow_step_by_step(name, req.query, req.variables)
        return _to_step_model(result)

    @app.post("/api/sessions/{session_id}/continue", response_model=StepResultModel)
    async def continue_session(session_id: str) -> StepResultModel:
        return _to_step_model(await engine.continue_workflow(session_id))

    @app.get("/api/sessions/{session_id}", response_model=SessionModel)
    def get_session(session_id: str) -> SessionModel:
        session = engine.get_session(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail="Session not found")
        return _to_session_model(session)

    return app
