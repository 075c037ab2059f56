"""Workflow execution engine.

Runs workflow definitions from a `WorkflowCatalog` against a `ToolInvoker`,
either to completion in one call (`execute_workflow`) or one step per call in
a resumable session (`start_workflow_step_by_step` / `continue_workflow`).

Session lifecycle::

    start -> running --continue--> running ... --last step--> completed
                    \\--step fails--> failed
    running/failed --idle timeout--> (deleted by the reaper or on continue)

A session is only mutated by the call holding its `SessionLock`; completed
sessions are removed after a short grace period, failed ones stay inspectable
until they go idle for longer than the timeout.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from agent_workflow_engine.core.config import EngineConfig
from agent_workflow_engine.session.lock import SessionLock
from agent_workflow_engine.session.reaper import SessionReaper
from agent_workflow_engine.session.state_machine import SessionStatus
from agent_workflow_engine.session.store import (
    CompletionSummary,
    SessionError,
    SessionStore,
    WorkflowSession,
    is_valid_session_id,
    new_session_id,
)
from agent_workflow_engine.workflow.catalog import WorkflowCatalog
from agent_workflow_engine.workflow.errors import (
    InvalidSessionId,
    SessionExpired,
    SessionNotFound,
    SessionNotRunning,
    StepExecutionFailed,
)
from agent_workflow_engine.workflow.formatter import (
    ExecutedStep,
    ExecutionRecord,
    OutputFormat,
    format_execution,
)
from agent_workflow_engine.workflow.helpers import (
    calculate_step_numbers,
    evaluate_condition,
    group_steps,
)
from agent_workflow_engine.workflow.hooks import StepContext, StepHooks
from agent_workflow_engine.workflow.interpolation import (
    BindingContext,
    DeepInterpolator,
    stringify,
)
from agent_workflow_engine.workflow.outputs import (
    OutputFileManager,
    StepOutputReference,
    truncate_text,
)
from agent_workflow_engine.workflow.parameters import (
    ParameterOverrides,
    ResolvedParameters,
    StepParameterResolver,
)
from agent_workflow_engine.workflow.schemas import StepInput, WorkflowDefinition, WorkflowStep
from agent_workflow_engine.workflow.synthesis import AutoSynthesizer
from agent_workflow_engine.workflow.tools import InvokeOptions, ToolInvoker, ToolResult

logger = logging.getLogger(__name__)

PREVIOUS_STEP_KEY = "previousStep"


@dataclass(frozen=True, slots=True)
class StepResult:
    """What one start/continue call returns."""

    session_id: str
    step: int
    total_steps: int
    step_name: str | None
    output: str
    has_more: bool
    duration: float
    model_used: str | None = None
    skipped: bool = False
    completion: CompletionSummary | None = None

    def to_json(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "step": self.step,
            "totalSteps": self.total_steps,
            "stepName": self.step_name,
            "output": self.output,
            "hasMore": self.has_more,
            "duration": self.duration,
            "modelUsed": self.model_used,
            "skipped": self.skipped,
            "completion": self.completion.to_json() if self.completion else None,
        }


@dataclass(frozen=True, slots=True)
class _StepOutcome:
    reference: StepOutputReference
    text: str
    input_preview: str


class WorkflowExecutionEngine:
    def __init__(
        self,
        catalog: WorkflowCatalog,
        invoker: ToolInvoker,
        *,
        config: EngineConfig | None = None,
        output_manager: OutputFileManager | None = None,
        parameter_resolver: StepParameterResolver | None = None,
        synthesizer: AutoSynthesizer | None = None,
        hooks: Iterable[StepHooks] = (),
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or EngineConfig()
        self.catalog = catalog
        self.invoker = invoker
        self.output_manager = output_manager or OutputFileManager(
            summary_max_chars=self.config.summary_max_chars,
            large_output_threshold_bytes=self.config.large_output_threshold_bytes,
        )
        self.parameter_resolver = parameter_resolver or StepParameterResolver(
            ResolvedParameters(
                model=self.config.default_model,
                temperature=self.config.default_temperature,
                max_tokens=self.config.default_max_tokens,
            )
        )
        self.synthesizer = synthesizer or AutoSynthesizer(self.config.synthesis_tool)
        self.hooks = list(hooks)

        self.sessions = SessionStore()
        self.locks = SessionLock()
        self.reaper = SessionReaper(
            self.sessions,
            idle_timeout_seconds=self.config.session_idle_timeout_seconds,
            interval_seconds=self.config.reaper_interval_seconds,
            clock=clock,
        )
        self._clock = clock
        self._inputs = DeepInterpolator()
        self._removals: dict[str, asyncio.TimerHandle] = {}
        self._closed = False

    # Lifecycle ----------------------------------------------------------------

    def start(self) -> None:
        """Start background maintenance. Must be called from a running loop."""
        self._closed = False
        self.reaper.start()
        logger.info(
            "Workflow engine started",
            extra={
                "workflows": len(self.catalog),
                "idle_timeout_seconds": self.config.session_idle_timeout_seconds,
            },
        )

    async def shutdown(self) -> None:
        self._closed = True
        await self.reaper.stop()
        for handle in self._removals.values():
            handle.cancel()
        self._removals.clear()
        self.locks.clear()
        logger.info("Workflow engine stopped", extra={"sessions": len(self.sessions)})

    async def __aenter__(self) -> WorkflowExecutionEngine:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    def add_hook(self, hook: StepHooks) -> None:
        self.hooks.append(hook)

    # Resumable sessions ---------------------------------------------------------

    async def start_workflow_step_by_step(
        self,
        name: str,
        query: str,
        variables: Mapping[str, Any] | None = None,
        *,
        overrides: ParameterOverrides | None = None,
    ) -> StepResult:
        workflow = self.catalog.require(name)
        session = await self._open_session(workflow, query, variables)
        self.sessions.add(session)
        logger.info(
            "Started step-by-step session",
            extra={
                "session_id": session.session_id,
                "workflow": workflow.name,
                "total_steps": session.total_steps,
            },
        )

        async with self.locks.hold(session.session_id):
            if session.total_steps == 0:
                return await self._completion_result(session)
            return await self._advance(session, 0, overrides)

    async def continue_workflow(
        self, session_id: str, *, overrides: ParameterOverrides | None = None
    ) -> StepResult:
        if not is_valid_session_id(session_id):
            raise InvalidSessionId(session_id)
        if session_id not in self.sessions:
            raise SessionNotFound(session_id)

        async with self.locks.hold(session_id):
            # The session may have been reaped or expired while we waited.
            session = self.sessions.get(session_id)
            if session is None:
                raise SessionNotFound(session_id)
            if self._closed:
                return _stopped_result(session)
            if session.status is not SessionStatus.RUNNING:
                raise SessionNotRunning(session_id, session.status.value)

            now = self._clock()
            idle = now - session.last_updated
            if idle > self.config.session_idle_timeout_seconds:
                self.sessions.delete(session_id)
                logger.info(
                    "Session expired on continue",
                    extra={"session_id": session_id, "idle_seconds": idle},
                )
                raise SessionExpired(session_id, idle)

            session.touch(now)
            next_index = session.current_step_index + 1
            if next_index >= session.total_steps:
                return await self._completion_result(session)
            return await self._advance(session, next_index, overrides)

    def get_session(self, session_id: str) -> WorkflowSession | None:
        """Look up a live session; None for malformed, unknown or idle ids."""

        if not is_valid_session_id(session_id):
            return None
        session = self.sessions.get(session_id)
        if session is None:
            return None
        if self._clock() - session.last_updated > self.config.session_idle_timeout_seconds:
            return None
        return session

    async def _advance(
        self, session: WorkflowSession, index: int, overrides: ParameterOverrides | None
    ) -> StepResult:
        step = session.workflow.steps[index]
        session.advance_to(index)
        numbers = calculate_step_numbers(session.workflow)

        try:
            outcome = await self._run_step(
                session,
                step,
                index,
                session.bindings,
                step_number=numbers.get(step.name),
                overrides=overrides,
            )
        except StepExecutionFailed as exc:
            await self._fail(session, exc)
            raise

        if outcome is not None:
            await self._commit(session, step, outcome)
        session.touch(self._clock())

        has_more = index < session.total_steps - 1
        completion = None if has_more else await self._complete(session)

        return StepResult(
            session_id=session.session_id,
            step=index + 1,
            total_steps=session.total_steps,
            step_name=step.name,
            output=self._display(outcome.text) if outcome else "",
            has_more=has_more,
            duration=outcome.reference.duration if outcome else 0.0,
            model_used=outcome.reference.model_used if outcome else None,
            skipped=outcome is None,
            completion=completion,
        )

    async def _completion_result(self, session: WorkflowSession) -> StepResult:
        completion = await self._complete(session)
        return StepResult(
            session_id=session.session_id,
            step=session.total_steps,
            total_steps=session.total_steps,
            step_name=None,
            output=completion.text,
            has_more=False,
            duration=0.0,
            completion=completion,
        )

    async def _complete(self, session: WorkflowSession) -> CompletionSummary:
        lines = [f"Workflow '{session.workflow.name}' completed: {session.total_steps} steps"]
        for number, (name, reference) in enumerate(session.step_outputs.items(), start=1):
            lines.append(f"{number}. {name}: {reference.summary}")
        completion = CompletionSummary(step_count=session.total_steps, text="\n".join(lines))

        session.mark_completed(completion)
        session.touch(self._clock())
        if session.has_manifest and session.output_directory is not None:
            await self.output_manager.finalize_manifest(session.output_directory, "completed")

        if session.session_id in self.sessions:
            self._schedule_removal(session.session_id)
        logger.info(
            "Session completed",
            extra={"session_id": session.session_id, "workflow": session.workflow.name},
        )
        return completion

    def _schedule_removal(self, session_id: str) -> None:
        loop = asyncio.get_running_loop()
        self._removals[session_id] = loop.call_later(
            self.config.completed_session_grace_seconds, self._remove_completed, session_id
        )

    def _remove_completed(self, session_id: str) -> None:
        self._removals.pop(session_id, None)
        if self.sessions.delete(session_id):
            logger.debug("Removed completed session", extra={"session_id": session_id})

    # Run to completion ---------------------------------------------------------

    async def execute_workflow(
        self,
        name: str,
        query: str,
        variables: Mapping[str, Any] | None = None,
        *,
        output_format: OutputFormat | None = None,
        truncate_steps: bool | None = None,
        max_step_tokens: int | None = None,
        dry_run: bool = False,
        overrides: ParameterOverrides | None = None,
    ) -> str | dict[str, Any]:
        """Run every step in one call and return the formatted final output.

        Consecutive `parallel` steps run concurrently against the bindings as
        they were when the group started; their outputs are committed in
        declaration order once the whole group has settled.
        """

        workflow = self.catalog.require(name)
        session = await self._open_session(workflow, query, variables)
        record = ExecutionRecord(
            workflow_name=workflow.name,
            workflow_id=session.workflow_id,
            output_dir=session.output_directory if session.has_manifest else None,
        )
        numbers = calculate_step_numbers(workflow)
        produced: list[str] = []

        logger.info(
            "Executing workflow",
            extra={
                "session_id": session.session_id,
                "workflow": workflow.name,
                "total_steps": session.total_steps,
                "dry_run": dry_run,
            },
        )

        index = 0
        try:
            for group in group_steps(workflow.steps):
                bindings = session.bindings if len(group) == 1 else session.bindings.snapshot()
                results = await asyncio.gather(
                    *(
                        self._run_step(
                            session,
                            step,
                            index + offset,
                            bindings,
                            step_number=numbers.get(step.name),
                            overrides=overrides,
                            dry_run=dry_run,
                        )
                        for offset, step in enumerate(group)
                    ),
                    return_exceptions=True,
                )

                failure: BaseException | None = None
                for step, result in zip(group, results, strict=True):
                    if isinstance(result, BaseException):
                        failure = failure or result
                    elif result is not None:
                        await self._commit(session, step, result)
                        record.steps.append(_executed(step, result))
                        produced.append(result.text)
                if failure is not None:
                    raise failure

                index += len(group)
                session.advance_to(index - 1)
        except StepExecutionFailed as exc:
            record.status = "failed"
            await self._fail(session, exc)
            raise

        if self.synthesizer.should_synthesize(workflow, produced):
            await self._synthesize(session, record, dry_run=dry_run)

        await self._complete(session)
        record.status = "completed"
        record.end_time = datetime.now(tz=UTC)

        return format_execution(
            record,
            output_format or workflow.output.format,
            truncate_steps=(
                truncate_steps if truncate_steps is not None else bool(workflow.output.truncate_steps)
            ),
            max_step_tokens=max_step_tokens or workflow.output.max_step_tokens or 2500,
        )

    async def _synthesize(
        self, session: WorkflowSession, record: ExecutionRecord, *, dry_run: bool
    ) -> None:
        step = self.synthesizer.create_synthesis_step(
            session.workflow, session.output_directory if session.has_manifest else None
        )
        log_level = session.workflow.settings.auto_synthesis.log_level
        if log_level == "info":
            logger.info("Running auto-synthesis", extra={"session_id": session.session_id})
        try:
            outcome = await self._run_step(
                session, step, session.total_steps, session.bindings, dry_run=dry_run
            )
        except StepExecutionFailed:
            if log_level != "silent":
                logger.exception(
                    "Auto-synthesis failed; returning step outputs instead",
                    extra={"session_id": session.session_id},
                )
            return
        if outcome is not None:
            await self._commit(session, step, outcome)
            record.steps.append(_executed(step, outcome, is_synthesis=True))

    # Single step --------------------------------------------------------------

    async def _run_step(
        self,
        session: WorkflowSession,
        step: WorkflowStep,
        index: int,
        bindings: BindingContext,
        *,
        step_number: str | None = None,
        overrides: ParameterOverrides | None = None,
        dry_run: bool = False,
    ) -> _StepOutcome | None:
        """Execute one step without committing it; None when skipped.

        Every failure is raised as StepExecutionFailed.
        """

        condition = step.condition
        if condition is not None and condition.if_ and condition.skip:
            if not evaluate_condition(condition.if_, bindings):
                logger.info(
                    "Skipping step",
                    extra={"session_id": session.session_id, "step": step.name},
                )
                return None

        context = StepContext(
            session_id=session.session_id,
            workflow=session.workflow,
            step=step,
            step_index=index,
            output_directory=session.output_directory,
        )
        started = time.perf_counter()

        try:
            step_input: StepInput = step.input if step.input is not None else session.query
            for hook in self.hooks:
                replacement = await hook.before_step(context, step_input)
                if replacement is not None:
                    step_input = replacement

            resolved = await self._inputs.interpolate(step_input, bindings)
            if not isinstance(resolved, (str, dict)):
                # A whole-string reference can yield any bound value.
                resolved = stringify(resolved)
            if isinstance(resolved, dict) and PREVIOUS_STEP_KEY in resolved:
                resolved[PREVIOUS_STEP_KEY] = await self._previous_output(
                    session, bindings, resolved[PREVIOUS_STEP_KEY]
                )

            params = self.parameter_resolver.resolve(
                step, bindings, settings=session.workflow.settings, overrides=overrides
            )
            logger.info(
                "Executing step",
                extra={
                    "session_id": session.session_id,
                    "step": step.name,
                    "tool": step.tool,
                    "step_index": index,
                    "model": params.model,
                },
            )
            if dry_run:
                result = ToolResult(
                    text=(
                        f"[DRY RUN] Would execute {step.tool} "
                        f"with model {params.model or 'default'}"
                    ),
                    model_used=params.model or "dry-run",
                )
            else:
                result = await self.invoker.invoke(
                    step.tool,
                    resolved,
                    InvokeOptions(
                        model=params.model,
                        max_tokens=params.max_tokens,
                        temperature=params.temperature,
                        skip_validation=True,
                    ),
                )
            if result.text is None:
                raise ValueError(f"Tool '{step.tool}' returned no text")
            if not result.text.strip():
                logger.warning(
                    "Step returned empty output",
                    extra={"session_id": session.session_id, "step": step.name},
                )

            reference = await self.output_manager.persist(
                step.name,
                result.text,
                session_id=session.session_id,
                workflow_name=session.workflow.name,
                should_persist=step.save_to_file,
                output_directory=session.output_directory,
                step_number=step_number,
                model_name=result.model_used,
                duration=time.perf_counter() - started,
            )
            for hook in self.hooks:
                await hook.after_step(context, reference)
        except Exception as exc:
            failure = StepExecutionFailed(step.name, index, str(exc) or type(exc).__name__)
            for hook in self.hooks:
                try:
                    await hook.on_failure(context, failure)
                except Exception:
                    logger.exception("on_failure hook raised", extra={"step": step.name})
            raise failure from exc

        return _StepOutcome(
            reference=reference,
            text=result.text,
            input_preview=truncate_text(str(resolved), 200),
        )

    async def _previous_output(
        self, session: WorkflowSession, bindings: BindingContext, requested: Any
    ) -> str:
        if isinstance(requested, str) and requested in bindings.step_outputs:
            return await bindings.step_outputs[requested].get_full_content()
        if session.previous_output is not None:
            return await session.previous_output.get_full_content()
        return session.query

    async def _commit(
        self, session: WorkflowSession, step: WorkflowStep, outcome: _StepOutcome
    ) -> None:
        if step.name in session.step_outputs:
            raise RuntimeError(f"Step output already recorded: {step.name}")
        session.step_outputs[step.name] = outcome.reference
        if step.output_variable:
            session.bindings.bind(step.output_variable, outcome.reference)
        session.previous_output = outcome.reference
        session.touch(self._clock())

        if session.has_manifest and session.output_directory is not None:
            await self.output_manager.update_manifest(
                session.output_directory,
                step.name,
                "completed",
                output_file=outcome.reference.file_path,
            )

    async def _fail(self, session: WorkflowSession, exc: StepExecutionFailed) -> None:
        session.mark_failed(SessionError(code=exc.code, message=str(exc), step_index=exc.step_index))
        session.touch(self._clock())
        logger.error(
            "Step failed",
            extra={
                "session_id": session.session_id,
                "step": exc.step_name,
                "step_index": exc.step_index,
                "reason": exc.reason,
            },
        )
        if session.has_manifest and session.output_directory is not None:
            await self.output_manager.update_manifest(
                session.output_directory, exc.step_name, "failed", error=exc.reason
            )

    # Helpers ------------------------------------------------------------------

    async def _open_session(
        self,
        workflow: WorkflowDefinition,
        query: str,
        variables: Mapping[str, Any] | None,
    ) -> WorkflowSession:
        session_id = new_session_id()
        bindings = BindingContext()
        for source in (workflow.variables, variables or {}):
            for key, value in source.items():
                bindings.bind(key, value)
        bindings.bind("input", query)
        bindings.bind("query", query)

        session = WorkflowSession(
            session_id=session_id,
            workflow=workflow,
            query=query,
            bindings=bindings,
            last_updated=self._clock(),
            output_directory=self.config.output_dir / workflow.name / session_id,
        )
        if any(step.save_to_file for step in workflow.steps):
            try:
                await self.output_manager.initialize_output_directory(
                    session.output_directory,
                    workflow_id=session.workflow_id,
                    workflow_name=workflow.name,
                    query=query,
                )
                session.has_manifest = True
            except OSError:
                logger.warning(
                    "Could not create output directory; continuing without a manifest",
                    extra={"path": str(session.output_directory)},
                    exc_info=True,
                )
        return session

    def _display(self, text: str) -> str:
        return truncate_text(text, self.config.step_display_max_tokens * 4)


def _executed(
    step: WorkflowStep, outcome: _StepOutcome, *, is_synthesis: bool = False
) -> ExecutedStep:
    reference = outcome.reference
    return ExecutedStep(
        step=step.name,
        # Saved outputs stay on disk; the record keeps only their summary.
        output=reference.summary if reference.persisted else outcome.text,
        input_preview=outcome.input_preview,
        file_path=reference.file_path,
        model_used=reference.model_used,
        duration=reference.duration,
        is_synthesis=is_synthesis,
    )


def _stopped_result(session: WorkflowSession) -> StepResult:
    """Result for a continuation that was woken by shutdown; nothing ran."""
    return StepResult(
        session_id=session.session_id,
        step=session.current_step_index + 1,
        total_steps=session.total_steps,
        step_name=None,
        output="Workflow engine stopped; session was not advanced",
        has_more=False,
        duration=0.0,
    )
