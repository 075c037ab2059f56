"""Unit tests for resumable (step-by-step) workflow sessions."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import Mock

import pytest

from agent_workflow_engine.core.config import EngineConfig
from agent_workflow_engine.engine import WorkflowExecutionEngine
from agent_workflow_engine.session.lock import SessionLock
from agent_workflow_engine.session.state_machine import SessionStatus
from agent_workflow_engine.session.store import SessionStore
from agent_workflow_engine.workflow.catalog import WorkflowCatalog
from agent_workflow_engine.workflow.errors import (
    InvalidSessionId,
    SessionExpired,
    SessionNotFound,
    SessionNotRunning,
    StepExecutionFailed,
    WorkflowNotFound,
)
from agent_workflow_engine.workflow.hooks import StepContext, StepHooks
from agent_workflow_engine.workflow.outputs import MANIFEST_FILENAME, StepOutputReference
from agent_workflow_engine.workflow.schemas import StepInput
from agent_workflow_engine.workflow.tools import ToolResult
from tests._support.doubles import FakeClock, ScriptedInvoker, make_workflow


@pytest.mark.asyncio
async def test_two_step_session_completes_with_summary(
    engine: WorkflowExecutionEngine, invoker: ScriptedInvoker
) -> None:
    invoker.responses["tool-a"] = ToolResult(text="foo", model_used="m1")
    invoker.responses["tool-b"] = ToolResult(text="bar", model_used="m2")

    first = await engine.start_workflow_step_by_step("two-step", "the question")

    assert first.step == 1
    assert first.total_steps == 2
    assert first.has_more is True
    assert "foo" in first.output
    assert first.model_used == "m1"

    second = await engine.continue_workflow(first.session_id)

    assert second.step == 2
    assert second.has_more is False
    assert second.model_used == "m2"
    assert second.completion is not None
    assert "foo" in second.completion.text
    assert "bar" in second.completion.text
    assert "2" in second.completion.text
    assert second.completion.step_count == 2

    session = engine.get_session(first.session_id)
    assert session is not None
    assert session.status is SessionStatus.COMPLETED
    assert session.current_step_index == 2


@pytest.mark.asyncio
async def test_completed_session_rejects_continue(engine: WorkflowExecutionEngine) -> None:
    first = await engine.start_workflow_step_by_step("two-step", "q")
    await engine.continue_workflow(first.session_id)

    with pytest.raises(SessionNotRunning):
        await engine.continue_workflow(first.session_id)


@pytest.mark.asyncio
async def test_failing_step_marks_session_failed(
    engine: WorkflowExecutionEngine, invoker: ScriptedInvoker
) -> None:
    invoker.responses["tool-a"] = ToolResult(text="foo", model_used="m1")
    invoker.responses["tool-b"] = RuntimeError("quota exhausted")

    first = await engine.start_workflow_step_by_step("two-step", "q")
    with pytest.raises(StepExecutionFailed) as excinfo:
        await engine.continue_workflow(first.session_id)

    assert excinfo.value.step_name == "B"
    assert excinfo.value.step_index == 1
    assert "B" in str(excinfo.value)
    assert "quota exhausted" in str(excinfo.value)

    session = engine.get_session(first.session_id)
    assert session is not None
    assert session.status is SessionStatus.FAILED
    assert session.error is not None
    assert session.error.code == "StepExecutionFailed"
    assert session.error.step_index == 1
    assert list(session.step_outputs) == ["A"]

    with pytest.raises(SessionNotRunning):
        await engine.continue_workflow(first.session_id)


@pytest.mark.asyncio
async def test_full_output_reaches_next_step_but_display_is_truncated(
    catalog: WorkflowCatalog, invoker: ScriptedInvoker, clock: FakeClock, tmp_path
) -> None:
    long_text = "x" * 10_000
    invoker.responses["tool-a"] = ToolResult(text=long_text, model_used="m1")
    config = EngineConfig(output_dir=tmp_path, step_display_max_tokens=100)
    engine = WorkflowExecutionEngine(catalog, invoker, config=config, clock=clock)

    first = await engine.start_workflow_step_by_step("two-step", "q")
    await engine.continue_workflow(first.session_id)

    assert first.output == "x" * 400 + "..."
    (prompt_input,) = invoker.inputs_for("tool-b")
    assert prompt_input == {"prompt": "Use " + long_text}


@pytest.mark.parametrize(
    "session_id",
    ["not-a-uuid", "3F1C2B7A-8D4E-4F6A-9B2C-1D3E5F7A9B0C", "../../etc/passwd", ""],
)
@pytest.mark.asyncio
async def test_malformed_ids_never_touch_the_session_map(
    engine: WorkflowExecutionEngine, session_id: str
) -> None:
    engine.sessions = Mock(spec=SessionStore)
    engine.locks = Mock(spec=SessionLock)

    with pytest.raises(InvalidSessionId):
        await engine.continue_workflow(session_id)
    assert engine.get_session(session_id) is None

    assert engine.sessions.mock_calls == []
    assert engine.locks.mock_calls == []


@pytest.mark.asyncio
async def test_unknown_session_and_workflow(engine: WorkflowExecutionEngine) -> None:
    with pytest.raises(SessionNotFound):
        await engine.continue_workflow("3f1c2b7a-8d4e-4f6a-9b2c-1d3e5f7a9b0c")

    with pytest.raises(WorkflowNotFound) as excinfo:
        await engine.start_workflow_step_by_step("nope", "q")
    assert "two-step" in excinfo.value.available
    assert len(engine.sessions) == 0


@pytest.mark.asyncio
async def test_step_index_is_monotonic(engine: WorkflowExecutionEngine) -> None:
    result = await engine.start_workflow_step_by_step("three-step", "q")
    seen = [engine.sessions.get(result.session_id).current_step_index]

    while result.has_more:
        result = await engine.continue_workflow(result.session_id)
        session = engine.sessions.get(result.session_id)
        seen.append(session.current_step_index)

    assert seen == sorted(seen)
    assert seen[-1] == 3
    assert all(index <= 3 for index in seen)


@pytest.mark.asyncio
async def test_concurrent_continues_are_serialized(
    catalog: WorkflowCatalog, engine_config: EngineConfig, clock: FakeClock
) -> None:
    invoker = ScriptedInvoker(delay=0.05)
    counter = iter(range(1, 100))
    invoker.responses["slow"] = lambda _input, _options: ToolResult(
        text=f"call-{next(counter)}", model_used="m"
    )
    engine = WorkflowExecutionEngine(catalog, invoker, config=engine_config, clock=clock)

    first = await engine.start_workflow_step_by_step("three-step", "q")
    second, third = await asyncio.gather(
        engine.continue_workflow(first.session_id),
        engine.continue_workflow(first.session_id),
    )

    assert [first.step, second.step, third.step] == [1, 2, 3]
    assert [second.step_name, third.step_name] == ["second", "third"]
    assert [second.output, third.output] == ["call-2", "call-3"]
    assert second.has_more is True
    assert third.has_more is False
    assert len(invoker.calls) == 3


@pytest.mark.asyncio
async def test_idle_session_expires_on_continue(
    engine: WorkflowExecutionEngine, clock: FakeClock
) -> None:
    first = await engine.start_workflow_step_by_step("three-step", "q")
    clock.advance(engine.config.session_idle_timeout_seconds + 1)

    assert engine.get_session(first.session_id) is None
    with pytest.raises(SessionExpired):
        await engine.continue_workflow(first.session_id)
    with pytest.raises(SessionNotFound):
        await engine.continue_workflow(first.session_id)


@pytest.mark.asyncio
async def test_reaped_session_is_not_found(
    engine: WorkflowExecutionEngine, clock: FakeClock
) -> None:
    first = await engine.start_workflow_step_by_step("three-step", "q")
    clock.advance(engine.config.session_idle_timeout_seconds + 1)

    assert engine.reaper.sweep() == [first.session_id]
    with pytest.raises(SessionNotFound):
        await engine.continue_workflow(first.session_id)


@pytest.mark.asyncio
async def test_activity_keeps_session_alive(
    engine: WorkflowExecutionEngine, clock: FakeClock
) -> None:
    first = await engine.start_workflow_step_by_step("three-step", "q")
    half = engine.config.session_idle_timeout_seconds / 2 + 1

    clock.advance(half)
    await engine.continue_workflow(first.session_id)
    clock.advance(half)

    assert engine.reaper.sweep() == []
    assert engine.get_session(first.session_id) is not None


@pytest.mark.asyncio
async def test_zero_step_workflow_completes_immediately(engine: WorkflowExecutionEngine) -> None:
    result = await engine.start_workflow_step_by_step("empty", "q")

    assert result.has_more is False
    assert result.total_steps == 0
    assert result.completion is not None
    assert result.completion.step_count == 0


@pytest.mark.asyncio
async def test_previous_step_key_receives_full_output(
    engine_config: EngineConfig, invoker: ScriptedInvoker, clock: FakeClock
) -> None:
    catalog = WorkflowCatalog(
        [
            make_workflow(
                "splice",
                [
                    {"name": "draft", "tool": "write"},
                    {"name": "notes", "tool": "note"},
                    {
                        "name": "review",
                        "tool": "review",
                        "input": {"prompt": "Review it", "previousStep": "draft"},
                    },
                    {
                        "name": "polish",
                        "tool": "polish",
                        "input": {"prompt": "Polish", "previousStep": "latest"},
                    },
                ],
            )
        ]
    )
    invoker.responses["write"] = ToolResult(text="D" * 500, model_used="m")
    engine = WorkflowExecutionEngine(catalog, invoker, config=engine_config, clock=clock)

    result = await engine.start_workflow_step_by_step("splice", "q")
    while result.has_more:
        result = await engine.continue_workflow(result.session_id)

    assert invoker.inputs_for("review") == [{"prompt": "Review it", "previousStep": "D" * 500}]
    assert invoker.inputs_for("polish") == [{"prompt": "Polish", "previousStep": "review output"}]


@pytest.mark.asyncio
async def test_default_input_is_the_query_and_variables_are_bound(
    engine_config: EngineConfig, invoker: ScriptedInvoker, clock: FakeClock
) -> None:
    catalog = WorkflowCatalog(
        [
            make_workflow(
                "vars",
                [
                    {"name": "plain", "tool": "echo"},
                    {"name": "templated", "tool": "echo", "input": "${greeting}, ${who}: ${input}"},
                ],
                variables={"greeting": "hello", "who": "default"},
            )
        ]
    )
    engine = WorkflowExecutionEngine(catalog, invoker, config=engine_config, clock=clock)

    first = await engine.start_workflow_step_by_step("vars", "the query", {"who": "caller"})
    await engine.continue_workflow(first.session_id)

    assert invoker.inputs_for("echo") == ["the query", "hello, caller: the query"]


@pytest.mark.asyncio
async def test_condition_can_skip_a_step(
    engine_config: EngineConfig, invoker: ScriptedInvoker, clock: FakeClock
) -> None:
    catalog = WorkflowCatalog(
        [
            make_workflow(
                "conditional",
                [
                    {
                        "name": "deep-dive",
                        "tool": "expensive",
                        "condition": {"if": "mode == thorough", "skip": True},
                    },
                    {"name": "answer", "tool": "cheap"},
                ],
            )
        ]
    )
    engine = WorkflowExecutionEngine(catalog, invoker, config=engine_config, clock=clock)

    first = await engine.start_workflow_step_by_step("conditional", "q", {"mode": "quick"})
    second = await engine.continue_workflow(first.session_id)

    assert first.skipped is True
    assert first.output == ""
    assert second.has_more is False
    assert [name for name, _, _ in invoker.calls] == ["cheap"]
    assert "deep-dive" not in engine.sessions.get(first.session_id).step_outputs


class RecordingHooks(StepHooks):
    def __init__(self) -> None:
        self.events: list[str] = []

    async def before_step(self, context: StepContext, step_input: StepInput) -> StepInput | None:
        self.events.append(f"before:{context.step.name}")
        if context.step.name == "A":
            return "rewritten ${query}"
        return None

    async def after_step(self, context: StepContext, reference: StepOutputReference) -> None:
        self.events.append(f"after:{context.step.name}:{reference.summary}")

    async def on_failure(self, context: StepContext, error: Exception) -> None:
        self.events.append(f"failure:{context.step.name}")


@pytest.mark.asyncio
async def test_hooks_see_every_step(
    catalog: WorkflowCatalog,
    invoker: ScriptedInvoker,
    engine_config: EngineConfig,
    clock: FakeClock,
) -> None:
    hooks = RecordingHooks()
    invoker.responses["tool-b"] = ValueError("bad input")
    engine = WorkflowExecutionEngine(
        catalog, invoker, config=engine_config, hooks=[hooks], clock=clock
    )

    first = await engine.start_workflow_step_by_step("two-step", "q")
    with pytest.raises(StepExecutionFailed):
        await engine.continue_workflow(first.session_id)

    assert invoker.inputs_for("tool-a") == ["rewritten q"]
    assert hooks.events == [
        "before:A",
        "after:A:tool-a output",
        "before:B",
        "failure:B",
    ]


@pytest.mark.asyncio
async def test_saved_outputs_are_written_with_manifest(
    engine_config: EngineConfig, invoker: ScriptedInvoker, clock: FakeClock
) -> None:
    catalog = WorkflowCatalog(
        [
            make_workflow(
                "saving",
                [
                    {"name": "big", "tool": "big", "saveToFile": True},
                    {"name": "use", "tool": "use", "input": "${big}"},
                ],
            )
        ]
    )
    invoker.responses["big"] = ToolResult(text="line one\nline two\n", model_used="gpt-4o")
    engine = WorkflowExecutionEngine(catalog, invoker, config=engine_config, clock=clock)

    first = await engine.start_workflow_step_by_step("saving", "q")
    await engine.continue_workflow(first.session_id)

    session = engine.sessions.get(first.session_id)
    reference = session.step_outputs["big"]
    assert reference.file_path is not None
    assert reference.file_path.parent == session.output_directory
    assert reference.file_path.name.startswith("1-big-gpt-4o-")
    assert await reference.get_full_content() == "line one\nline two\n"
    assert invoker.inputs_for("use") == ["line one\nline two\n"]

    manifest = json.loads((session.output_directory / MANIFEST_FILENAME).read_text())
    assert manifest["status"] == "completed"
    assert [entry["id"] for entry in manifest["steps"]] == ["big", "use"]


@pytest.mark.asyncio
async def test_shutdown_stops_background_work(engine: WorkflowExecutionEngine) -> None:
    async with engine:
        assert engine.reaper.running
        result = await engine.start_workflow_step_by_step("two-step", "q")
        await engine.continue_workflow(result.session_id)

    assert not engine.reaper.running
    assert engine._removals == {}


@pytest.mark.asyncio
async def test_continue_woken_by_shutdown_does_not_run_a_step(
    catalog: WorkflowCatalog, engine_config: EngineConfig
) -> None:
    invoker = ScriptedInvoker(delay=0.05)
    engine = WorkflowExecutionEngine(catalog, invoker, config=engine_config, clock=FakeClock())
    engine.start()
    started = await engine.start_workflow_step_by_step("three-step", "q")

    holder = asyncio.create_task(engine.continue_workflow(started.session_id))
    queued = asyncio.create_task(engine.continue_workflow(started.session_id))
    await asyncio.sleep(0.01)
    assert engine.locks.waiting(started.session_id) == 1

    await engine.shutdown()
    stopped = await asyncio.wait_for(queued, timeout=1)
    advanced = await asyncio.wait_for(holder, timeout=1)

    assert advanced.step == 2
    assert stopped.has_more is False
    assert stopped.step_name is None
    assert len(invoker.calls) == 2
    assert engine.sessions.get(started.session_id).current_step_index == 1
