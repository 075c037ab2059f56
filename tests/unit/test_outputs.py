"""Unit tests for step output persistence and the run manifest."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from agent_workflow_engine.workflow.outputs import (
    MANIFEST_FILENAME,
    OutputFileManager,
    extract_output_section,
    truncate_text,
)


async def _persist(manager: OutputFileManager, content: str, **kwargs):
    options = {
        "session_id": "session-1",
        "workflow_name": "wf",
        "should_persist": False,
        "output_directory": None,
    }
    options.update(kwargs)
    return await manager.persist("analysis", content, **options)


def test_truncate_text() -> None:
    assert truncate_text("short", 10) == "short"
    assert truncate_text("abcdef", 3) == "abc..."


@pytest.mark.asyncio
async def test_small_output_stays_in_memory() -> None:
    reference = await _persist(OutputFileManager(), "a" * 250)

    assert reference.file_path is None
    assert reference.persisted is False
    assert reference.saved_to == "in-memory"
    assert reference.summary == "a" * 200 + "..."
    assert reference.size_bytes == 250
    assert await reference.get_full_content() == "a" * 250


@pytest.mark.asyncio
async def test_requested_save_writes_markdown_and_reads_back(tmp_path: Path) -> None:
    content = "\n\nleading blank lines\n## Output\n\ninner heading\n"
    reference = await _persist(
        OutputFileManager(),
        content,
        should_persist=True,
        output_directory=tmp_path,
        step_number="2a",
        model_name="gpt-4o/mini",
    )

    assert reference.file_path is not None
    assert reference.file_path.name.startswith("2a-analysis-gpt-4o-mini-")
    assert reference.file_path.suffix == ".md"
    document = reference.file_path.read_text(encoding="utf-8")
    assert document.startswith("# analysis\n")
    assert "**Model:** gpt-4o/mini" in document
    assert await reference.get_full_content() == content


@pytest.mark.asyncio
async def test_multibyte_size_is_counted_in_bytes() -> None:
    reference = await _persist(OutputFileManager(), "é" * 10)

    assert reference.size_bytes == 20


@pytest.mark.asyncio
async def test_large_output_is_forced_to_disk(tmp_path: Path) -> None:
    manager = OutputFileManager(large_output_threshold_bytes=100)

    reference = await _persist(manager, "b" * 101, output_directory=tmp_path)

    assert reference.persisted
    assert reference.file_path.parent == tmp_path
    assert await reference.get_full_content() == "b" * 101


@pytest.mark.asyncio
async def test_large_output_without_directory_stays_in_memory() -> None:
    manager = OutputFileManager(large_output_threshold_bytes=100)

    reference = await _persist(manager, "b" * 101)

    assert reference.file_path is None
    assert await reference.get_full_content() == "b" * 101


@pytest.mark.asyncio
async def test_write_failure_falls_back_to_memory(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("occupied", encoding="utf-8")

    reference = await _persist(
        OutputFileManager(), "kept", should_persist=True, output_directory=blocker
    )

    assert reference.file_path is None
    assert await reference.get_full_content() == "kept"


def test_extract_output_section_without_marker_returns_document() -> None:
    assert extract_output_section("no heading here") == "no heading here"


@pytest.mark.asyncio
async def test_manifest_lifecycle(tmp_path: Path) -> None:
    manager = OutputFileManager()
    await manager.initialize_output_directory(
        tmp_path, workflow_id="wf-1", workflow_name="wf", query="why?"
    )
    manifest_path = tmp_path / MANIFEST_FILENAME

    manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
    assert manifest["status"] == "running"
    assert manifest["query"] == "why?"
    assert manifest["steps"] == []

    await manager.update_manifest(tmp_path, "a", "running")
    await manager.update_manifest(tmp_path, "a", "completed", output_file=tmp_path / "a.md")
    await manager.update_manifest(tmp_path, "b", "completed")
    manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
    assert [(s["id"], s["status"]) for s in manifest["steps"]] == [
        ("a", "completed"),
        ("b", "completed"),
    ]
    assert manifest["steps"][0]["outputFile"] == str(tmp_path / "a.md")

    await manager.finalize_manifest(tmp_path, "completed")
    manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
    assert manifest["status"] == "completed"
    assert manifest["endTime"] is not None


@pytest.mark.asyncio
async def test_failed_step_marks_manifest_failed(tmp_path: Path) -> None:
    manager = OutputFileManager()
    await manager.initialize_output_directory(
        tmp_path, workflow_id="wf-1", workflow_name="wf", query="q"
    )

    await manager.update_manifest(tmp_path, "a", "failed", error="boom")

    manifest = json.loads((tmp_path / MANIFEST_FILENAME).read_text(encoding="utf-8"))
    assert manifest["status"] == "failed"
    assert manifest["steps"][0]["error"] == "boom"


@pytest.mark.asyncio
async def test_manifest_errors_are_logged_not_raised(tmp_path: Path, caplog) -> None:
    await OutputFileManager().update_manifest(tmp_path / "missing", "a", "completed")

    assert "Failed to update manifest" in caplog.text
