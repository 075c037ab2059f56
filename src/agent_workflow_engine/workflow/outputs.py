"""Step output persistence.

Every step result becomes a `StepOutputReference`: a short summary that stays
in memory plus a handle to the full text. The full text is held exactly once,
either in the reference itself (small outputs) or only on disk (outputs the
step asked to save, and anything above the large-output threshold).
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "manifest.json"
_OUTPUT_MARKER = re.compile(r"^## Output\n\n", re.MULTILINE)
_UNSAFE_STEP_CHARS = re.compile(r"[^a-zA-Z0-9_-]")
_UNSAFE_MODEL_CHARS = re.compile(r"[^a-zA-Z0-9-]")

StepStatus = Literal["running", "completed", "failed"]


def truncate_text(text: str, max_chars: int) -> str:
    """Cut `text` to `max_chars` characters, marking the cut with '...'."""

    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "..."


@dataclass(slots=True)
class StepOutputReference:
    """Bounded in-memory view of one step's output."""

    id: str
    step_name: str
    summary: str
    size_bytes: int
    file_path: Path | None = None
    model_used: str | None = None
    duration: float = 0.0
    _content: str | None = field(default=None, repr=False)

    @property
    def persisted(self) -> bool:
        return self.file_path is not None

    @property
    def saved_to(self) -> str:
        return self.file_path.name if self.file_path is not None else "in-memory"

    async def get_full_content(self) -> str:
        if self._content is not None:
            return self._content
        if self.file_path is None:
            raise RuntimeError(f"No content available for step {self.step_name!r}")
        markdown = await asyncio.to_thread(self.file_path.read_text, encoding="utf-8")
        return extract_output_section(markdown)

    def to_json(self) -> dict[str, object]:
        return {
            "id": self.id,
            "stepName": self.step_name,
            "summary": self.summary,
            "sizeBytes": self.size_bytes,
            "filePath": str(self.file_path) if self.file_path is not None else None,
            "modelUsed": self.model_used,
            "duration": self.duration,
        }


def extract_output_section(markdown: str) -> str:
    """Return the text below the `## Output` heading of a saved step file."""

    match = _OUTPUT_MARKER.search(markdown)
    if match is None:
        return markdown
    body = markdown[match.end() :]
    # The writer appends exactly one trailing newline after the content.
    return body[:-1] if body.endswith("\n") else body


class OutputFileManager:
    """Persist step outputs and maintain the per-run manifest."""

    def __init__(
        self,
        *,
        summary_max_chars: int = 200,
        large_output_threshold_bytes: int = 1_000_000,
    ) -> None:
        self.summary_max_chars = summary_max_chars
        self.large_output_threshold_bytes = large_output_threshold_bytes

    def extract_summary(self, content: str) -> str:
        return truncate_text(content, self.summary_max_chars)

    async def persist(
        self,
        step_name: str,
        content: str,
        *,
        session_id: str,
        workflow_name: str,
        should_persist: bool,
        output_directory: Path | None,
        step_number: str | None = None,
        model_name: str | None = None,
        duration: float = 0.0,
    ) -> StepOutputReference:
        size_bytes = len(content.encode("utf-8"))

        if not should_persist and size_bytes > self.large_output_threshold_bytes:
            logger.warning(
                "Step output exceeds in-memory limit; forcing file save",
                extra={"step": step_name, "size_bytes": size_bytes},
            )
            should_persist = True

        file_path: Path | None = None
        if should_persist and output_directory is not None:
            file_path = await self._write_step_file(
                output_directory / self._filename(step_name, step_number, model_name),
                self._render_document(
                    step_name=step_name,
                    content=content,
                    session_id=session_id,
                    workflow_name=workflow_name,
                    size_bytes=size_bytes,
                    model_name=model_name,
                ),
                step_name,
            )

        return StepOutputReference(
            id=f"{session_id}-{step_name}-{int(datetime.now(tz=UTC).timestamp() * 1000)}",
            step_name=step_name,
            summary=self.extract_summary(content),
            size_bytes=size_bytes,
            file_path=file_path,
            model_used=model_name,
            duration=duration,
            _content=content if file_path is None else None,
        )

    @staticmethod
    async def _write_step_file(path: Path, document: str, step_name: str) -> Path | None:
        try:
            await asyncio.to_thread(_write_text, path, document)
        except OSError:
            logger.warning(
                "File save failed; keeping step output in memory",
                extra={"step": step_name, "path": str(path)},
                exc_info=True,
            )
            return None
        logger.info("Saved step output", extra={"step": step_name, "path": str(path)})
        return path

    @staticmethod
    def _filename(step_name: str, step_number: str | None, model_name: str | None) -> str:
        safe_step = _UNSAFE_STEP_CHARS.sub("_", step_name)
        prefix = f"{step_number}-" if step_number else ""
        suffix = f"-{_UNSAFE_MODEL_CHARS.sub('-', model_name)}" if model_name else ""
        stamp = datetime.now().strftime("%Y-%m-%d-%H-%M-%S-%A")
        return f"{prefix}{safe_step}{suffix}-{stamp}.md"

    @staticmethod
    def _render_document(
        *,
        step_name: str,
        content: str,
        session_id: str,
        workflow_name: str,
        size_bytes: int,
        model_name: str | None,
    ) -> str:
        lines = [
            f"# {step_name}",
            "",
            f"**Workflow:** {workflow_name}",
            f"**Workflow ID:** {session_id}",
            f"**Timestamp:** {datetime.now(tz=UTC).isoformat()}",
            f"**Size:** {size_bytes} bytes",
        ]
        if model_name:
            lines.append(f"**Model:** {model_name}")
        lines += ["", "## Output", "", content, ""]
        return "\n".join(lines)

    # Manifest ---------------------------------------------------------------

    async def initialize_output_directory(
        self, output_directory: Path, *, workflow_id: str, workflow_name: str, query: str
    ) -> None:
        manifest: dict[str, Any] = {
            "workflowId": workflow_id,
            "workflowName": workflow_name,
            "startTime": datetime.now(tz=UTC).isoformat(),
            "endTime": None,
            "status": "running",
            "query": query,
            "steps": [],
        }
        await asyncio.to_thread(_write_json, output_directory / MANIFEST_FILENAME, manifest)
        logger.info("Workflow output directory ready", extra={"path": str(output_directory)})

    async def update_manifest(
        self,
        output_directory: Path,
        step_id: str,
        status: StepStatus,
        *,
        output_file: Path | None = None,
        error: str | None = None,
    ) -> None:
        """Upsert a step entry; manifest problems are logged, never raised."""

        try:
            await asyncio.to_thread(
                _update_manifest_file,
                output_directory / MANIFEST_FILENAME,
                step_id,
                status,
                str(output_file) if output_file is not None else None,
                error,
            )
        except (OSError, ValueError):
            logger.warning(
                "Failed to update manifest",
                extra={"path": str(output_directory), "step": step_id},
                exc_info=True,
            )

    async def finalize_manifest(self, output_directory: Path, status: StepStatus) -> None:
        try:
            await asyncio.to_thread(
                _finalize_manifest_file, output_directory / MANIFEST_FILENAME, status
            )
        except (OSError, ValueError):
            logger.warning(
                "Failed to finalize manifest",
                extra={"path": str(output_directory)},
                exc_info=True,
            )


def _write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def _write_json(path: Path, payload: dict[str, Any]) -> None:
    _write_text(path, json.dumps(payload, indent=2, ensure_ascii=False) + "\n")


def _update_manifest_file(
    path: Path,
    step_id: str,
    status: StepStatus,
    output_file: str | None,
    error: str | None,
) -> None:
    manifest = json.loads(path.read_text(encoding="utf-8"))
    entry: dict[str, Any] = {
        "id": step_id,
        "status": status,
        "outputFile": output_file,
        "error": error,
        "timestamp": datetime.now(tz=UTC).isoformat(),
    }
    steps: list[dict[str, Any]] = manifest.setdefault("steps", [])
    for idx, existing in enumerate(steps):
        if existing.get("id") == step_id:
            steps[idx] = entry
            break
    else:
        steps.append(entry)

    if any(s.get("status") == "failed" for s in steps):
        manifest["status"] = "failed"
        manifest["endTime"] = entry["timestamp"]

    _write_json(path, manifest)


def _finalize_manifest_file(path: Path, status: StepStatus) -> None:
    manifest = json.loads(path.read_text(encoding="utf-8"))
    manifest["status"] = status
    manifest["endTime"] = datetime.now(tz=UTC).isoformat()
    _write_json(path, manifest)
