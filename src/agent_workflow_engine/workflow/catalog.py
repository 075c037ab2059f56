"""Workflow catalog: named, immutable workflow definitions.

Definitions come from YAML or JSON files. Discovery reads, in order, the
built-in definitions shipped with the package, the user directory, the
project directory and any configured extra directories; a later source
replaces an earlier definition with the same name.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from agent_workflow_engine.workflow.errors import WorkflowNotFound
from agent_workflow_engine.workflow.schemas import WorkflowDefinition, WorkflowSummary

logger = logging.getLogger(__name__)

BUILTIN_DIR = Path(__file__).parent / "definitions"
PROJECT_DIR_NAME = ".agent-workflows"
WORKFLOW_SUFFIXES = {".yaml", ".yml", ".json"}
MAX_DISCOVERY_DEPTH = 4


@dataclass(frozen=True, slots=True)
class WorkflowLoadError:
    file: Path
    source: str
    error: str


def user_workflow_dir() -> Path:
    config_home = os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config"
    return Path(config_home) / "agent-workflow-engine" / "workflows"


def parse_workflow_file(path: Path) -> WorkflowDefinition:
    """Parse and validate one definition file.

    Raises:
        ValueError: If the file is not a mapping or fails validation.
        OSError: If the file cannot be read.
    """

    text = path.read_text(encoding="utf-8")
    data: Any = json.loads(text) if path.suffix.lower() == ".json" else yaml.safe_load(text)
    if not isinstance(data, dict):
        raise ValueError(f"{path.name}: expected a mapping at the top level")
    return WorkflowDefinition.model_validate(data)


class WorkflowCatalog:
    """Name -> definition map.

    Read-mostly: filled at startup, then only read by executions. Each entry
    is a frozen definition, so re-registering a name never affects a session
    that already bound the previous object.
    """

    def __init__(self, definitions: Iterable[WorkflowDefinition] = ()) -> None:
        self._workflows: dict[str, WorkflowDefinition] = {}
        self._sources: dict[str, str] = {}
        self.load_errors: list[WorkflowLoadError] = []
        for definition in definitions:
            self.register(definition)

    def register(self, definition: WorkflowDefinition, source: str = "inline") -> None:
        if definition.name in self._workflows:
            logger.info(
                "Overriding workflow definition",
                extra={
                    "workflow": definition.name,
                    "previous_source": self._sources[definition.name],
                    "source": source,
                },
            )
        self._workflows[definition.name] = definition
        self._sources[definition.name] = source

    def get(self, name: str) -> WorkflowDefinition | None:
        return self._workflows.get(name)

    def require(self, name: str) -> WorkflowDefinition:
        workflow = self._workflows.get(name)
        if workflow is None:
            raise WorkflowNotFound(name, self.names())
        return workflow

    def names(self) -> list[str]:
        return sorted(self._workflows)

    def source_of(self, name: str) -> str | None:
        return self._sources.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._workflows

    def __len__(self) -> int:
        return len(self._workflows)

    def list_summaries(self) -> list[WorkflowSummary]:
        return [
            WorkflowSummary(
                name=workflow.name,
                description=workflow.description,
                version=workflow.version,
                step_count=len(workflow.steps),
                source=self._sources[workflow.name],
            )
            for workflow in sorted(self._workflows.values(), key=lambda w: w.name)
        ]

    # Loading ------------------------------------------------------------------

    def load_file(self, path: Path, source: str = "file") -> WorkflowDefinition:
        """Load one definition file and register it (errors propagate)."""
        definition = parse_workflow_file(path)
        self.register(definition, source)
        return definition

    def load_builtins(self) -> int:
        return self.load_directory(BUILTIN_DIR, "builtin")

    def load_directory(self, directory: Path, source: str) -> int:
        """Load every definition under `directory`; returns how many loaded.

        Per-file failures are recorded in `load_errors` and logged.
        """

        if not directory.is_dir():
            return 0

        loaded = 0
        for path in _iter_workflow_files(directory, MAX_DISCOVERY_DEPTH):
            try:
                self.load_file(path, source)
            except (OSError, ValueError, yaml.YAMLError) as exc:
                # pydantic's ValidationError is a ValueError.
                self.load_errors.append(WorkflowLoadError(path, source, str(exc)))
                logger.warning(
                    "Failed to load workflow file",
                    extra={"path": str(path), "source": source, "error": str(exc)},
                )
                continue
            loaded += 1
        logger.info(
            "Loaded workflow directory",
            extra={"path": str(directory), "source": source, "count": loaded},
        )
        return loaded

    def discover(
        self,
        extra_dirs: Iterable[Path] = (),
        *,
        include_builtins: bool = True,
        project_root: Path | None = None,
    ) -> list[WorkflowLoadError]:
        """Load every discovery source in precedence order.

        Returns the load errors collected by this call.
        """

        already_failed = len(self.load_errors)
        if include_builtins:
            self.load_builtins()
        self.load_directory(user_workflow_dir(), "user")
        self.load_directory((project_root or Path.cwd()) / PROJECT_DIR_NAME, "project")
        for directory in extra_dirs:
            self.load_directory(Path(directory), "custom")
        return self.load_errors[already_failed:]


def validation_errors(path: Path) -> list[str]:
    """Human-readable problems with a definition file (empty when valid)."""

    try:
        parse_workflow_file(path)
    except ValidationError as exc:
        return [
            f"{'.'.join(str(part) for part in error['loc']) or '<root>'}: {error['msg']}"
            for error in exc.errors()
        ]
    except (OSError, ValueError, yaml.YAMLError) as exc:
        return [str(exc)]
    return []


def _iter_workflow_files(directory: Path, max_depth: int) -> list[Path]:
    files: list[Path] = []
    for entry in sorted(directory.iterdir()):
        if entry.is_dir():
            if max_depth > 0 and not entry.name.startswith("."):
                files.extend(_iter_workflow_files(entry, max_depth - 1))
        elif entry.suffix.lower() in WORKFLOW_SUFFIXES:
            files.append(entry)
    return files
