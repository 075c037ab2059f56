"""`${name}` interpolation over a binding context.

Two layers:

* `VariableInterpolator` resolves references inside one string. When the whole
  string is exactly one reference the bound value keeps its type, otherwise
  every resolved value is stringified into place. Unresolved references stay
  verbatim so later steps can still fill them.
* `DeepInterpolator` walks an arbitrarily nested step input and applies the
  string interpolator to every string leaf, failing with
  `CircularInterpolationInput` instead of looping on self-referencing input.

Step outputs resolve to their full text (`${step}`, `${step.output}`,
`${step.content}`); `${step.summary}`, `${step.filePath}` and
`${step.savedTo}` expose the bounded metadata.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from agent_workflow_engine.workflow.errors import CircularInterpolationInput
from agent_workflow_engine.workflow.outputs import StepOutputReference

logger = logging.getLogger(__name__)

REFERENCE_PATTERN = re.compile(r"\$\{([^}]+)\}")

_FULL_TEXT_PROPERTIES = {"output", "content"}


class _Missing:
    def __repr__(self) -> str:
        return "<missing>"


MISSING: Any = _Missing()


@dataclass
class BindingContext:
    """Namespace visible to interpolation.

    Step outputs shadow static or caller variables with the same name.
    """

    variables: dict[str, Any] = field(default_factory=dict)
    step_outputs: dict[str, StepOutputReference] = field(default_factory=dict)

    def bind(self, name: str, value: Any) -> None:
        self.variables[name] = value

    def lookup(self, name: str) -> Any:
        if name in self.step_outputs:
            return self.step_outputs[name]
        return self.variables.get(name, MISSING)

    def names(self) -> list[str]:
        return sorted({*self.variables, *self.step_outputs})

    def snapshot(self) -> BindingContext:
        """Shallow copy used to give parallel steps a stable view."""
        return BindingContext(dict(self.variables), dict(self.step_outputs))


def find_references(template: str) -> list[str]:
    return [match.group(1).strip() for match in REFERENCE_PATTERN.finditer(template)]


def stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


class VariableInterpolator:
    """Resolve references inside a single template string."""

    async def interpolate(self, template: str, context: BindingContext) -> Any:
        matches = list(REFERENCE_PATTERN.finditer(template))
        if not matches:
            return template

        if len(matches) == 1 and matches[0].span() == (0, len(template)):
            value = await self._resolve(matches[0].group(1), context)
            return template if value is MISSING else value

        parts: list[str] = []
        last = 0
        for match in matches:
            parts.append(template[last : match.start()])
            value = await self._resolve(match.group(1), context)
            parts.append(match.group(0) if value is MISSING else stringify(value))
            last = match.end()
        parts.append(template[last:])
        return "".join(parts)

    def substitute(self, template: str, context: BindingContext) -> str:
        """Synchronous substitution for short parameter values.

        Step outputs contribute their summary here, never their full text.
        """

        def replace(match: re.Match[str]) -> str:
            base, path = _split_key(match.group(1), context)
            if base is MISSING:
                return match.group(0)
            if isinstance(base, StepOutputReference):
                return base.summary
            value = _read_path(base, path)
            return match.group(0) if value is MISSING else stringify(value)

        return REFERENCE_PATTERN.sub(replace, template)

    async def _resolve(self, key: str, context: BindingContext) -> Any:
        base, path = _split_key(key, context)
        if base is MISSING:
            logger.debug("Leaving unresolved reference in place", extra={"reference": key})
            return MISSING

        if isinstance(base, StepOutputReference):
            return await _read_reference(base, path)
        return _read_path(base, path)


def _split_key(key: str, context: BindingContext) -> tuple[Any, list[str]]:
    """Find the longest bound prefix of a dotted key.

    Step names may themselves contain dots, so `a.b.output` first tries the
    binding `a.b.output`, then `a.b` with property `output`, then `a`.
    """

    key = key.strip()
    value = context.lookup(key)
    if value is not MISSING:
        return value, []

    position = len(key)
    while (position := key.rfind(".", 0, position)) > 0:
        value = context.lookup(key[:position])
        if value is not MISSING:
            return value, key[position + 1 :].split(".")
    return MISSING, []


async def _read_reference(reference: StepOutputReference, path: list[str]) -> Any:
    if not path or (len(path) == 1 and path[0] in _FULL_TEXT_PROPERTIES):
        return await reference.get_full_content()
    if len(path) != 1:
        return MISSING

    match path[0]:
        case "summary":
            return reference.summary
        case "filePath":
            return str(reference.file_path) if reference.file_path is not None else "in-memory"
        case "savedTo":
            return reference.saved_to
        case _:
            return MISSING


def _read_path(value: Any, path: list[str]) -> Any:
    for part in path:
        if not isinstance(value, Mapping) or part not in value:
            return MISSING
        value = value[part]
    return value


class InputShape(Enum):
    """Closed set of shapes a step input value can take."""

    TEXT = "text"
    ARRAY = "array"
    MAP = "map"
    OPAQUE = "opaque"


def classify(value: Any) -> InputShape:
    # Exact type checks: subclasses and handles are opaque and never scanned.
    if isinstance(value, str):
        return InputShape.TEXT
    if type(value) in (list, tuple):
        return InputShape.ARRAY
    if type(value) is dict:
        return InputShape.MAP
    return InputShape.OPAQUE


class DeepInterpolator:
    """Interpolate every string leaf of a nested list/dict structure."""

    def __init__(self, interpolator: VariableInterpolator | None = None) -> None:
        self._strings = interpolator or VariableInterpolator()

    async def interpolate(self, value: Any, context: BindingContext) -> Any:
        return await self._visit(value, context, set(), "input")

    async def _visit(
        self, value: Any, context: BindingContext, open_ids: set[int], path: str
    ) -> Any:
        match classify(value):
            case InputShape.TEXT:
                return await self._strings.interpolate(value, context)
            case InputShape.OPAQUE:
                return value
            case InputShape.ARRAY:
                _open(value, open_ids, path)
                try:
                    items = [
                        await self._visit(item, context, open_ids, f"{path}[{index}]")
                        for index, item in enumerate(value)
                    ]
                finally:
                    open_ids.discard(id(value))
                return tuple(items) if isinstance(value, tuple) else items
            case InputShape.MAP:
                _open(value, open_ids, path)
                try:
                    return {
                        key: await self._visit(item, context, open_ids, f"{path}.{key}")
                        for key, item in value.items()
                    }
                finally:
                    open_ids.discard(id(value))


def _open(container: Any, open_ids: set[int], path: str) -> None:
    marker = id(container)
    if marker in open_ids:
        raise CircularInterpolationInput(path)
    open_ids.add(marker)
