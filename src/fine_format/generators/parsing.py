"""Recovery parser for structured LLM output.

LLM responses that are supposed to be a JSON array of records frequently
arrive wrapped in Markdown fences, surrounded by narration, with trailing
commas, or cut off mid-object by the token budget. This module recovers
the largest plausible set of records from such text.

Strategies are attempted in order and the first one yielding at least one
valid record wins:

1. Fence stripping + direct parse.
2. Boundary extraction (first ``[`` to last ``]``).
3. Syntax repair (trailing commas, control characters, unbalanced closers).
4. Per-object extraction with a string-aware brace scanner.
5. Pattern-based salvage of field values, one record chunk at a time.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal, Protocol

from fine_format.core.exceptions import ParseError

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

FieldKind = Literal["string", "boolean", "number", "array"]

_FENCE_PATTERN = re.compile(r"```[a-zA-Z0-9_-]*\s*\n?(.*?)```", re.DOTALL)
_OPEN_FENCE_PATTERN = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n?")
_TRAILING_COMMA_PATTERN = re.compile(r",\s*([\]}])")
_CONTROL_CHARS_PATTERN = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_JSON_STRING = r'"((?:[^"\\]|\\.)*)"'

_CLOSERS = {"{": "}", "[": "]"}


class Shape(Protocol):
    """What the parser needs to know about the expected items."""

    def validate(self, item: Any) -> Any | None:
        """Return the normalized item, or None when it does not fit."""
        ...

    def salvage(self, text: str) -> list[Any]:
        """Extract candidate items directly from raw text (last resort)."""
        ...


@dataclass(frozen=True)
class FieldSpec:
    """One field of an expected record.

    Attributes:
        name: Key of the field in the normalized record.
        kind: Expected value kind.
        aliases: Alternative keys accepted in the raw output.
        required: Whether a record missing this field is discarded.
    """

    name: str
    kind: FieldKind = "string"
    aliases: tuple[str, ...] = ()
    required: bool = True

    @property
    def keys(self) -> tuple[str, ...]:
        """All accepted keys, canonical name first."""
        return (self.name, *self.aliases)


@dataclass(frozen=True)
class RecordShape:
    """Shape validator for JSON object records.

    Example:
        >>> shape = RecordShape(
        ...     fields=(
        ...         FieldSpec("user", aliases=("question",)),
        ...         FieldSpec("model", aliases=("answer",)),
        ...         FieldSpec("isCorrect", kind="boolean", required=False),
        ...     )
        ... )
        >>> shape.validate({"question": "Q?", "answer": "A."})
        {'user': 'Q?', 'model': 'A.'}
    """

    fields: tuple[FieldSpec, ...]

    def validate(self, item: Any) -> dict[str, Any] | None:
        if not isinstance(item, dict):
            return None

        record: dict[str, Any] = {}
        for spec in self.fields:
            raw = next((item[key] for key in spec.keys if key in item), None)
            value = _coerce(raw, spec.kind)
            if value is None:
                if spec.required:
                    return None
                continue
            record[spec.name] = value
        return record

    def salvage(self, text: str) -> list[Any]:
        # Each record is salvaged from its own chunk so optional values stay with their record
        records: list[dict[str, Any]] = []
        for chunk in _record_chunks(text):
            records.extend(self._salvage_chunk(chunk))
        return records

    def _salvage_chunk(self, chunk: str) -> list[dict[str, Any]]:
        columns: dict[str, list[Any]] = {spec.name: _find_values(chunk, spec) for spec in self.fields}
        required = {spec.name for spec in self.fields if spec.required}
        if not required:
            return []

        count = min(len(columns[name]) for name in required)
        # Optional values are only attributed when they line up one per record
        aligned = {name: column for name, column in columns.items() if name in required or len(column) == count}
        return [{name: column[index] for name, column in aligned.items()} for index in range(count)]


@dataclass(frozen=True)
class StringListShape:
    """Shape validator for JSON arrays of non-empty strings."""

    max_length: int | None = field(default=None)

    def validate(self, item: Any) -> str | None:
        if not isinstance(item, str):
            return None
        item = item.strip()
        if not item or (self.max_length is not None and len(item) > self.max_length):
            return None
        return item

    def salvage(self, text: str) -> list[Any]:
        start = text.find("[")
        if start == -1:
            return []
        return [_decode_string(match) for match in re.findall(_JSON_STRING, text[start:])]


class RecoveryParser:
    """Recover records from malformed LLM output.

    Attributes:
        shape: Validator for individual items.

    Example:
        >>> parser = RecoveryParser(StringListShape())
        >>> parser.parse('Sure! ```json\\n["Finance", "Risk",]\\n```')
        ['Finance', 'Risk']
    """

    def __init__(self, shape: Shape) -> None:
        self.shape = shape
        self._strategies: list[tuple[str, Callable[[str], list[Any]]]] = [
            ("direct", _direct_parse),
            ("boundary", _boundary_parse),
            ("repair", _repair_parse),
            ("objects", _object_scan),
            ("salvage", self.shape.salvage),
        ]

    def parse(self, text: str) -> list[Any]:
        """Parse raw LLM text into validated items.

        Args:
            text: The raw response text.

        Returns:
            Non-empty list of normalized items.

        Raises:
            ParseError: If no strategy recovers a single valid item.
        """
        for name, strategy in self._strategies:
            candidates = strategy(text)
            records = [record for record in map(self.shape.validate, candidates) if record is not None]
            if records:
                logger.debug(f"Recovered {len(records)} record(s) with '{name}' strategy")
                return records
            logger.debug(f"Strategy '{name}' recovered nothing, trying next")

        logger.warning(f"Could not recover any record from response ({len(text)} chars)")
        msg = "No valid records could be recovered from the response"
        raise ParseError(msg, text=text)


def parse_records(text: str, shape: Shape) -> list[Any]:
    """Recover validated records from raw LLM text.

    Args:
        text: The raw response text.
        shape: Item validator.

    Returns:
        Non-empty list of normalized items.

    Raises:
        ParseError: If no record can be recovered.
    """
    return RecoveryParser(shape).parse(text)


def parse_string_list(text: str) -> list[str]:
    """Recover a list of non-empty strings from raw LLM text.

    Raises:
        ParseError: If no string can be recovered.
    """
    return RecoveryParser(StringListShape()).parse(text)


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


def _loads(text: str) -> Any:
    return json.loads(text, strict=False)


def _as_items(value: Any) -> list[Any]:
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        # A wrapper object such as {"pairs": [...]} holds the array we want
        for inner in value.values():
            if isinstance(inner, list) and inner:
                return inner
        return [value]
    return []


def strip_fences(text: str) -> str:
    """Remove Markdown code fences, including an unterminated opening one."""
    match = _FENCE_PATTERN.search(text)
    if match:
        return match.group(1).strip()
    stripped = _OPEN_FENCE_PATTERN.sub("", text, count=1)
    return stripped.strip()


def _direct_parse(text: str) -> list[Any]:
    try:
        return _as_items(_loads(strip_fences(text)))
    except (ValueError, RecursionError):
        return []


def _boundary_parse(text: str) -> list[Any]:
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end <= start:
        return []
    try:
        return _as_items(_loads(text[start : end + 1]))
    except (ValueError, RecursionError):
        return []


def _repair_parse(text: str) -> list[Any]:
    body = strip_fences(text)
    start = body.find("[")
    if start != -1:
        body = body[start:]
    body = _CONTROL_CHARS_PATTERN.sub("", body)

    for candidate in (body, _cut_to_last_complete(body)):
        if not candidate:
            continue
        repaired = _balance(_TRAILING_COMMA_PATTERN.sub(r"\1", candidate))
        if repaired is None:
            # Cut off inside a string: the last record is incomplete
            continue
        repaired = _TRAILING_COMMA_PATTERN.sub(r"\1", repaired)
        try:
            return _as_items(_loads(repaired))
        except (ValueError, RecursionError):
            continue
    return []


def _object_scan(text: str) -> list[Any]:
    spans: list[tuple[int, int]] = []
    starts: list[int] = []
    in_string = False
    escaped = False

    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == "{":
            starts.append(index)
        elif char == "}" and starts:
            spans.append((starts.pop(), index + 1))

    objects: list[Any] = []
    accepted_end = -1
    for start, end in sorted(spans):
        if start < accepted_end:
            continue
        chunk = text[start:end]
        try:
            value = _loads(chunk)
        except (ValueError, RecursionError):
            try:
                value = _loads(_TRAILING_COMMA_PATTERN.sub(r"\1", chunk))
            except (ValueError, RecursionError):
                continue
        if isinstance(value, dict) and not _is_wrapper(value):
            objects.append(value)
            accepted_end = end
    return objects


def _is_wrapper(value: dict[str, Any]) -> bool:
    return any(isinstance(inner, list) and inner and isinstance(inner[0], dict) for inner in value.values())


def _balance(text: str) -> str | None:
    """Append missing closers, or return None when the text ends inside a string."""
    stack: list[str] = []
    in_string = False
    escaped = False

    for char in text:
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in _CLOSERS:
            stack.append(_CLOSERS[char])
        elif char in ("}", "]") and stack and stack[-1] == char:
            stack.pop()

    if in_string:
        return None
    text = text.rstrip().rstrip(",")
    return text + "".join(reversed(stack))


def _cut_to_last_complete(text: str) -> str:
    """Cut after the last object that closed directly inside the outer array."""
    depth = 0
    in_string = False
    escaped = False
    cut = -1

    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in "{[":
            depth += 1
        elif char in "}]":
            depth -= 1
            if depth == 1:
                cut = index + 1

    return text[:cut] if cut != -1 else ""


# ---------------------------------------------------------------------------
# Value coercion and salvage helpers
# ---------------------------------------------------------------------------


def _coerce(value: Any, kind: FieldKind) -> Any | None:
    if value is None:
        return None

    if kind == "string":
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        if not isinstance(value, str):
            return None
        value = value.strip()
        return value or None

    if kind == "boolean":
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            return value.strip().lower() == "true"
        return None

    if kind == "number":
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return float(value)
        if isinstance(value, str):
            try:
                return float(value.strip())
            except ValueError:
                return None
        return None

    if isinstance(value, list):
        return [str(item).strip() for item in value if isinstance(item, (str, int, float)) and str(item).strip()]
    if isinstance(value, str) and value.strip():
        return [value.strip()]
    return None


def _find_values(text: str, spec: FieldSpec) -> list[Any]:
    keys = "|".join(re.escape(key) for key in spec.keys)
    prefix = rf'"(?:{keys})"\s*:\s*'

    if spec.kind == "boolean":
        return [match == "true" for match in re.findall(prefix + r"(true|false)", text)]
    if spec.kind == "number":
        return [float(match) for match in re.findall(prefix + r"(-?\d+(?:\.\d+)?)", text)]
    if spec.kind == "array":
        return [
            [_decode_string(item) for item in re.findall(_JSON_STRING, body)]
            for body in re.findall(prefix + r"\[([^\]]*)\]", text)
        ]
    return [_decode_string(match) for match in re.findall(prefix + _JSON_STRING, text)]


def _decode_string(raw: str) -> str:
    try:
        return str(json.loads(f'"{raw}"', strict=False))
    except ValueError:
        return raw


def _record_chunks(text: str) -> list[str]:
    """Split text at every ``{`` outside a string; the whole text when there is none."""
    starts: list[int] = []
    in_string = False
    escaped = False

    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            starts.append(index)

    if not starts:
        return [text]
    return [text[start:end] for start, end in zip(starts, [*starts[1:], len(text)])]
