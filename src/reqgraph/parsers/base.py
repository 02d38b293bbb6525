"""Shared helpers for producer record parsers."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Protocol, runtime_checkable


class RecordError(ValueError):
    """A producer record could not be parsed.

    Attributes:
        source: File (or other label) the record came from.
        entry: Location of the offending entry, e.g. "requirements[3]".
    """

    def __init__(self, source: str, entry: str, message: str) -> None:
        self.source = source
        self.entry = entry
        where = f"{source}: {entry}" if entry else source
        super().__init__(f"{where}: {message}")


@runtime_checkable
class RecordParser(Protocol):
    """Interface shared by all producer record parsers."""

    def parse(self, content: str, source: str) -> Any:
        """Parse file content into records.

        Args:
            content: Raw file content.
            source: Label used in error messages (usually the file path).
        """
        ...

    def can_parse(self, file_path: Path) -> bool:
        ...


def load_json(content: str, source: str) -> Any:
    """Decode JSON content, wrapping decode errors in RecordError."""
    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise RecordError(source, f"line {e.lineno}", f"invalid JSON: {e.msg}") from e


def require(data: dict, key: str, source: str, entry: str, kind: type | tuple = str) -> Any:
    """Fetch a mandatory field of a record and check its type."""
    if not isinstance(data, dict):
        raise RecordError(source, entry, "expected an object")
    if key not in data or data[key] is None:
        raise RecordError(source, entry, f"missing field '{key}'")
    value = data[key]
    # bool is an int subclass; a boolean is never a valid line or count
    if kind is int and isinstance(value, bool):
        raise RecordError(source, entry, f"field '{key}' must be an integer")
    if not isinstance(value, kind):
        raise RecordError(source, entry, f"field '{key}' has invalid type {type(value).__name__}")
    return value


def optional(data: dict, key: str, source: str, entry: str, kind: type | tuple = str) -> Any:
    """Fetch an optional field, returning None when absent."""
    if data.get(key) is None:
        return None
    return require(data, key, source, entry, kind)


def line_number(data: dict, key: str, source: str, entry: str) -> int:
    value = require(data, key, source, entry, int)
    if value < 0:
        raise RecordError(source, entry, f"field '{key}' must not be negative")
    return value


def parse_file(parser: RecordParser, path: Path) -> Any:
    """Read a file and run a parser over it."""
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise RecordError(str(path), "", f"cannot read file: {e.strerror or e}") from e
    return parser.parse(content, str(path))
