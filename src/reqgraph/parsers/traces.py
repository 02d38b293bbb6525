"""Trace record parser.

Input format::

    {"files": [
        {"filepath": "src/auth.py",
         "traces": [{"ids": ["auth.login"], "line": 12, "item_name": "login",
                     "line_span": {"start": 13, "end": 40}}]}
    ]}

The older top-level key ``traces`` is accepted in place of ``files``.
One entry naming several ids yields one Trace per id.
"""

from __future__ import annotations

from pathlib import Path, PurePosixPath

from reqgraph.parsers.base import RecordError, line_number, load_json, optional, require
from reqgraph.store.models import Trace


def normalize_filepath(filepath: str) -> str:
    """Use forward slashes and drop a leading "./" so equal paths compare equal."""
    path = PurePosixPath(filepath.replace("\\", "/"))
    return str(path)


class TracesParser:
    """Parser for trace files."""

    def can_parse(self, file_path: Path) -> bool:
        return file_path.suffix.lower() == ".json"

    def parse(self, content: str, source: str) -> list[Trace]:
        """Parse trace records.

        Raises:
            RecordError: On malformed entries.
        """
        data = load_json(content, source)
        files = None
        if isinstance(data, dict):
            files = data.get("files", data.get("traces"))
        if not isinstance(files, list):
            raise RecordError(source, "", "expected an object with a 'files' list")

        traces: dict[tuple[str, str, int], Trace] = {}
        for i, file_entry in enumerate(files):
            where = f"files[{i}]"
            filepath = normalize_filepath(require(file_entry, "filepath", source, where))
            entries = require(file_entry, "traces", source, where, list)
            for j, entry in enumerate(entries):
                entry_where = f"{where}.traces[{j}] ({filepath})"
                for trace in self._parse_entry(entry, filepath, source, entry_where):
                    # the same id at the same line counts once
                    traces.setdefault(trace.key, trace)
        return list(traces.values())

    def _parse_entry(self, entry: dict, filepath: str, source: str, where: str) -> list[Trace]:
        ids = require(entry, "ids", source, where, list)
        if not ids or not all(isinstance(i, str) and i for i in ids):
            raise RecordError(source, where, "ids must be a non-empty list of requirement ids")
        line = line_number(entry, "line", source, where)
        item_name = optional(entry, "item_name", source, where)

        span_start = span_end = None
        span = optional(entry, "line_span", source, where, dict)
        if span is not None:
            span_start = line_number(span, "start", source, f"{where}.line_span")
            span_end = line_number(span, "end", source, f"{where}.line_span")
            if span_end < span_start:
                raise RecordError(source, where, "line_span end lies before start")

        return [
            Trace(
                req_id=req_id,
                filepath=filepath,
                line=line,
                item_name=item_name,
                span_start=span_start,
                span_end=span_end,
            )
            for req_id in dict.fromkeys(ids)
        ]
