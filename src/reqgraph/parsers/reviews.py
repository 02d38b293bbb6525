"""Manual review parser.

Reviews are written by hand, so TOML is accepted next to JSON::

    name = "Release review"
    date = "2024-05-01 14:30"
    reviewer = "jdoe"
    comment = "All manual requirements checked."

    [[requirements]]
    id = "ui.layout"
    comment = "Checked on desktop and mobile."

Dates are ISO-8601 or "YYYY-MM-DD HH:MM[:SS[.fff]]".
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date as date_type
from datetime import datetime
from pathlib import Path
from typing import Any

import tomlkit
from tomlkit.exceptions import TOMLKitError

from reqgraph.parsers.base import RecordError, load_json, optional, require
from reqgraph.store.models import ManualVerification, Review

REVIEW_DATE_PATTERN = re.compile(
    r"^(?P<day>\d{4}-\d{2}-\d{2}) (?P<hour>\d{2}):(?P<minute>\d{2})"
    r"(?::(?P<second>\d{2})(?:\.(?P<fraction>\d{1,6}))?)?$"
)


@dataclass(frozen=True)
class ReviewRecord:
    """A review session and the verifications it records."""

    review: Review
    verifications: tuple[ManualVerification, ...]


def parse_review_date(value: Any, source: str, where: str) -> str:
    """Normalize a review date to ISO-8601.

    Accepts datetime values (native TOML datetimes), ISO-8601 strings and
    the "YYYY-MM-DD HH:MM[:SS[.fff]]" form.
    """
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date_type):
        return datetime(value.year, value.month, value.day).isoformat()
    if not isinstance(value, str):
        raise RecordError(source, where, f"invalid review date {value!r}")

    text = value.strip()
    match = REVIEW_DATE_PATTERN.match(text)
    if match:
        text = f"{match['day']}T{match['hour']}:{match['minute']}:{match['second'] or '00'}"
        if match["fraction"]:
            text += "." + match["fraction"].ljust(6, "0")
    elif text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).isoformat()
    except ValueError:
        raise RecordError(source, where, f"invalid review date '{value}'") from None


class ReviewParser:
    """Parser for review files (TOML or JSON)."""

    SUPPORTED_EXTENSIONS = {".toml", ".json"}

    def can_parse(self, file_path: Path) -> bool:
        return file_path.suffix.lower() in self.SUPPORTED_EXTENSIONS

    def parse(self, content: str, source: str) -> ReviewRecord:
        """Parse one review.

        The format is chosen by the source's extension; TOML is assumed when
        the extension is unknown.
        """
        if source.lower().endswith(".json"):
            data = load_json(content, source)
        else:
            data = self._load_toml(content, source)
        if not isinstance(data, dict):
            raise RecordError(source, "", "expected a review object")

        name = require(data, "name", source, "review")
        where = f"review '{name}'"
        raw_date = require(data, "date", source, where, (str, date_type))
        review = Review(
            name=name,
            date=parse_review_date(raw_date, source, where),
            reviewer=require(data, "reviewer", source, where),
            comment=optional(data, "comment", source, where),
        )

        verifications: dict[str, ManualVerification] = {}
        entries = require(data, "requirements", source, where, list)
        for i, entry in enumerate(entries):
            entry_where = f"{where}.requirements[{i}]"
            req_id = require(entry, "id", source, entry_where)
            if req_id in verifications:
                raise RecordError(source, entry_where, f"requirement '{req_id}' listed twice")
            verifications[req_id] = ManualVerification(
                req_id=req_id,
                review_name=review.name,
                review_date=review.date,
                comment=optional(entry, "comment", source, entry_where),
            )
        return ReviewRecord(review=review, verifications=tuple(verifications.values()))

    def _load_toml(self, content: str, source: str) -> dict:
        try:
            return tomlkit.parse(content).unwrap()
        except TOMLKitError as e:
            raise RecordError(source, "", f"invalid TOML: {e}") from e
