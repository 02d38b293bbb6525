"""Requirement declaration parser.

Input format::

    {"requirements": [
        {"id": "auth.login", "origin": "https://wiki/auth", "title": "Login",
         "annotation": "manual", "parent_ids": ["auth"]}
    ]}

``link`` is accepted as an alias of ``origin``. Boolean ``manual`` /
``deprecated`` flags are accepted in place of ``annotation``.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from reqgraph.parsers.base import RecordError, load_json, optional, require
from reqgraph.store.models import Annotation, Requirement


@dataclass(frozen=True)
class RequirementRecord:
    """A parsed requirement plus its declared parents.

    parent_ids is None when the producer did not declare parents, which
    lets ingestion fall back to deriving them from the id.
    """

    requirement: Requirement
    parent_ids: tuple[str, ...] | None = None


class RequirementsParser:
    """Parser for requirement declaration files."""

    def can_parse(self, file_path: Path) -> bool:
        return file_path.suffix.lower() == ".json"

    def parse(self, content: str, source: str) -> list[RequirementRecord]:
        """Parse requirement declarations.

        Args:
            content: JSON file content.
            source: Label used in error messages.

        Returns:
            Records in file order.

        Raises:
            RecordError: On malformed entries or duplicate ids.
        """
        data = load_json(content, source)
        if not isinstance(data, dict) or not isinstance(data.get("requirements"), list):
            raise RecordError(source, "", "expected an object with a 'requirements' list")

        records: list[RequirementRecord] = []
        seen: set[str] = set()
        for i, entry in enumerate(data["requirements"]):
            where = f"requirements[{i}]"
            record = self._parse_entry(entry, source, where)
            req_id = record.requirement.id
            if req_id in seen:
                raise RecordError(source, where, f"duplicate requirement id '{req_id}'")
            seen.add(req_id)
            records.append(record)
        return records

    def _parse_entry(self, entry: dict, source: str, where: str) -> RequirementRecord:
        req_id = require(entry, "id", source, where).strip()
        if not req_id:
            raise RecordError(source, where, "requirement id must not be empty")
        where = f"{where} ({req_id})"

        if entry.get("origin") is None and entry.get("link") is not None:
            origin = require(entry, "link", source, where)
        else:
            origin = require(entry, "origin", source, where)
        title = optional(entry, "title", source, where) or ""

        try:
            annotation = Annotation.parse(optional(entry, "annotation", source, where))
        except ValueError as e:
            raise RecordError(source, where, str(e)) from e
        if annotation is None:
            if entry.get("deprecated") is True:
                annotation = Annotation.DEPRECATED
            elif entry.get("manual") is True:
                annotation = Annotation.MANUAL

        parent_ids = None
        raw_parents = optional(entry, "parent_ids", source, where, list)
        if raw_parents is not None:
            for parent in raw_parents:
                if not isinstance(parent, str) or not parent:
                    raise RecordError(source, where, "parent_ids must be non-empty strings")
            if req_id in raw_parents:
                raise RecordError(source, where, f"requirement '{req_id}' lists itself as parent")
            parent_ids = tuple(dict.fromkeys(raw_parents))

        return RequirementRecord(
            requirement=Requirement(id=req_id, origin=origin, title=title, annotation=annotation),
            parent_ids=parent_ids,
        )
