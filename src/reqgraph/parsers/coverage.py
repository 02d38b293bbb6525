"""Coverage record parser.

Input format::

    {"test_runs": [
        {"name": "unit", "date": "2024-05-01T10:00:00+00:00",
         "expected_test_count": 2, "logs": "...", "meta": {...},
         "tests": [
            {"name": "test_login", "filepath": "tests/test_auth.py", "line": 3,
             "state": "passed",
             "covered_traces": [{"filepath": "src/auth.py", "line": 12,
                                 "req_id": "auth.login"}]}
         ]}
    ]}

``state`` is "passed", "failed", "pending" or {"skipped": {"reason": "..."}}.
``nr_of_tests`` is accepted in place of ``expected_test_count``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from reqgraph.parsers.base import RecordError, line_number, load_json, optional, require
from reqgraph.parsers.traces import normalize_filepath
from reqgraph.store.models import CoverageLink, TestOutcome, TestRecord, TestRun


@dataclass
class CoverageRecords:
    """Everything one coverage file contributes."""

    runs: list[TestRun] = field(default_factory=list)
    tests: list[TestRecord] = field(default_factory=list)
    links: list[CoverageLink] = field(default_factory=list)


def parse_iso_date(value: str, source: str, where: str) -> str:
    """Validate an ISO-8601 timestamp and return it in canonical form."""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).isoformat()
    except ValueError:
        raise RecordError(source, where, f"invalid ISO-8601 date '{value}'") from None


def parse_state(state: object, source: str, where: str) -> tuple[TestOutcome, str | None]:
    """Decode a test state into an outcome and optional skip reason."""
    if isinstance(state, str):
        try:
            return TestOutcome(state.strip().lower()), None
        except ValueError:
            pass
    elif isinstance(state, dict) and len(state) == 1:
        key, value = next(iter(state.items()))
        if key.lower() == "skipped":
            reason = None
            if isinstance(value, dict):
                reason = value.get("reason")
            elif isinstance(value, str):
                reason = value
            return TestOutcome.SKIPPED, reason
    raise RecordError(
        source,
        where,
        f"invalid test state {state!r}; expected 'passed', 'failed', 'pending' "
        "or {'skipped': {'reason': ...}}",
    )


class CoverageParser:
    """Parser for test run / coverage files."""

    def can_parse(self, file_path: Path) -> bool:
        return file_path.suffix.lower() == ".json"

    def parse(self, content: str, source: str) -> CoverageRecords:
        data = load_json(content, source)
        if not isinstance(data, dict) or not isinstance(data.get("test_runs"), list):
            raise RecordError(source, "", "expected an object with a 'test_runs' list")

        records = CoverageRecords()
        seen_runs: set[tuple[str, str]] = set()
        for i, run_entry in enumerate(data["test_runs"]):
            where = f"test_runs[{i}]"
            run = self._parse_run(run_entry, source, where)
            if run.key in seen_runs:
                raise RecordError(
                    source, where, f"duplicate test run '{run.name}' at {run.date}"
                )
            seen_runs.add(run.key)
            records.runs.append(run)

            tests = require(run_entry, "tests", source, where, list)
            seen_tests: set[str] = set()
            for j, test_entry in enumerate(tests):
                test_where = f"{where}.tests[{j}]"
                test, links = self._parse_test(test_entry, run, source, test_where)
                if test.name in seen_tests:
                    raise RecordError(
                        source, test_where, f"duplicate test '{test.name}' in run '{run.name}'"
                    )
                seen_tests.add(test.name)
                records.tests.append(test)
                records.links.extend(links)
        return records

    def _parse_run(self, entry: dict, source: str, where: str) -> TestRun:
        name = require(entry, "name", source, where)
        where = f"{where} ({name})"
        date = parse_iso_date(require(entry, "date", source, where), source, where)
        if entry.get("expected_test_count") is None and entry.get("nr_of_tests") is not None:
            expected = line_number(entry, "nr_of_tests", source, where)
        else:
            expected = line_number(entry, "expected_test_count", source, where)
        return TestRun(
            name=name,
            date=date,
            expected_test_count=expected,
            logs=optional(entry, "logs", source, where),
            meta=optional(entry, "meta", source, where, dict),
        )

    def _parse_test(
        self, entry: dict, run: TestRun, source: str, where: str
    ) -> tuple[TestRecord, list[CoverageLink]]:
        name = require(entry, "name", source, where)
        where = f"{where} ({name})"
        state = require(entry, "state", source, where, (str, dict))
        outcome, reason = parse_state(state, source, where)
        test = TestRecord(
            test_run_name=run.name,
            test_run_date=run.date,
            name=name,
            filepath=normalize_filepath(require(entry, "filepath", source, where)),
            line=line_number(entry, "line", source, where),
            outcome=outcome,
            skip_reason=reason,
        )

        links: dict[tuple, CoverageLink] = {}
        covered = optional(entry, "covered_traces", source, where, list) or []
        for k, trace_entry in enumerate(covered):
            trace_where = f"{where}.covered_traces[{k}]"
            link = CoverageLink(
                req_id=require(trace_entry, "req_id", source, trace_where),
                test_run_name=run.name,
                test_run_date=run.date,
                test_name=name,
                filepath=normalize_filepath(require(trace_entry, "filepath", source, trace_where)),
                line=line_number(trace_entry, "line", source, trace_where),
            )
            links.setdefault(link.trace_key, link)
        return test, list(links.values())
