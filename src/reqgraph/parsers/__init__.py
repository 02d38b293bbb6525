"""Parsers for producer records.

Each parser turns one producer file (JSON, or TOML for reviews) into fact
records ready for ingestion:

- RequirementsParser: requirement declarations with optional parents
- TracesParser: located requirement references grouped by file
- CoverageParser: test runs, test records and the traces they reached
- ReviewParser: manual review sessions and the requirements they verified

Malformed input raises RecordError naming the file and the offending entry.
"""

from reqgraph.parsers.base import RecordError, RecordParser, parse_file
from reqgraph.parsers.coverage import CoverageParser, CoverageRecords
from reqgraph.parsers.requirements import RequirementRecord, RequirementsParser
from reqgraph.parsers.reviews import ReviewParser, ReviewRecord
from reqgraph.parsers.traces import TracesParser

__all__ = [
    "CoverageParser",
    "CoverageRecords",
    "RecordError",
    "RecordParser",
    "RequirementRecord",
    "RequirementsParser",
    "ReviewParser",
    "ReviewRecord",
    "TracesParser",
    "parse_file",
]
