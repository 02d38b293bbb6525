"""HTML Generator for traceability reports.

This module renders a ReportContext as a single self-contained HTML page.
Uses Jinja2 templates shipped in reqgraph/html/templates.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from reqgraph import __version__

if TYPE_CHECKING:
    from reqgraph.report import ReportContext, RequirementInfo


@dataclass
class TreeRow:
    """Represents a single row in the requirement tree."""

    id: str
    title: str
    origin: str
    depth: int
    parent_id: str | None
    has_children: bool
    traced: bool
    fully_traced: bool
    covered: bool
    passed: bool
    failed: bool
    deprecated: bool
    manual: bool
    verified: bool
    valid: bool
    repeated: bool = False

    @property
    def state(self) -> str:
        """Single keyword used for row styling."""
        if not self.valid:
            return "invalid"
        if self.failed:
            return "failed"
        if self.passed:
            return "passed"
        if self.covered or self.traced:
            return "partial"
        return "none"


def ratio_percent(value: float) -> str:
    return f"{value * 100:.1f}%"


class HTMLGenerator:
    """Generates an HTML report from a ReportContext.

    Args:
        report: The report to render.
        version: Version string for display (defaults to the reqgraph version).
    """

    def __init__(self, report: ReportContext, version: str | None = None) -> None:
        self.report = report
        self.version = version if version is not None else __version__

    def generate(self) -> str:
        """Generate the complete HTML report.

        Returns:
            Complete HTML document as string.
        """
        try:
            from jinja2 import Environment, PackageLoader, select_autoescape

            env = Environment(
                loader=PackageLoader("reqgraph.html", "templates"),
                autoescape=select_autoescape(["html", "xml", "j2"]),
            )
            env.filters["percent"] = ratio_percent
            template = env.get_template("report.html.j2")
        except ImportError:
            raise ImportError(
                "HTMLGenerator requires the html extra. "
                "Install with: pip install reqgraph[html]"
            )

        return template.render(
            report=self.report,
            overview=self.report.overview,
            rows=self._build_tree_rows(),
            tests=self.report.tests,
            reviews=self.report.reviews,
            unrelated=self.report.unrelated,
            diagnostics=self.report.diagnostics,
            validation=self.report.validation,
            version=self.version,
        )

    def _build_tree_rows(self) -> list[TreeRow]:
        """Flatten the hierarchy depth-first, roots first.

        A requirement with several parents appears under each parent, but
        its subtree is only expanded the first time; later rows are marked
        repeated.
        """
        by_id = {info.id: info for info in self.report.requirements}
        roots = sorted(info.id for info in self.report.requirements if not info.parents)
        rows: list[TreeRow] = []
        expanded: set[str] = set()

        stack: list[tuple[str, int, str | None]] = [(r, 0, None) for r in reversed(roots)]
        while stack:
            req_id, depth, parent_id = stack.pop()
            info = by_id[req_id]
            if req_id in expanded:
                rows.append(self._row(info, depth, parent_id, repeated=True))
                continue
            expanded.add(req_id)
            rows.append(self._row(info, depth, parent_id))
            for child in reversed(info.children):
                stack.append((child, depth + 1, req_id))
        return rows

    @staticmethod
    def _row(
        info: RequirementInfo, depth: int, parent_id: str | None, repeated: bool = False
    ) -> TreeRow:
        return TreeRow(
            id=info.id,
            title=info.title,
            origin=info.origin,
            depth=depth,
            parent_id=parent_id,
            has_children=bool(info.children),
            traced=info.trace.traced,
            fully_traced=info.trace.fully_traced,
            covered=info.coverage.covered,
            passed=info.coverage.passed,
            failed=bool(info.coverage.failed),
            deprecated=info.deprecated,
            manual=info.manual,
            verified=info.verified,
            valid=info.valid,
            repeated=repeated,
        )
