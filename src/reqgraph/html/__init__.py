"""HTML rendering of traceability reports."""

from reqgraph.html.generator import HTMLGenerator

__all__ = ["HTMLGenerator"]
