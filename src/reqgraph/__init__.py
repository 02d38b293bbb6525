"""
reqgraph - Requirement traceability graph

reqgraph links requirement identifiers to the code that references them
and the tests that exercise those references, then derives for every
requirement whether it is traced, covered, passed, manually verified or
deprecated-but-still-referenced, directly and through its hierarchy.

Facts live in a SQLite store that is reconciled batch by batch; facts that
arrive before the requirement they reference are quarantined until it
shows up.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("reqgraph")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"  # Not installed

__all__ = ["__version__"]
