"""
reqgraph.commands - CLI command implementations
"""

__all__ = [
    "collect",
    "completion",
    "config_cmd",
    "maintenance",
    "reconcile_cmd",
    "report_cmd",
    "status_cmd",
    "validate",
]
