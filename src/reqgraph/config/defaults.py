"""
reqgraph.config.defaults - Default configuration values.
"""

CONFIG_FILENAME = ".reqgraph.toml"

ENV_PREFIX = "REQGRAPH_"

DEFAULT_CONFIG = {
    "database": {
        # Relative paths are resolved against the config file's directory
        "url": "sqlite://reqgraph.db",
    },
    "hierarchy": {
        # Derive a missing parent from the nearest existing id prefix
        "derive_from_id": True,
        "separator": ".",
    },
    "report": {
        "format": "json",  # json | html
        "output": "",  # empty = stdout
    },
    "validation": {
        # Quarantined facts make `reqgraph validate` fail
        "fail_on_unrelated": False,
    },
}

REPORT_FORMATS = ("json", "html")
