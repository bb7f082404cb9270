"""Static classification data and its loader."""

from networth_tracker.data.loader import (
    DEFAULT_TAXONOMY_PATH,
    get_equity_rule_names,
    get_taxonomy_version,
    load_taxonomy_data,
)

__all__ = [
    "DEFAULT_TAXONOMY_PATH",
    "get_equity_rule_names",
    "get_taxonomy_version",
    "load_taxonomy_data",
]
