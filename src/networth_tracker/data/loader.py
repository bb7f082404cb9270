"""Taxonomy configuration loader."""

from pathlib import Path
from typing import Any

import yaml

DEFAULT_TAXONOMY_PATH = Path(__file__).parent / "taxonomy.yaml"


def load_taxonomy_data(path: str | Path | None = None) -> dict[str, Any]:
    """
    Load raw taxonomy data from a YAML file.

    Parameters
    ----------
    path : str | Path | None
        YAML file to read. Uses the packaged taxonomy.yaml if None.

    Returns
    -------
    dict[str, Any]
        Parsed taxonomy document with 'version', 'stablecoins' and
        'equity_rules' keys

    Raises
    ------
    FileNotFoundError
        If the file does not exist

    """
    path = Path(path) if path else DEFAULT_TAXONOMY_PATH
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def get_taxonomy_version(path: str | Path | None = None) -> str:
    """
    Get the version tag of a taxonomy file.

    Parameters
    ----------
    path : str | Path | None
        YAML file to read

    Returns
    -------
    str
        Version string, or 'unversioned' when the file has none

    """
    return str(load_taxonomy_data(path).get("version", "unversioned"))


def get_equity_rule_names(path: str | Path | None = None) -> list[str]:
    """
    Get equity rule names in evaluation order.

    Parameters
    ----------
    path : str | Path | None
        YAML file to read

    Returns
    -------
    list[str]
        Rule names, first match wins

    """
    return [rule["name"] for rule in load_taxonomy_data(path).get("equity_rules", [])]
