"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Reads a YAML settings file and environment overrides and parses them into
the frozen ``ledger_config.schema`` dataclasses.  Callers use
``ledger_config.get_active_config()``; the functions here are its building
blocks and test seams.

Invariants enforced
-------------------
* Precedence: dataclass defaults, then the YAML file, then environment.
* Unknown sections or keys are errors, not silently ignored.
* Every parsed object is a frozen dataclass from ``schema.py``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key or invalid value  -> ``ValueError``.
"""

from __future__ import annotations

from dataclasses import fields, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from ledger_config.schema import (
    DatabaseSettings,
    LedgerSettings,
    LoggingSettings,
    PostingSettings,
)

ENV_CONFIG_FILE = "LEDGER_CONFIG_FILE"
ENV_DATABASE_URL = "LEDGER_DATABASE_URL"
ENV_LOG_LEVEL = "LEDGER_LOG_LEVEL"

_SECTIONS = {
    "database": DatabaseSettings,
    "posting": PostingSettings,
    "logging": LoggingSettings,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def _parse_section(name: str, cls: type, data: Any) -> Any:
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ValueError(f"Section '{name}' must be a mapping")
    allowed = {f.name for f in fields(cls)}
    unknown = set(data) - allowed
    if unknown:
        raise ValueError(f"Unknown keys in '{name}': {', '.join(sorted(unknown))}")
    try:
        return cls(**data)
    except TypeError as e:
        raise ValueError(f"Invalid '{name}' section: {e}") from e


def parse_settings(data: Mapping[str, Any], source: str | None = None) -> LedgerSettings:
    """Parse a settings mapping (as loaded from YAML)."""
    unknown = set(data) - set(_SECTIONS)
    if unknown:
        raise ValueError(f"Unknown configuration sections: {', '.join(sorted(unknown))}")
    return LedgerSettings(
        database=_parse_section("database", DatabaseSettings, data.get("database")),
        posting=_parse_section("posting", PostingSettings, data.get("posting")),
        logging=_parse_section("logging", LoggingSettings, data.get("logging")),
        source=source,
    )


def apply_env_overrides(settings: LedgerSettings, environ: Mapping[str, str]) -> LedgerSettings:
    """Environment variables win over file values."""
    if environ.get(ENV_DATABASE_URL):
        settings = replace(
            settings,
            database=replace(settings.database, url=environ[ENV_DATABASE_URL]),
        )
    if environ.get(ENV_LOG_LEVEL):
        settings = replace(
            settings,
            logging=LoggingSettings(level=environ[ENV_LOG_LEVEL]),
        )
    return settings
