"""
ledger_config -- single public entrypoint for runtime configuration.

Responsibility:
    Provides the ONLY way to obtain settings at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables.

Architecture position:
    Configuration -- sits above ``ledger_kernel``.  The kernel MUST NEVER
    import from ``ledger_config``; ``ledger_config.bridges`` translates
    settings into kernel objects (engine, store, services).

Failure modes:
    - ``FileNotFoundError`` -- the configured YAML file does not exist.
    - ``ValueError`` -- unknown keys or invalid values.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``ledger_config_loaded`` log entry with the source file and the
    effective database dialect, retry policy and log level.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

from ledger_config.loader import (
    ENV_CONFIG_FILE,
    apply_env_overrides,
    load_yaml_file,
    parse_settings,
)
from ledger_config.schema import (
    DatabaseSettings,
    LedgerSettings,
    LoggingSettings,
    PostingSettings,
)

_logger = logging.getLogger("ledger_kernel.config")


def get_active_config(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerSettings:
    """The ONLY public configuration entrypoint.

    Args:
        path: YAML settings file.  Defaults to ``$LEDGER_CONFIG_FILE``;
            without either, built-in defaults are used.
        environ: Environment mapping (defaults to ``os.environ``).

    Returns:
        Frozen LedgerSettings.
    """
    env = os.environ if environ is None else environ
    config_path = path or env.get(ENV_CONFIG_FILE)

    if config_path:
        settings = parse_settings(load_yaml_file(Path(config_path)), source=str(config_path))
    else:
        settings = LedgerSettings()

    settings = apply_env_overrides(settings, env)

    _logger.info(
        "ledger_config_loaded",
        extra={
            "source": settings.source or "defaults",
            "dialect": settings.database.url.split(":", 1)[0],
            "max_attempts": settings.posting.max_attempts,
            "log_level": settings.logging.level,
        },
    )
    return settings


__all__ = [
    "DatabaseSettings",
    "LedgerSettings",
    "LoggingSettings",
    "PostingSettings",
    "get_active_config",
]
