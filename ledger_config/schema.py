"""
Ledger settings schema.

Typed, frozen view of the runtime configuration.  The loader parses YAML and
environment overrides into these types; bridges turn them into kernel
objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_ISOLATION_LEVELS = ("READ COMMITTED", "REPEATABLE READ", "SERIALIZABLE")


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection and transaction settings."""

    url: str = "sqlite:///ledger.db"
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    isolation_level: str = "REPEATABLE READ"
    sqlite_busy_timeout: float = 30.0

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("database.url must not be empty")
        if self.isolation_level not in _ISOLATION_LEVELS:
            raise ValueError(
                f"database.isolation_level must be one of {', '.join(_ISOLATION_LEVELS)}"
            )
        if self.pool_size < 1:
            raise ValueError("database.pool_size must be at least 1")
        if self.max_overflow < 0:
            raise ValueError("database.max_overflow must not be negative")
        if self.pool_timeout < 0 or self.sqlite_busy_timeout < 0:
            raise ValueError("timeouts must not be negative")


@dataclass(frozen=True)
class PostingSettings:
    """Retry policy for transient storage failures during posting."""

    max_attempts: int = 3
    backoff_seconds: float = 0.05
    backoff_multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("posting.max_attempts must be at least 1")
        if self.backoff_seconds < 0:
            raise ValueError("posting.backoff_seconds must not be negative")
        if self.backoff_multiplier < 1:
            raise ValueError("posting.backoff_multiplier must be at least 1")


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"

    def __post_init__(self) -> None:
        if self.level.upper() not in _LOG_LEVELS:
            raise ValueError(f"logging.level must be one of {', '.join(_LOG_LEVELS)}")
        object.__setattr__(self, "level", self.level.upper())


@dataclass(frozen=True)
class LedgerSettings:
    """Complete runtime configuration."""

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    posting: PostingSettings = field(default_factory=PostingSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    source: str | None = None
