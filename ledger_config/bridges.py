"""
Config -> Kernel Bridges.

Functions that turn LedgerSettings into kernel objects.  They live in
ledger_config (the producer) because the kernel must NEVER import
ledger_config.

Usage:
    from ledger_config import get_active_config
    from ledger_config.bridges import build_posting_service

    settings = get_active_config()
    service = build_posting_service(settings)
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ledger_config.schema import DatabaseSettings, LedgerSettings, PostingSettings
from ledger_kernel.db.engine import build_engine, build_session_factory
from ledger_kernel.db.immutability import register_immutability_listeners
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.logging_config import configure_logging
from ledger_kernel.services.ledger_store import LedgerStore, RetryPolicy
from ledger_kernel.services.posting_service import PostingService


def build_retry_policy(posting: PostingSettings) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=posting.max_attempts,
        backoff_seconds=posting.backoff_seconds,
        backoff_multiplier=posting.backoff_multiplier,
    )


def build_engine_from_settings(database: DatabaseSettings) -> Engine:
    return build_engine(
        database.url,
        echo=database.echo,
        pool_size=database.pool_size,
        max_overflow=database.max_overflow,
        pool_timeout=database.pool_timeout,
        isolation_level=database.isolation_level,
        sqlite_busy_timeout=database.sqlite_busy_timeout,
    )


@dataclass(frozen=True)
class LedgerRuntime:
    """Everything a process needs to serve posting requests."""

    engine: Engine
    session_factory: sessionmaker[Session]
    store: LedgerStore
    posting_service: PostingService


def build_runtime(settings: LedgerSettings, clock: Clock | None = None) -> LedgerRuntime:
    """Configure logging, register ORM guards and wire the posting stack."""
    configure_logging(level=settings.logging.level)
    register_immutability_listeners()

    engine = build_engine_from_settings(settings.database)
    session_factory = build_session_factory(engine)
    store = LedgerStore(session_factory, build_retry_policy(settings.posting))
    service = PostingService(store, clock or SystemClock())
    return LedgerRuntime(
        engine=engine,
        session_factory=session_factory,
        store=store,
        posting_service=service,
    )


def build_posting_service(settings: LedgerSettings, clock: Clock | None = None) -> PostingService:
    return build_runtime(settings, clock).posting_service
