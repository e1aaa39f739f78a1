"""
PostingService -- the entry point for validating, closing and reopening dates.

Responsibility:
    The interface request handlers, the CLI and batch jobs call.  Wires the
    LedgerStore, PostingEngine and ClosingPeriodCoordinator together and
    wraps every call in request-scoped structured logging.

Architecture position:
    Kernel > Services -- outermost kernel service.  Owns no transaction
    itself; every operation runs through ``LedgerStore.with_transaction``.

Operations:
    validate_batch(entry_ids, cutoff_date) -> ValidationReport
    post_period(upto_date, actor_id)       -> PostingSummary
    unpost_period(batch_date, actor_id)    -> UnpostingSummary
    closed_dates()                         -> list[date]

Failure modes:
    post_period: AlreadyPostedForDateError, NoPendingEntriesError,
        ValidationFailedError(rejections), PostingFailedError(cause).
    unpost_period: NothingToUnpostError, PostingIntegrityError,
        PostingFailedError(cause).
    Every LedgerKernelError carries ``code`` and ``http_status`` for the
    boundary to translate.

Audit relevance:
    Every call binds correlation_id, actor_id and batch_date into LogContext
    and logs ``*_started`` / ``*_completed`` (with duration_ms) or
    ``*_failed`` (with exc_info and the exception's structured fields).
"""

from __future__ import annotations

import time
from datetime import date
from typing import Callable, Sequence, TypeVar
from uuid import UUID, uuid4

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import PostingSummary, UnpostingSummary, ValidationReport
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.services.ledger_store import LedgerStore
from ledger_kernel.services.period_close_coordinator import ClosingPeriodCoordinator
from ledger_kernel.services.posting_engine import PostingEngine

logger = get_logger("services.posting_service")

T = TypeVar("T")


class PostingService:
    """
    Posting Service Interface.

    Contract:
        Each mutating call is one atomic transaction: it either completes
        and commits, or raises and leaves storage untouched.

    Guarantees:
        - Closing a date twice posts it once; the second call raises
          AlreadyPostedForDateError.
        - unpost_period(D) after post_period(D) restores every balance.
    """

    def __init__(
        self,
        store: LedgerStore,
        clock: Clock | None = None,
        engine: PostingEngine | None = None,
        coordinator: ClosingPeriodCoordinator | None = None,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._engine = engine or PostingEngine(store, self._clock)
        self._coordinator = coordinator or ClosingPeriodCoordinator(store, self._engine)

    @property
    def engine(self) -> PostingEngine:
        return self._engine

    def validate_batch(
        self,
        entry_ids: Sequence[UUID],
        cutoff_date: date,
    ) -> ValidationReport:
        """Report which entries could be posted up to cutoff_date.  Writes nothing."""
        return self._run(
            "validate_batch",
            None,
            cutoff_date,
            lambda: self._store.with_transaction(
                lambda tx: self._engine.check_batch(tx, entry_ids, cutoff_date),
                operation="validate_batch",
            ),
            lambda report: {
                "accepted_count": len(report.accepted),
                "rejected_count": len(report.rejected),
            },
        )

    def post_period(self, upto_date: date, actor_id: UUID) -> PostingSummary:
        """Close every pending entry dated on or before upto_date."""
        return self._run(
            "post_period",
            actor_id,
            upto_date,
            lambda: self._coordinator.close_period(upto_date, actor_id),
            lambda summary: {
                "posted_count": summary.posted_count,
                "total_debit": str(summary.total_debit),
                "total_credit": str(summary.total_credit),
                "batch_dates": [d.isoformat() for d in summary.batch_dates],
            },
        )

    def unpost_period(self, batch_date: date, actor_id: UUID) -> UnpostingSummary:
        """Reopen one closed date."""
        return self._run(
            "unpost_period",
            actor_id,
            batch_date,
            lambda: self._coordinator.reopen_period(batch_date, actor_id),
            lambda summary: {
                "unposted_count": summary.unposted_count,
                "total_debit": str(summary.total_debit),
                "total_credit": str(summary.total_credit),
            },
        )

    def closed_dates(self) -> list[date]:
        """Every date that currently has a posting batch, ascending."""
        return self._store.with_transaction(
            lambda tx: tx.list_posting_batch_dates(),
            operation="closed_dates",
        )

    def _run(
        self,
        operation: str,
        actor_id: UUID | None,
        batch_date: date,
        call: Callable[[], T],
        describe: Callable[[T], dict],
    ) -> T:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(actor_id) if actor_id is not None else None,
            batch_date=batch_date.isoformat(),
        ):
            logger.info(f"{operation}_started")
            t0 = time.monotonic()
            try:
                result = call()
            except Exception:
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                logger.error(
                    f"{operation}_failed",
                    extra={"duration_ms": duration_ms},
                    exc_info=True,
                )
                raise
            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            logger.info(
                f"{operation}_completed",
                extra={"duration_ms": duration_ms, **describe(result)},
            )
            return result
