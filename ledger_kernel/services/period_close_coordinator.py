"""
ClosingPeriodCoordinator -- close and reopen ledger dates.

Responsibility:
    Turns "close everything pending up to date D" into posting batches:
    selects the pending entries, groups them by ledger date (one posting
    batch per date) and drives the PostingEngine for every group inside ONE
    transaction.  Reopening delegates a single date to the engine's reverse
    operation.

Architecture position:
    Kernel > Services -- imperative shell.  Called by PostingService; calls
    PostingEngine and LedgerStore.

Invariants enforced:
    - A close is all-or-nothing across every date it covers: one rejected
      entry on any date aborts the whole close (policy), and a storage
      failure rolls every group back.
    - Closing a date that already has a posting batch is rejected with
      AlreadyPostedForDateError, never re-applied.

Failure modes:
    - AlreadyPostedForDateError: ``upto_date`` (or a grouped date) is closed,
      or nothing is PENDING and an earlier date in the range is closed.
    - NoPendingEntriesError: nothing PENDING on or before ``upto_date`` and
      nothing closed there either.
    - ValidationFailedError: with the rejections of every group combined.
    - NothingToUnpostError: reopening a date with no POSTED entries.
    - PostingFailedError: storage failure after retries.

Audit relevance:
    Logs ``period_close_groups_selected`` with the dates covered.  The
    PostingService wrapper logs start/completion with duration.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from uuid import UUID

from ledger_kernel.domain.dtos import LedgerEntryInfo, PostingSummary, Rejection, UnpostingSummary
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import (
    AlreadyPostedForDateError,
    NoPendingEntriesError,
    ValidationFailedError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.services.ledger_store import LedgerStore, LedgerTransaction
from ledger_kernel.services.posting_engine import PostingEngine

logger = get_logger("services.period_close_coordinator")


class ClosingPeriodCoordinator:
    """
    Period close over a date range, reopen of a single date.

    Contract:
        ``close_period`` posts every live PENDING entry dated on or before
        ``upto_date`` as one batch per ledger date, atomically.  The
        summary's ``batch_date`` is the latest date it closed.

    Non-goals:
        - Does NOT post the valid subset of a date with rejected entries.
        - Does NOT require reopening dates in any particular order.
    """

    def __init__(self, store: LedgerStore, engine: PostingEngine):
        self._store = store
        self._engine = engine

    def close_period(self, upto_date: date, actor_id: UUID) -> PostingSummary:
        return self._store.with_transaction(
            lambda tx: self._close(tx, upto_date, actor_id),
            operation="close_period",
        )

    def reopen_period(self, batch_date: date, actor_id: UUID) -> UnpostingSummary:
        return self._store.with_transaction(
            lambda tx: self._engine.revert_batch(tx, batch_date, actor_id),
            operation="reopen_period",
        )

    def _close(
        self,
        tx: LedgerTransaction,
        upto_date: date,
        actor_id: UUID,
    ) -> PostingSummary:
        if tx.find_posting_batch_record(upto_date) is not None:
            raise AlreadyPostedForDateError(upto_date)

        pending = tx.find_pending_entries_up_to(upto_date)
        if not pending:
            closed = tx.find_latest_posting_batch_date(upto_date)
            if closed is not None:
                raise AlreadyPostedForDateError(closed)
            raise NoPendingEntriesError(upto_date)

        groups = self._group_by_date(pending)
        logger.info(
            "period_close_groups_selected",
            extra={
                "upto_date": upto_date,
                "entry_count": len(pending),
                "dates": [d.isoformat() for d in groups],
            },
        )

        rejections: list[Rejection] = []
        total_debit = Money.zero()
        total_credit = Money.zero()
        posted_count = 0

        for ledger_date, entries in groups.items():
            ids = [e.id for e in entries]
            if rejections:
                # already aborting; collect the remaining rejections only
                report = self._engine.check_batch(tx, ids, ledger_date)
                rejections.extend(report.rejected)
                continue
            try:
                batch = self._engine.apply_batch(tx, ledger_date, ids, actor_id)
            except ValidationFailedError as exc:
                rejections.extend(exc.rejections)
                continue
            posted_count += batch.entry_count
            total_debit += batch.total_debit
            total_credit += batch.total_credit

        if rejections:
            raise ValidationFailedError(rejections)

        return PostingSummary(
            posted_count=posted_count,
            total_debit=total_debit,
            total_credit=total_credit,
            batch_date=max(groups),
            batch_dates=tuple(groups),
        )

    @staticmethod
    def _group_by_date(entries: list[LedgerEntryInfo]) -> dict[date, list[LedgerEntryInfo]]:
        groups: dict[date, list[LedgerEntryInfo]] = defaultdict(list)
        for entry in entries:
            groups[entry.ledger_date].append(entry)
        return {d: groups[d] for d in sorted(groups)}
