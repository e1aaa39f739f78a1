"""
PostingEngine -- PENDING <-> POSTED state machine with running balances.

Responsibility:
    Applies a batch of ledger entries to the account balances and marks them
    POSTED (forward), or takes a closed date's entries back out of the
    balances and marks them PENDING again (reverse).  Both directions run
    entirely inside one storage transaction.

Architecture position:
    Kernel > Services -- imperative shell around the pure domain.
    Uses LedgerTransaction for all I/O, LedgerEntryValidator to re-check
    entries and BalanceAggregator to compute deltas.  Called by
    ClosingPeriodCoordinator; ``post_batch``/``unpost_batch`` also own their
    transaction for direct use.

Invariants enforced:
    - Only two transitions exist: PENDING -> POSTED and POSTED -> PENDING.
    - Entries are re-loaded and re-validated under row lock inside the
      transaction that mutates them; any rejection aborts the whole batch.
    - A posting batch row exists for a date exactly while it is closed.  It
      is inserted BEFORE any balance write; its unique constraint stops two
      concurrent closes of the same date from both committing.
    - Balance writes are ordered by AccountKey (lock order) and summed per
      account, so each touched account is written once.
    - Un-posting subtracts exactly what posting added: recomputed deltas
      must equal the recorded batch lines, and no accumulator may go
      negative.

Failure modes:
    - ValidationFailedError: one or more entries rejected, including entries
      not dated on the batch date (nothing written).
    - AlreadyPostedForDateError: the date already has a posting batch.
    - ConcurrentPostingError: an entry or account changed under the batch.
    - NothingToUnpostError: no POSTED entries on the date being reopened.
    - PostingIntegrityError: recorded and recomputed deltas disagree, or a
      reversal would drive a balance negative.

Audit relevance:
    Logs ``posting_batch_applied`` and ``posting_batch_reverted`` with the
    entry count, totals and accounts touched.  posted_at/posted_by_id and
    the batch's closed_at/closed_by_id come from the injected Clock and the
    caller's actor id.
"""

from __future__ import annotations

from datetime import date
from typing import Sequence
from uuid import UUID

from ledger_kernel.domain.aggregator import BalanceAggregator
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    AccountDelta,
    AccountKey,
    AccountSnapshot,
    LedgerEntryInfo,
    PostingBatchInfo,
    Rejection,
    RejectionReason,
    UnpostingSummary,
    ValidationReport,
)
from ledger_kernel.domain.validator import LedgerEntryValidator
from ledger_kernel.exceptions import (
    AlreadyPostedForDateError,
    ConcurrentPostingError,
    NothingToUnpostError,
    PostingIntegrityError,
    ValidationFailedError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.ledger_entry import PostingStatus
from ledger_kernel.services.ledger_store import LedgerStore, LedgerTransaction

logger = get_logger("services.posting_engine")


class PostingEngine:
    """
    Forward and reverse posting of one ledger date.

    Contract:
        ``apply_batch``/``revert_batch`` run inside a caller-owned
        LedgerTransaction and never commit.  ``post_batch``/``unpost_batch``
        wrap them in ``LedgerStore.with_transaction`` (commit, rollback,
        retry).

    Guarantees:
        - All-or-nothing: on any exception nothing of the batch persists
          once the caller rolls back.
        - Posting then un-posting a date restores every balance exactly.

    Non-goals:
        - Does NOT require a batch's debits to equal its credits.
        - Does NOT post directly to general accounts.
    """

    def __init__(
        self,
        store: LedgerStore,
        clock: Clock | None = None,
        validator: LedgerEntryValidator | None = None,
        aggregator: BalanceAggregator | None = None,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._validator = validator or LedgerEntryValidator()
        self._aggregator = aggregator or BalanceAggregator()

    # -- validation preview -------------------------------------------------

    def check_batch(
        self,
        tx: LedgerTransaction,
        entry_ids: Sequence[UUID],
        cutoff_date: date,
    ) -> ValidationReport:
        """Validate entries without locking or writing anything."""
        entries = tx.find_entries_by_ids(entry_ids)
        snapshot = tx.find_accounts_by_numbers(e.detail_account_number for e in entries)
        return self._validator.validate(
            entries, snapshot, cutoff_date, requested_ids=list(entry_ids)
        )

    # -- forward ------------------------------------------------------------

    def apply_batch(
        self,
        tx: LedgerTransaction,
        batch_date: date,
        entry_ids: Sequence[UUID],
        actor_id: UUID,
    ) -> PostingBatchInfo:
        """
        Post the given entries as the batch for ``batch_date``.

        Every entry must be dated exactly ``batch_date``: the batch is the
        only record reopening uses, so an entry dated otherwise is rejected
        with InvalidDate.

        Raises:
            ValidationFailedError, AlreadyPostedForDateError,
            ConcurrentPostingError, PostingIntegrityError.
        """
        entries = tx.find_entries_by_ids(entry_ids, for_update=True)
        snapshot = tx.find_accounts_by_numbers(
            (e.detail_account_number for e in entries), for_update=True
        )

        rejected = self._rejections_for_date(entries, snapshot, batch_date, entry_ids)
        if rejected:
            logger.warning(
                "posting_batch_rejected",
                extra={
                    "batch_date": batch_date,
                    "rejected_count": len(rejected),
                    "reasons": sorted({r.reason.value for r in rejected}),
                },
            )
            raise ValidationFailedError(rejected)

        if tx.find_posting_batch_record(batch_date) is not None:
            raise AlreadyPostedForDateError(batch_date)

        deltas = self._aggregator.compute_deltas(entries, snapshot)
        total_debit, total_credit = self._aggregator.totals(entries)
        now = self._clock.now()
        record = PostingBatchInfo(
            batch_date=batch_date,
            entry_count=len(entries),
            total_debit=total_debit,
            total_credit=total_credit,
            closed_at=now,
            closed_by_id=actor_id,
            lines=tuple(deltas.items()),
        )
        tx.write_posting_batch_record(record)

        self._apply_deltas(tx, batch_date, snapshot, deltas, actor_id)

        ids = [e.id for e in entries]
        moved = tx.bulk_update_entry_status(
            ids, PostingStatus.PENDING, PostingStatus.POSTED, actor_id, now
        )
        if moved != len(ids):
            raise ConcurrentPostingError(batch_date, len(ids), moved)

        logger.info(
            "posting_batch_applied",
            extra={
                "batch_date": batch_date,
                "entry_count": len(ids),
                "total_debit": str(total_debit),
                "total_credit": str(total_credit),
                "accounts_touched": len(deltas),
            },
        )
        return record

    def post_batch(
        self,
        batch_date: date,
        entry_ids: Sequence[UUID],
        actor_id: UUID,
    ) -> PostingBatchInfo:
        return self._store.with_transaction(
            lambda tx: self.apply_batch(tx, batch_date, entry_ids, actor_id),
            operation="post_batch",
        )

    # -- reverse ------------------------------------------------------------

    def revert_batch(
        self,
        tx: LedgerTransaction,
        batch_date: date,
        actor_id: UUID,
    ) -> UnpostingSummary:
        """
        Reopen ``batch_date``: subtract its deltas and return entries to PENDING.

        Raises:
            NothingToUnpostError, PostingIntegrityError, ConcurrentPostingError.
        """
        entries = tx.find_posted_entries_on(batch_date, for_update=True)
        if not entries:
            raise NothingToUnpostError(batch_date)

        snapshot = tx.find_accounts_by_numbers(
            (e.detail_account_number for e in entries), for_update=True
        )
        record = tx.find_posting_batch_record(batch_date)
        if record is None:
            raise PostingIntegrityError(batch_date, "no posting batch record for posted entries")

        deltas = self._aggregator.compute_deltas(entries, snapshot)
        if record.entry_count != len(entries):
            raise PostingIntegrityError(
                batch_date,
                f"batch recorded {record.entry_count} entries, found {len(entries)} posted",
            )
        if record.deltas != deltas:
            mismatched = sorted(
                str(key)
                for key in set(record.deltas) | set(deltas)
                if record.deltas.get(key) != deltas.get(key)
            )
            raise PostingIntegrityError(
                batch_date,
                f"recorded deltas differ from posted entries for {', '.join(mismatched)}",
            )

        self._apply_deltas(
            tx, batch_date, snapshot, self._aggregator.negate(deltas), actor_id
        )

        ids = [e.id for e in entries]
        moved = tx.bulk_update_entry_status(
            ids, PostingStatus.POSTED, PostingStatus.PENDING, actor_id, self._clock.now()
        )
        if moved != len(ids):
            raise ConcurrentPostingError(batch_date, len(ids), moved)

        tx.delete_posting_batch_record(batch_date)

        total_debit, total_credit = self._aggregator.totals(entries)
        logger.info(
            "posting_batch_reverted",
            extra={
                "batch_date": batch_date,
                "entry_count": len(ids),
                "total_debit": str(total_debit),
                "total_credit": str(total_credit),
                "accounts_touched": len(deltas),
            },
        )
        return UnpostingSummary(
            unposted_count=len(ids),
            total_debit=total_debit,
            total_credit=total_credit,
            batch_date=batch_date,
        )

    def unpost_batch(self, batch_date: date, actor_id: UUID) -> UnpostingSummary:
        return self._store.with_transaction(
            lambda tx: self.revert_batch(tx, batch_date, actor_id),
            operation="unpost_batch",
        )

    # -- shared -------------------------------------------------------------

    def _rejections_for_date(
        self,
        entries: Sequence[LedgerEntryInfo],
        snapshot: AccountSnapshot,
        batch_date: date,
        entry_ids: Sequence[UUID],
    ) -> list[Rejection]:
        report = self._validator.validate(
            entries, snapshot, batch_date, requested_ids=list(entry_ids)
        )
        rejected = list(report.rejected)
        accepted = set(report.accepted)
        rejected.extend(
            Rejection(
                entry_id=e.id,
                reason=RejectionReason.INVALID_DATE,
                message=f"Ledger date {e.ledger_date} is not batch date {batch_date}",
            )
            for e in entries
            if e.id in accepted and e.ledger_date != batch_date
        )
        return rejected

    def _apply_deltas(
        self,
        tx: LedgerTransaction,
        batch_date: date,
        snapshot: AccountSnapshot,
        deltas: dict[AccountKey, AccountDelta],
        actor_id: UUID,
    ) -> None:
        for key, delta in deltas.items():
            account = snapshot.get(key)
            if account is None:
                raise PostingIntegrityError(batch_date, f"account {key} missing")
            if (account.balance_debit + delta.debit).is_negative or (
                account.balance_credit + delta.credit
            ).is_negative:
                raise PostingIntegrityError(
                    batch_date, f"balance of {key} would become negative"
                )

        written = tx.bulk_update_account_balances(snapshot, deltas, actor_id)
        if written != len(deltas):
            raise ConcurrentPostingError(batch_date, len(deltas), written)
