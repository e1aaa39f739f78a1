"""
LedgerStore -- transactional storage collaborator for the posting engine.

Responsibility:
    Owns every database read and write the posting workflow performs, and the
    transaction that wraps them.  ``LedgerStore.with_transaction(fn)`` runs
    ``fn(tx)`` inside one session transaction, committing on success and
    rolling back on any failure, retrying transient storage errors with
    bounded exponential backoff.  ``LedgerTransaction`` is the ``tx`` handed
    to ``fn``: a flush-only service exposing the queries and bulk writes the
    engine needs.

Architecture position:
    Kernel > Services -- imperative shell.  The only module that issues SQL
    for the posting workflow.  PostingEngine, ClosingPeriodCoordinator and
    PostingService depend on it; it depends on models/ and domain/ DTOs.

Invariants enforced:
    - Soft-delete filtering goes through ``db.soft_delete.live``.
    - Row locks (SELECT ... FOR UPDATE) are taken in ascending key order
      (accounts by kind then number, entries by id) to avoid deadlocks.
    - Balances are written with Core UPDATE statements guarded by the
      previously read values, never through the ORM unit of work.
    - A retry re-runs ``fn`` from scratch in a fresh transaction, so every
      check inside it (validation, the already-posted guard) executes again.
    - Commit failures are NOT retried: the outcome of the commit is unknown.

Failure modes:
    - PostingFailedError after ``RetryPolicy.max_attempts`` transient
      failures, on a commit failure, or on any other SQLAlchemy error.
    - AlreadyPostedForDateError when the posting batch insert hits the
      unique constraint on batch_date (a concurrent close won).
    - Any LedgerKernelError raised by ``fn`` propagates unchanged after
      rollback.

Audit relevance:
    Logs ``transaction_retry`` on every retried attempt and
    ``transaction_failed`` when retries are exhausted, with the attempt
    count and the underlying error.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Iterable, Sequence, TypeVar
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from ledger_kernel.db.soft_delete import live
from ledger_kernel.domain.dtos import (
    AccountDelta,
    AccountInfo,
    AccountKey,
    AccountKind,
    AccountSnapshot,
    LedgerEntryInfo,
    PostingBatchInfo,
)
from ledger_kernel.exceptions import AlreadyPostedForDateError, PostingFailedError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import DetailAccount, GeneralAccount
from ledger_kernel.models.ledger_entry import LedgerEntry, PostingStatus
from ledger_kernel.models.posting_batch import PostingBatch, PostingBatchLine
from ledger_kernel.services.base import BaseService

logger = get_logger("services.ledger_store")

T = TypeVar("T")

# Bound parameter lists for IN (...) clauses
_IN_CHUNK = 500


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded exponential backoff for transient storage failures.

    The delay before retry ``n`` (1-based) is
    ``backoff_seconds * backoff_multiplier ** (n - 1)``.
    """

    max_attempts: int = 3
    backoff_seconds: float = 0.05
    backoff_multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.backoff_seconds < 0:
            raise ValueError("backoff_seconds must not be negative")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be at least 1")

    def delay_for(self, retry_number: int) -> float:
        return self.backoff_seconds * self.backoff_multiplier ** (retry_number - 1)


def _chunks(values: Sequence, size: int = _IN_CHUNK) -> Iterable[Sequence]:
    for i in range(0, len(values), size):
        yield values[i:i + size]


class LedgerTransaction(BaseService):
    """
    Storage operations available inside one posting transaction.

    Contract:
        All methods flush; none commits.  Reads that feed a write accept
        ``for_update=True`` to take row locks (a no-op on SQLite, where the
        BEGIN IMMEDIATE write lock already serialises writers).

    Non-goals:
        - Does NOT validate entries or compute deltas (domain layer).
    """

    # -- ledger entries -----------------------------------------------------

    def find_entries_by_ids(
        self,
        entry_ids: Iterable[UUID],
        *,
        for_update: bool = False,
    ) -> list[LedgerEntryInfo]:
        """Live entries with the given ids, ordered by id."""
        ids = sorted(set(entry_ids), key=str)
        entries: list[LedgerEntryInfo] = []
        for chunk in _chunks(ids):
            stmt = live(select(LedgerEntry), LedgerEntry).where(
                LedgerEntry.id.in_(chunk)
            )
            entries.extend(self._load_entries(stmt, for_update))
        return sorted(entries, key=lambda e: str(e.id))

    def find_pending_entries_up_to(
        self,
        upto_date: date,
        *,
        for_update: bool = False,
    ) -> list[LedgerEntryInfo]:
        """Live PENDING entries with ledger_date <= upto_date."""
        stmt = live(select(LedgerEntry), LedgerEntry).where(
            LedgerEntry.posting_status == PostingStatus.PENDING.value,
            LedgerEntry.ledger_date <= upto_date,
        )
        return self._load_entries(stmt, for_update)

    def find_posted_entries_on(
        self,
        ledger_date: date,
        *,
        for_update: bool = False,
    ) -> list[LedgerEntryInfo]:
        """Live POSTED entries dated exactly ledger_date."""
        stmt = live(select(LedgerEntry), LedgerEntry).where(
            LedgerEntry.posting_status == PostingStatus.POSTED.value,
            LedgerEntry.ledger_date == ledger_date,
        )
        return self._load_entries(stmt, for_update)

    def _load_entries(self, stmt, for_update: bool) -> list[LedgerEntryInfo]:
        stmt = stmt.order_by(LedgerEntry.id).execution_options(populate_existing=True)
        if for_update:
            stmt = stmt.with_for_update()
        return [
            LedgerEntryInfo.from_model(row)
            for row in self.session.execute(stmt).scalars()
        ]

    def bulk_update_entry_status(
        self,
        entry_ids: Sequence[UUID],
        from_status: PostingStatus,
        to_status: PostingStatus,
        actor_id: UUID,
        at: datetime,
    ) -> int:
        """
        Move live entries from ``from_status`` to ``to_status``.

        Posting stamps posted_at/posted_by_id; un-posting clears them.

        Returns:
            Number of rows actually transitioned.  Rows whose status no
            longer equals ``from_status`` are skipped, so the caller can
            detect a concurrent change by comparing with len(entry_ids).
        """
        posting = to_status == PostingStatus.POSTED
        values = {
            "posting_status": to_status.value,
            "posted_at": at if posting else None,
            "posted_by_id": actor_id if posting else None,
            "updated_by_id": actor_id,
        }
        updated = 0
        for chunk in _chunks(sorted(entry_ids, key=str)):
            result = self.session.execute(
                live(update(LedgerEntry), LedgerEntry)
                .where(
                    LedgerEntry.id.in_(chunk),
                    LedgerEntry.posting_status == from_status.value,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            updated += result.rowcount
        return updated

    # -- accounts -----------------------------------------------------------

    def find_accounts_by_numbers(
        self,
        detail_numbers: Iterable[str],
        *,
        for_update: bool = False,
    ) -> AccountSnapshot:
        """
        Detail accounts with the given numbers plus their general accounts.

        Soft-deleted rows are included (flagged) so the validator can
        distinguish "deleted" from "unknown".  Locks are taken details
        first, then generals, each in ascending account_number order.
        """
        numbers = sorted(set(detail_numbers))
        details: list[DetailAccount] = []
        for chunk in _chunks(numbers):
            stmt = (
                select(DetailAccount)
                .where(DetailAccount.account_number.in_(chunk))
                .order_by(DetailAccount.account_number)
                .execution_options(populate_existing=True)
            )
            if for_update:
                stmt = stmt.with_for_update()
            details.extend(self.session.execute(stmt).scalars())

        general_numbers = sorted({d.general_account_number for d in details})
        generals: list[GeneralAccount] = []
        for chunk in _chunks(general_numbers):
            stmt = (
                select(GeneralAccount)
                .where(GeneralAccount.account_number.in_(chunk))
                .order_by(GeneralAccount.account_number)
                .execution_options(populate_existing=True)
            )
            if for_update:
                stmt = stmt.with_for_update()
            generals.extend(self.session.execute(stmt).scalars())

        return AccountSnapshot.of(
            [AccountInfo.from_detail(d) for d in details]
            + [AccountInfo.from_general(g) for g in generals]
        )

    def bulk_update_account_balances(
        self,
        snapshot: AccountSnapshot,
        deltas: dict[AccountKey, AccountDelta],
        actor_id: UUID,
    ) -> int:
        """
        Add each delta to its account's accumulators.

        Each UPDATE sets the new absolute values and is guarded by the
        values read into ``snapshot``; exact arithmetic happens in Money,
        never in the database.

        Returns:
            Number of accounts updated.  Less than len(deltas) means an
            account changed since the snapshot was read.
        """
        updated = 0
        for key in sorted(deltas):
            account = snapshot.get(key)
            if account is None:
                continue
            delta = deltas[key]
            model = DetailAccount if key.kind == AccountKind.DETAIL else GeneralAccount
            result = self.session.execute(
                update(model)
                .where(
                    model.account_number == key.account_number,
                    model.balance_debit == account.balance_debit.amount,
                    model.balance_credit == account.balance_credit.amount,
                )
                .values(
                    balance_debit=(account.balance_debit + delta.debit).amount,
                    balance_credit=(account.balance_credit + delta.credit).amount,
                    updated_by_id=actor_id,
                )
                .execution_options(synchronize_session=False)
            )
            updated += result.rowcount
        return updated

    # -- posting batch records ----------------------------------------------

    def find_posting_batch_record(self, batch_date: date) -> PostingBatchInfo | None:
        batch = self._get_batch(batch_date)
        if batch is None:
            return None
        return PostingBatchInfo.from_model(batch)

    def write_posting_batch_record(self, record: PostingBatchInfo) -> None:
        """
        Insert the batch row and its lines.

        Raises:
            AlreadyPostedForDateError: If a batch for the date already exists
                (unique constraint on batch_date).
        """
        batch = PostingBatch(
            batch_date=record.batch_date,
            closed_at=record.closed_at,
            closed_by_id=record.closed_by_id,
            entry_count=record.entry_count,
            total_debit=record.total_debit.amount,
            total_credit=record.total_credit.amount,
            created_by_id=record.closed_by_id,
        )
        batch.lines = [
            PostingBatchLine(
                account_kind=key.kind.value,
                account_number=key.account_number,
                debit=delta.debit.amount,
                credit=delta.credit.amount,
                created_by_id=record.closed_by_id,
            )
            for key, delta in record.lines
        ]
        self.session.add(batch)
        try:
            self.session.flush()
        except IntegrityError as exc:
            logger.warning(
                "concurrent_posting_batch_conflict",
                extra={"batch_date": record.batch_date},
            )
            raise AlreadyPostedForDateError(record.batch_date) from exc

    def delete_posting_batch_record(self, batch_date: date) -> bool:
        batch = self._get_batch(batch_date, for_update=True)
        if batch is None:
            return False
        self.session.delete(batch)
        self.session.flush()
        return True

    def list_posting_batch_dates(self) -> list[date]:
        stmt = select(PostingBatch.batch_date).order_by(PostingBatch.batch_date)
        return list(self.session.execute(stmt).scalars())

    def find_latest_posting_batch_date(self, upto_date: date) -> date | None:
        """Most recent closed date on or before ``upto_date``."""
        stmt = select(func.max(PostingBatch.batch_date)).where(
            PostingBatch.batch_date <= upto_date
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def _get_batch(self, batch_date: date, *, for_update: bool = False) -> PostingBatch | None:
        stmt = (
            select(PostingBatch)
            .where(PostingBatch.batch_date == batch_date)
            .options(selectinload(PostingBatch.lines))
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalars().first()


class LedgerStore:
    """
    Runs posting work in retried, all-or-nothing transactions.

    Contract:
        ``with_transaction(fn)`` returns ``fn``'s result after a successful
        commit.  On any exception the transaction is rolled back first.

    Guarantees:
        - Transient failures (OperationalError: lock timeout, deadlock,
          serialization failure, dropped connection) raised by ``fn`` are
          retried up to ``retry_policy.max_attempts`` in total.
        - Cancellation (KeyboardInterrupt, SystemExit) rolls back and
          propagates immediately, never retried.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        retry_policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._session_factory = session_factory
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    def session(self) -> Session:
        """New session for read-only work (selectors)."""
        return self._session_factory()

    def with_transaction(
        self,
        fn: Callable[[LedgerTransaction], T],
        *,
        operation: str = "ledger_transaction",
    ) -> T:
        policy = self.retry_policy
        attempt = 0
        while True:
            attempt += 1
            session = self._session_factory()
            try:
                try:
                    result = fn(LedgerTransaction(session))
                except OperationalError as exc:
                    session.rollback()
                    if attempt >= policy.max_attempts:
                        logger.error(
                            "transaction_failed",
                            extra={
                                "operation": operation,
                                "attempts": attempt,
                                "error": str(exc.orig),
                            },
                        )
                        raise PostingFailedError(operation, exc, attempt) from exc
                    delay = policy.delay_for(attempt)
                    logger.warning(
                        "transaction_retry",
                        extra={
                            "operation": operation,
                            "attempt": attempt,
                            "max_attempts": policy.max_attempts,
                            "delay_seconds": delay,
                            "error": str(exc.orig),
                        },
                    )
                    self._sleep(delay)
                    continue
                except SQLAlchemyError as exc:
                    session.rollback()
                    raise PostingFailedError(operation, exc, attempt) from exc
                except BaseException:
                    session.rollback()
                    raise

                try:
                    session.commit()
                except SQLAlchemyError as exc:
                    session.rollback()
                    logger.error(
                        "transaction_commit_failed",
                        extra={"operation": operation, "attempts": attempt},
                        exc_info=True,
                    )
                    raise PostingFailedError(operation, exc, attempt) from exc
                except BaseException:
                    session.rollback()
                    raise
                return result
            finally:
                session.close()
