"""
LedgerEntryService -- maintenance of PENDING ledger entries.

Responsibility:
    Records new ledger entries (always PENDING), edits and soft-deletes them
    while they are still PENDING, and looks them up by id.

Architecture position:
    Kernel > Services -- imperative shell, flush-only (BaseService).

Invariants enforced:
    - New entries are PENDING with a positive, exact two-decimal amount,
      a DEBIT/CREDIT transaction type, a calendar date and a live detail
      account whose general account is live.
    - Entries cannot be dated on a closed ledger date; that date's batch
      would otherwise no longer match its entries.
    - POSTED entries cannot be edited or deleted (EntryPostedError); the
      ORM guard in db/immutability.py backs this up.

Failure modes:
    - InvalidAmountError, InvalidTransactionTypeError, InvalidDateError.
    - AccountNotFoundError, LedgerEntryNotFoundError.
    - AlreadyPostedForDateError: the ledger date is closed.
    - EntryPostedError: update/delete of a POSTED entry.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.db.soft_delete import live
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import LedgerEntryInfo
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    AlreadyPostedForDateError,
    EntryPostedError,
    InvalidAmountError,
    InvalidDateError,
    InvalidTransactionTypeError,
    LedgerEntryNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import DetailAccount, GeneralAccount
from ledger_kernel.models.ledger_entry import (
    LedgerEntry,
    LedgerType,
    PostingStatus,
    TransactionType,
)
from ledger_kernel.models.posting_batch import PostingBatch
from ledger_kernel.services.base import BaseService

logger = get_logger("services.ledger_entry_service")

_EDITABLE_FIELDS = frozenset({
    "reference_number",
    "amount",
    "description",
    "transaction_type",
    "ledger_type",
    "ledger_date",
    "detail_account_number",
})


class LedgerEntryService(BaseService):
    """Create, edit and soft-delete PENDING ledger entries."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def create_entry(
        self,
        *,
        reference_number: str,
        amount: Money | str | int,
        transaction_type: TransactionType | str,
        ledger_date: date,
        detail_account_number: str,
        actor_id: UUID,
        ledger_type: LedgerType | str = LedgerType.CASH_IN,
        description: str | None = None,
    ) -> LedgerEntryInfo:
        values = self._normalize({
            "reference_number": reference_number,
            "amount": amount,
            "transaction_type": transaction_type,
            "ledger_type": ledger_type,
            "ledger_date": ledger_date,
            "detail_account_number": detail_account_number,
            "description": description,
        })

        entry = LedgerEntry(
            **values,
            posting_status=PostingStatus.PENDING.value,
            created_by_id=actor_id,
        )
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "ledger_entry_created",
            extra={
                "entry_id": str(entry.id),
                "reference_number": reference_number,
                "amount": str(entry.amount),
                "transaction_type": entry.transaction_type,
                "ledger_date": entry.ledger_date,
                "detail_account_number": detail_account_number,
            },
        )
        return LedgerEntryInfo.from_model(entry)

    def update_entry(self, entry_id: UUID, actor_id: UUID, **changes: Any) -> LedgerEntryInfo:
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not editable: {', '.join(sorted(unknown))}")

        entry = self._require_pending(entry_id, "update")
        current = {name: getattr(entry, name) for name in _EDITABLE_FIELDS}
        current.update(changes)
        values = self._normalize(current)

        for name in changes:
            setattr(entry, name, values[name])
        entry.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "ledger_entry_updated",
            extra={"entry_id": str(entry_id), "fields": sorted(changes)},
        )
        return LedgerEntryInfo.from_model(entry)

    def soft_delete_entry(self, entry_id: UUID, actor_id: UUID) -> None:
        entry = self._require_pending(entry_id, "delete")
        entry.deleted_at = self._clock.now()
        entry.updated_by_id = actor_id
        self.session.flush()
        logger.info("ledger_entry_soft_deleted", extra={"entry_id": str(entry_id)})

    def get_entry(self, entry_id: UUID) -> LedgerEntryInfo:
        return LedgerEntryInfo.from_model(self._get_live(entry_id))

    def _get_live(self, entry_id: UUID) -> LedgerEntry:
        entry = self.session.execute(
            live(select(LedgerEntry), LedgerEntry).where(LedgerEntry.id == entry_id)
        ).scalars().first()
        if entry is None:
            raise LedgerEntryNotFoundError(str(entry_id))
        return entry

    def _require_pending(self, entry_id: UUID, operation: str) -> LedgerEntry:
        entry = self._get_live(entry_id)
        if entry.posting_status == PostingStatus.POSTED:
            raise EntryPostedError(str(entry_id), operation)
        return entry

    def _normalize(self, values: dict[str, Any]) -> dict[str, Any]:
        """Validate entry fields and convert them to their stored form."""
        amount = Money.of(values["amount"])
        if not amount.is_positive:
            raise InvalidAmountError(values["amount"], "amount must be positive")

        try:
            transaction_type = TransactionType(values["transaction_type"]).value
        except ValueError as e:
            raise InvalidTransactionTypeError(values["transaction_type"]) from e

        ledger_type = LedgerType(values["ledger_type"]).value

        ledger_date = values["ledger_date"]
        if not isinstance(ledger_date, date) or isinstance(ledger_date, datetime):
            raise InvalidDateError(ledger_date, "ledger date must be a calendar date")
        if self._is_closed(ledger_date):
            raise AlreadyPostedForDateError(ledger_date)

        self._require_postable_account(values["detail_account_number"])

        return {
            "reference_number": values["reference_number"],
            "amount": amount.amount,
            "description": values.get("description"),
            "transaction_type": transaction_type,
            "ledger_type": ledger_type,
            "ledger_date": ledger_date,
            "detail_account_number": values["detail_account_number"],
        }

    def _is_closed(self, ledger_date: date) -> bool:
        return self.session.execute(
            select(PostingBatch.id).where(PostingBatch.batch_date == ledger_date)
        ).first() is not None

    def _require_postable_account(self, detail_account_number: str) -> None:
        stmt = select(DetailAccount.account_number).join(
            GeneralAccount,
            GeneralAccount.account_number == DetailAccount.general_account_number,
        )
        row = self.session.execute(
            live(stmt, DetailAccount, GeneralAccount)
            .where(DetailAccount.account_number == detail_account_number)
        ).first()
        if row is None:
            raise AccountNotFoundError(detail_account_number)
