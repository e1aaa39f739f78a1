"""
Module: ledger_kernel.models.ledger_entry
Responsibility: ORM persistence for single-sided journal ledger entries, the
    unit of work the period close aggregates into account balances.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - amount is an exact two-decimal amount (MoneyAmount column).
    - posting_status moves PENDING -> POSTED and POSTED -> PENDING only through
      the posting engine's bulk status update.
    - A POSTED entry is immutable through the ORM (db/immutability.py).

Failure modes:
    - InvalidAmountError when binding an over-precise amount.
    - ImmutabilityViolationError on ORM update/delete of a POSTED entry.

Audit relevance:
    posted_at/posted_by_id record who closed the entry and when.  Both are
    cleared again when the date is reopened.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import MoneyAmount


class TransactionType(str, Enum):
    """Side of the entry's detail account the amount is booked to."""

    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


class LedgerType(str, Enum):
    """Cash direction of the entry.  Informational; no effect on posting."""

    CASH_IN = "CASH_IN"
    CASH_OUT = "CASH_OUT"


class PostingStatus(str, Enum):
    """Posting lifecycle state."""

    PENDING = "PENDING"
    POSTED = "POSTED"


class LedgerEntry(TrackedBase):
    """
    A single-sided ledger entry against one detail account.

    Contract:
        Created PENDING.  Only the posting engine changes posting_status,
        posted_at and posted_by_id.

    Non-goals:
        - Does NOT enforce that a date's debits equal its credits.
    """

    __tablename__ = "ledger_entries"

    __table_args__ = (
        Index("idx_ledger_entry_status_date", "posting_status", "ledger_date"),
        Index("idx_ledger_entry_account", "detail_account_number"),
    )

    reference_number: Mapped[str] = mapped_column(String(100), nullable=False)

    amount: Mapped[Decimal] = mapped_column(MoneyAmount(), nullable=False)

    description: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    transaction_type: Mapped[TransactionType] = mapped_column(
        String(10),
        nullable=False,
    )

    ledger_type: Mapped[LedgerType] = mapped_column(
        String(10),
        nullable=False,
        default=LedgerType.CASH_IN.value,
    )

    ledger_date: Mapped[date] = mapped_column(nullable=False)

    posting_status: Mapped[PostingStatus] = mapped_column(
        String(10),
        nullable=False,
        default=PostingStatus.PENDING.value,
    )

    posted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    posted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    detail_account_number: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("accounts_detail.account_number"),
        nullable=False,
    )

    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def is_posted(self) -> bool:
        return self.posting_status == PostingStatus.POSTED

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry {self.reference_number} {self.transaction_type} "
            f"{self.amount} {self.ledger_date} [{self.posting_status}]>"
        )
