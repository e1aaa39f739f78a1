"""
Module: ledger_kernel.models.posting_batch
Responsibility: ORM persistence for closed ledger dates.  A PostingBatch row
    exists for date D exactly while D is closed; its lines record the deltas
    applied to each account.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - batch_date is unique (uq_posting_batch_date).  The posting engine
      inserts this row before any balance write, so two concurrent closes of
      the same date cannot both commit.
    - One line per (batch, account_kind, account_number).

Audit relevance:
    Un-posting recomputes deltas from the POSTED entries and compares them to
    the recorded lines before subtracting anything.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import MoneyAmount


class PostingBatch(TrackedBase):
    """Record of one closed ledger date."""

    __tablename__ = "posting_batches"

    __table_args__ = (
        UniqueConstraint("batch_date", name="uq_posting_batch_date"),
    )

    batch_date: Mapped[date] = mapped_column(nullable=False)

    closed_at: Mapped[datetime] = mapped_column(nullable=False)

    closed_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    entry_count: Mapped[int] = mapped_column(nullable=False)

    total_debit: Mapped[Decimal] = mapped_column(MoneyAmount(), nullable=False)

    total_credit: Mapped[Decimal] = mapped_column(MoneyAmount(), nullable=False)

    lines: Mapped[list["PostingBatchLine"]] = relationship(
        back_populates="batch",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<PostingBatch {self.batch_date} entries={self.entry_count}>"


class PostingBatchLine(TrackedBase):
    """Delta applied to one account by a PostingBatch."""

    __tablename__ = "posting_batch_lines"

    __table_args__ = (
        UniqueConstraint(
            "batch_id",
            "account_kind",
            "account_number",
            name="uq_posting_batch_line_account",
        ),
    )

    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("posting_batches.id"),
        nullable=False,
    )

    account_kind: Mapped[str] = mapped_column(String(10), nullable=False)

    account_number: Mapped[str] = mapped_column(String(50), nullable=False)

    debit: Mapped[Decimal] = mapped_column(MoneyAmount(), nullable=False)

    credit: Mapped[Decimal] = mapped_column(MoneyAmount(), nullable=False)

    batch: Mapped[PostingBatch] = relationship(back_populates="lines")
