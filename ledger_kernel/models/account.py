"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the two-level chart of accounts: general
    (control) accounts and the detail accounts that roll up into them.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - account_number is the unique business key of each level.
    - balance_debit/balance_credit are running, non-negative accumulators
      written ONLY by the posting engine (Core UPDATE under row lock);
      ORM writes are blocked in db/immutability.py.
    - A detail account always names a general account.

Failure modes:
    - IntegrityError on a duplicate account_number.
    - AccountReferencedError when soft-deletion is attempted on a referenced
      account (enforced by AccountService).

Audit relevance:
    A general account's accumulators always equal the sum of its detail
    accounts' accumulators, because every posting applies the same delta
    to both levels inside one transaction.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase
from ledger_kernel.db.types import MoneyAmount


class AccountCategory(str, Enum):
    """Classification of an account in the chart of accounts."""

    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    REVENUE = "REVENUE"
    EXPENSE = "EXPENSE"


class ReportType(str, Enum):
    """Financial statement an account reports on."""

    BALANCE_SHEET = "BALANCE_SHEET"
    INCOME_STATEMENT = "INCOME_STATEMENT"


class NormalBalance(str, Enum):
    """Natural side of an account."""

    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


class _AccountColumns:
    """Columns shared by both account levels."""

    account_number: Mapped[str] = mapped_column(String(50), nullable=False)

    account_name: Mapped[str] = mapped_column(String(255), nullable=False)

    category: Mapped[AccountCategory] = mapped_column(String(20), nullable=False)

    report_type: Mapped[ReportType] = mapped_column(String(20), nullable=False)

    normal_balance: Mapped[NormalBalance] = mapped_column(String(10), nullable=False)

    # Running accumulators, posting engine only
    balance_debit: Mapped[Decimal] = mapped_column(
        MoneyAmount(),
        nullable=False,
        default=Decimal("0.00"),
    )

    balance_credit: Mapped[Decimal] = mapped_column(
        MoneyAmount(),
        nullable=False,
        default=Decimal("0.00"),
    )

    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_debit_normal(self) -> bool:
        return self.normal_balance == NormalBalance.DEBIT


class GeneralAccount(_AccountColumns, TrackedBase):
    """
    General (control) account.

    Contract:
        Receives the same debit/credit deltas as the sum of its detail
        accounts.  Never posted to directly.

    Non-goals:
        - Deeper hierarchies than general -> detail.
    """

    __tablename__ = "accounts_general"

    __table_args__ = (
        UniqueConstraint("account_number", name="uq_general_account_number"),
        Index("idx_general_account_category", "category"),
    )

    def __repr__(self) -> str:
        return f"<GeneralAccount {self.account_number}: {self.account_name}>"


class DetailAccount(_AccountColumns, TrackedBase):
    """Detail (posting) account; every ledger entry targets one."""

    __tablename__ = "accounts_detail"

    __table_args__ = (
        UniqueConstraint("account_number", name="uq_detail_account_number"),
        Index("idx_detail_account_general", "general_account_number"),
    )

    general_account_number: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("accounts_general.account_number"),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<DetailAccount {self.account_number}: {self.account_name}>"
