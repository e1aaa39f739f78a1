"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures that flow through a period close:
    LedgerEntryInfo and AccountInfo (inputs loaded by the store),
    AccountSnapshot (the chart of accounts as seen inside one transaction),
    AccountKey/AccountDelta (aggregator output), Rejection/ValidationReport
    (validator output), and PostingBatchInfo, PostingSummary,
    UnpostingSummary and AccountBalance (service results).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    from_model() class methods exist as boundary converters but are only
    invoked from the service layer (never from domain logic).

Invariants enforced:
    - Domain logic accepts and returns DTOs, never ORM entities.
    - Monetary fields on results are Money, never raw Decimal.
    - LedgerEntryInfo keeps the entry's fields exactly as stored, so the
      validator can reject malformed rows instead of failing on load.

Audit relevance:
    ValidationReport lists every rejected entry with a machine-readable
    reason, so an aborted close explains itself completely.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping
from uuid import UUID

from ledger_kernel.domain.values import Money

if TYPE_CHECKING:
    from ledger_kernel.models.account import DetailAccount, GeneralAccount
    from ledger_kernel.models.ledger_entry import LedgerEntry
    from ledger_kernel.models.posting_batch import PostingBatch


class AccountKind(str, Enum):
    """Level of the chart of accounts an account number belongs to."""

    GENERAL = "GENERAL"
    DETAIL = "DETAIL"


class Side(str, Enum):
    """Debit or credit, for entries and account natural sides alike."""

    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


class RejectionReason(str, Enum):
    """Machine-readable reason an entry was excluded from a batch."""

    ACCOUNT_NOT_FOUND = "AccountNotFound"
    INVALID_AMOUNT = "InvalidAmount"
    INVALID_TRANSACTION_TYPE = "InvalidTransactionType"
    INVALID_DATE = "InvalidDate"
    ALREADY_POSTED = "AlreadyPosted"
    ENTRY_NOT_FOUND = "EntryNotFound"


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerEntryInfo:
    """
    A ledger entry as loaded from storage.

    ``amount``, ``transaction_type``, ``ledger_date`` and ``posting_status``
    are raw stored values; only the validator interprets them.
    """

    id: UUID
    reference_number: str
    amount: Any
    transaction_type: Any
    ledger_date: Any
    posting_status: Any
    detail_account_number: str

    @classmethod
    def from_model(cls, model: LedgerEntry) -> LedgerEntryInfo:
        return cls(
            id=model.id,
            reference_number=model.reference_number,
            amount=model.amount,
            transaction_type=_raw(model.transaction_type),
            ledger_date=model.ledger_date,
            posting_status=_raw(model.posting_status),
            detail_account_number=model.detail_account_number,
        )

    @property
    def money(self) -> Money:
        """Amount as Money.  Only valid for entries the validator accepted."""
        return Money.of(self.amount)

    @property
    def side(self) -> Side:
        return Side(self.transaction_type)


@dataclass(frozen=True)
class AccountInfo:
    """One account of either level, including soft-deleted ones."""

    kind: AccountKind
    account_number: str
    account_name: str
    normal_balance: Side
    balance_debit: Money
    balance_credit: Money
    is_deleted: bool = False
    general_account_number: str | None = None

    @property
    def key(self) -> AccountKey:
        return AccountKey(self.kind, self.account_number)

    @classmethod
    def from_general(cls, model: GeneralAccount) -> AccountInfo:
        return cls(
            kind=AccountKind.GENERAL,
            account_number=model.account_number,
            account_name=model.account_name,
            normal_balance=Side(_raw(model.normal_balance)),
            balance_debit=Money.of(model.balance_debit),
            balance_credit=Money.of(model.balance_credit),
            is_deleted=model.deleted_at is not None,
        )

    @classmethod
    def from_detail(cls, model: DetailAccount) -> AccountInfo:
        return cls(
            kind=AccountKind.DETAIL,
            account_number=model.account_number,
            account_name=model.account_name,
            normal_balance=Side(_raw(model.normal_balance)),
            balance_debit=Money.of(model.balance_debit),
            balance_credit=Money.of(model.balance_credit),
            is_deleted=model.deleted_at is not None,
            general_account_number=model.general_account_number,
        )


@dataclass(frozen=True)
class AccountSnapshot:
    """
    Chart of accounts as read inside the caller's transaction.

    Contract:
        Lookups return None for unknown numbers.  Soft-deleted accounts are
        present with ``is_deleted=True`` so callers can tell the cases apart.
    """

    details: Mapping[str, AccountInfo] = field(default_factory=dict)
    generals: Mapping[str, AccountInfo] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "details", MappingProxyType(dict(self.details)))
        object.__setattr__(self, "generals", MappingProxyType(dict(self.generals)))

    @classmethod
    def of(cls, accounts: list[AccountInfo] | tuple[AccountInfo, ...]) -> AccountSnapshot:
        return cls(
            details={a.account_number: a for a in accounts if a.kind == AccountKind.DETAIL},
            generals={a.account_number: a for a in accounts if a.kind == AccountKind.GENERAL},
        )

    def detail(self, account_number: str) -> AccountInfo | None:
        return self.details.get(account_number)

    def general(self, account_number: str) -> AccountInfo | None:
        return self.generals.get(account_number)

    def get(self, key: AccountKey) -> AccountInfo | None:
        if key.kind == AccountKind.DETAIL:
            return self.detail(key.account_number)
        return self.general(key.account_number)


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


@dataclass(frozen=True, order=True)
class AccountKey:
    """Identifies one account; ordering is the global lock order."""

    kind: AccountKind
    account_number: str

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.account_number}"


@dataclass(frozen=True)
class AccountDelta:
    """Amounts to add to an account's debit and credit accumulators."""

    debit: Money = field(default_factory=Money.zero)
    credit: Money = field(default_factory=Money.zero)

    def __add__(self, other: AccountDelta) -> AccountDelta:
        if not isinstance(other, AccountDelta):
            return NotImplemented
        return AccountDelta(self.debit + other.debit, self.credit + other.credit)

    def negated(self) -> AccountDelta:
        return AccountDelta(-self.debit, -self.credit)

    @property
    def is_zero(self) -> bool:
        return self.debit.is_zero and self.credit.is_zero


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Rejection:
    """Why one entry cannot be posted."""

    entry_id: UUID
    reason: RejectionReason
    message: str

    def to_dict(self) -> dict[str, str]:
        return {
            "entry_id": str(self.entry_id),
            "reason": self.reason.value,
            "message": self.message,
        }


@dataclass(frozen=True)
class ValidationReport:
    """
    Outcome of validating a set of entries.

    Guarantees:
        - accepted and rejected are disjoint and together cover every input.
        - bool(report) is True only when nothing was rejected.
    """

    accepted: tuple[UUID, ...] = ()
    rejected: tuple[Rejection, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.rejected

    def __bool__(self) -> bool:
        return self.is_valid

    def merge(self, other: ValidationReport) -> ValidationReport:
        return ValidationReport(
            accepted=self.accepted + other.accepted,
            rejected=self.rejected + other.rejected,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "accepted": [str(i) for i in self.accepted],
            "rejected": [r.to_dict() for r in self.rejected],
        }


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PostingBatchInfo:
    """A closed ledger date and the deltas it applied."""

    batch_date: date
    entry_count: int
    total_debit: Money
    total_credit: Money
    closed_at: datetime
    closed_by_id: UUID
    lines: tuple[tuple[AccountKey, AccountDelta], ...] = ()

    @classmethod
    def from_model(cls, model: PostingBatch) -> PostingBatchInfo:
        lines = sorted(
            (
                (
                    AccountKey(AccountKind(line.account_kind), line.account_number),
                    AccountDelta(Money.of(line.debit), Money.of(line.credit)),
                )
                for line in model.lines
            ),
            key=lambda pair: pair[0],
        )
        return cls(
            batch_date=model.batch_date,
            entry_count=model.entry_count,
            total_debit=Money.of(model.total_debit),
            total_credit=Money.of(model.total_credit),
            closed_at=model.closed_at,
            closed_by_id=model.closed_by_id,
            lines=tuple(lines),
        )

    @property
    def deltas(self) -> dict[AccountKey, AccountDelta]:
        return dict(self.lines)


@dataclass(frozen=True)
class PostingSummary:
    """Result of closing every pending entry up to a date."""

    posted_count: int
    total_debit: Money
    total_credit: Money
    batch_date: date
    batch_dates: tuple[date, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "posted_count": self.posted_count,
            "total_debit": str(self.total_debit),
            "total_credit": str(self.total_credit),
            "batch_date": self.batch_date.isoformat(),
            "batch_dates": [d.isoformat() for d in self.batch_dates],
        }


@dataclass(frozen=True)
class UnpostingSummary:
    """Result of reopening one closed date."""

    unposted_count: int
    total_debit: Money
    total_credit: Money
    batch_date: date

    def to_dict(self) -> dict[str, Any]:
        return {
            "unposted_count": self.unposted_count,
            "total_debit": str(self.total_debit),
            "total_credit": str(self.total_credit),
            "batch_date": self.batch_date.isoformat(),
        }


@dataclass(frozen=True)
class AccountBalance:
    """Running balance of one account, with its net on the natural side."""

    kind: AccountKind
    account_number: str
    account_name: str
    normal_balance: Side
    debit: Money
    credit: Money
    net: Money

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "account_number": self.account_number,
            "account_name": self.account_name,
            "normal_balance": self.normal_balance.value,
            "debit": str(self.debit),
            "credit": str(self.credit),
            "net": str(self.net),
        }


def _raw(value: Any) -> Any:
    """Strip a str-Enum down to its stored value."""
    if isinstance(value, Enum):
        return value.value
    return value


__all__ = [
    "AccountBalance",
    "AccountDelta",
    "AccountInfo",
    "AccountKey",
    "AccountKind",
    "AccountSnapshot",
    "LedgerEntryInfo",
    "PostingBatchInfo",
    "PostingSummary",
    "Rejection",
    "RejectionReason",
    "Side",
    "UnpostingSummary",
    "ValidationReport",
]
