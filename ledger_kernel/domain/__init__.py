"""Pure domain layer: values, DTOs, validation and aggregation. No I/O."""

from ledger_kernel.domain.aggregator import BalanceAggregator, net_balance
from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.dtos import (
    AccountBalance,
    AccountDelta,
    AccountInfo,
    AccountKey,
    AccountKind,
    AccountSnapshot,
    LedgerEntryInfo,
    PostingBatchInfo,
    PostingSummary,
    Rejection,
    RejectionReason,
    Side,
    UnpostingSummary,
    ValidationReport,
)
from ledger_kernel.domain.validator import LedgerEntryValidator
from ledger_kernel.domain.values import Money

__all__ = [
    "AccountBalance",
    "AccountDelta",
    "AccountInfo",
    "AccountKey",
    "AccountKind",
    "AccountSnapshot",
    "BalanceAggregator",
    "Clock",
    "DeterministicClock",
    "LedgerEntryInfo",
    "LedgerEntryValidator",
    "Money",
    "PostingBatchInfo",
    "PostingSummary",
    "Rejection",
    "RejectionReason",
    "Side",
    "SystemClock",
    "UnpostingSummary",
    "ValidationReport",
    "net_balance",
]
