"""SQLAlchemy ORM models for the ledger kernel."""

from ledger_kernel.models.account import (
    AccountCategory,
    DetailAccount,
    GeneralAccount,
    NormalBalance,
    ReportType,
)
from ledger_kernel.models.ledger_entry import (
    LedgerEntry,
    LedgerType,
    PostingStatus,
    TransactionType,
)
from ledger_kernel.models.posting_batch import PostingBatch, PostingBatchLine

__all__ = [
    "AccountCategory",
    "DetailAccount",
    "GeneralAccount",
    "LedgerEntry",
    "LedgerType",
    "NormalBalance",
    "PostingBatch",
    "PostingBatchLine",
    "PostingStatus",
    "ReportType",
    "TransactionType",
]
