"""Kernel services: storage, posting engine, period close and maintenance."""

from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.ledger_entry_service import LedgerEntryService
from ledger_kernel.services.ledger_store import LedgerStore, LedgerTransaction, RetryPolicy
from ledger_kernel.services.period_close_coordinator import ClosingPeriodCoordinator
from ledger_kernel.services.posting_engine import PostingEngine
from ledger_kernel.services.posting_service import PostingService

__all__ = [
    "AccountService",
    "ClosingPeriodCoordinator",
    "LedgerEntryService",
    "LedgerStore",
    "LedgerTransaction",
    "PostingEngine",
    "PostingService",
    "RetryPolicy",
]
