"""Read-only query selectors."""

from ledger_kernel.selectors.balance_selector import BalanceSelector

__all__ = ["BalanceSelector"]
