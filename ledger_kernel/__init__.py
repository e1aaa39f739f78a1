"""
Ledger Kernel - posting and closing engine for a general/detail chart of accounts.

Provides:
- Exact two-decimal Money arithmetic
- Validation of pending ledger entries against the chart of accounts
- Atomic, idempotent period close (PENDING -> POSTED) with running balances
- Exact reversal of a closed date (POSTED -> PENDING)
"""

__version__ = "0.1.0"
