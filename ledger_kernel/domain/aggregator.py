"""
BalanceAggregator -- Per-account deltas for a set of entries.

Responsibility:
    Turns validated ledger entries into the debit/credit amounts to add to
    each touched account, at both levels of the chart of accounts.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - A DEBIT entry adds its amount to the debit accumulator of its detail
      account and of that account's general account; CREDIT likewise on
      the credit side.
    - A general account's delta is exactly the sum of its detail accounts'
      deltas.
    - Deltas for the same account are summed, so the number of balance
      writes is the number of accounts touched, not the number of entries.
    - The result is ordered by AccountKey (global lock order).

Failure modes:
    - KeyError if an entry's accounts are missing from the snapshot
      (callers validate first).
"""

from __future__ import annotations

from typing import Iterable

from ledger_kernel.domain.dtos import (
    AccountDelta,
    AccountKey,
    AccountKind,
    AccountSnapshot,
    LedgerEntryInfo,
    Side,
)
from ledger_kernel.domain.values import Money


def net_balance(normal_balance: Side | str, debit: Money, credit: Money) -> Money:
    """Balance on the account's natural side."""
    if Side(normal_balance) == Side.DEBIT:
        return debit - credit
    return credit - debit


class BalanceAggregator:
    """Computes account deltas from validated entries."""

    def compute_deltas(
        self,
        entries: Iterable[LedgerEntryInfo],
        accounts: AccountSnapshot,
    ) -> dict[AccountKey, AccountDelta]:
        deltas: dict[AccountKey, AccountDelta] = {}

        for entry in entries:
            detail = accounts.details[entry.detail_account_number]
            amount = entry.money
            if entry.side == Side.DEBIT:
                delta = AccountDelta(debit=amount)
            else:
                delta = AccountDelta(credit=amount)

            for key in (
                AccountKey(AccountKind.DETAIL, detail.account_number),
                AccountKey(AccountKind.GENERAL, detail.general_account_number),
            ):
                deltas[key] = deltas.get(key, AccountDelta()) + delta

        return {key: deltas[key] for key in sorted(deltas)}

    @staticmethod
    def totals(entries: Iterable[LedgerEntryInfo]) -> tuple[Money, Money]:
        """(total_debit, total_credit) over the entries."""
        total_debit = Money.zero()
        total_credit = Money.zero()
        for entry in entries:
            if entry.side == Side.DEBIT:
                total_debit += entry.money
            else:
                total_credit += entry.money
        return total_debit, total_credit

    @staticmethod
    def negate(deltas: dict[AccountKey, AccountDelta]) -> dict[AccountKey, AccountDelta]:
        """Exact inverse of a delta map, same order."""
        return {key: delta.negated() for key, delta in deltas.items()}
