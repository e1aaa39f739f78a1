"""
Module: ledger_kernel.selectors.balance_selector
Responsibility: Read-only access to account running balances, expressed on
    each account's natural side.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Net balance: DEBIT-normal accounts report debit - credit, CREDIT-normal
      accounts credit - debit (net_balance()).
    - Soft-deleted accounts are not reported.
"""

from __future__ import annotations

from sqlalchemy import select

from ledger_kernel.db.soft_delete import live
from ledger_kernel.domain.aggregator import net_balance
from ledger_kernel.domain.dtos import AccountBalance, AccountInfo, AccountKind
from ledger_kernel.exceptions import AccountNotFoundError
from ledger_kernel.models.account import DetailAccount, GeneralAccount
from ledger_kernel.selectors.base import BaseSelector


def _to_balance(info: AccountInfo) -> AccountBalance:
    return AccountBalance(
        kind=info.kind,
        account_number=info.account_number,
        account_name=info.account_name,
        normal_balance=info.normal_balance,
        debit=info.balance_debit,
        credit=info.balance_credit,
        net=net_balance(info.normal_balance, info.balance_debit, info.balance_credit),
    )


class BalanceSelector(BaseSelector):
    """Account balances for reporting and reconciliation."""

    def account_balance(self, kind: AccountKind | str, account_number: str) -> AccountBalance:
        """
        Balance of one live account.

        Raises:
            AccountNotFoundError: If the account is missing or soft-deleted.
        """
        if AccountKind(kind) == AccountKind.DETAIL:
            model, to_info = DetailAccount, AccountInfo.from_detail
        else:
            model, to_info = GeneralAccount, AccountInfo.from_general

        account = self.session.execute(
            live(select(model), model).where(model.account_number == account_number)
        ).scalars().first()
        if account is None:
            raise AccountNotFoundError(account_number)
        return _to_balance(to_info(account))

    def detail_balances_for_general(self, general_account_number: str) -> list[AccountBalance]:
        """Balances of the live detail accounts under one general account."""
        rows = self.session.execute(
            live(select(DetailAccount), DetailAccount)
            .where(DetailAccount.general_account_number == general_account_number)
            .order_by(DetailAccount.account_number)
        ).scalars()
        return [_to_balance(AccountInfo.from_detail(row)) for row in rows]
