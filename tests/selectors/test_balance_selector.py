"""Tests for BalanceSelector."""

from datetime import date

import pytest

from ledger_kernel.domain.dtos import AccountKind, Side
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import AccountNotFoundError
from ledger_kernel.selectors.balance_selector import BalanceSelector


@pytest.fixture
def posted(posting_service, standard_accounts, create_entry, test_actor_id):
    create_entry("4001", "500.00")
    create_entry("4001", "20.00", "CREDIT")
    create_entry("4002", "7.00")
    create_entry("5001", "30.00", "CREDIT")
    create_entry("5001", "5.00", "DEBIT")
    posting_service.post_period(date(2025, 1, 15), test_actor_id)


class TestAccountBalance:

    def test_debit_normal_detail(self, posted, session):
        balance = BalanceSelector(session).account_balance(AccountKind.DETAIL, "4001")
        assert balance.debit == Money.of("500.00")
        assert balance.credit == Money.of("20.00")
        assert balance.net == Money.of("480.00")
        assert balance.normal_balance == Side.DEBIT

    def test_credit_normal_general(self, posted, session):
        balance = BalanceSelector(session).account_balance("GENERAL", "5000")
        assert balance.net == Money.of("25.00")
        assert balance.to_dict() == {
            "kind": "GENERAL",
            "account_number": "5000",
            "account_name": "Expenses",
            "normal_balance": "CREDIT",
            "debit": "5.00",
            "credit": "30.00",
            "net": "25.00",
        }

    def test_unknown_account(self, standard_accounts, session):
        with pytest.raises(AccountNotFoundError):
            BalanceSelector(session).account_balance(AccountKind.DETAIL, "9999")

    def test_deleted_account_hidden(self, standard_accounts, soft_delete_account, session):
        from ledger_kernel.models.account import DetailAccount

        soft_delete_account(DetailAccount, "4002")
        with pytest.raises(AccountNotFoundError):
            BalanceSelector(session).account_balance(AccountKind.DETAIL, "4002")


class TestDetailBalancesForGeneral:

    def test_lists_details_in_number_order(self, posted, session):
        balances = BalanceSelector(session).detail_balances_for_general("4000")
        assert [b.account_number for b in balances] == ["4001", "4002"]
        assert Money.sum(b.debit for b in balances) == Money.of("507.00")

    def test_details_sum_to_general(self, posted, session):
        selector = BalanceSelector(session)
        general = selector.account_balance(AccountKind.GENERAL, "4000")
        details = selector.detail_balances_for_general("4000")
        assert Money.sum(d.debit for d in details) == general.debit
        assert Money.sum(d.credit for d in details) == general.credit
