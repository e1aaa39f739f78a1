"""
AccountService -- chart-of-accounts maintenance.

Responsibility:
    Creates general and detail accounts, soft-deletes them when nothing live
    references them, and looks them up by account number.

Architecture position:
    Kernel > Services -- imperative shell, flush-only (BaseService).

Invariants enforced:
    - account_number is unique per level, including soft-deleted rows.
    - A detail account can only be created under a live general account.
    - An account referenced by live detail accounts or ledger entries cannot
      be soft-deleted.
    - Balances start at zero and are never set here.

Failure modes:
    - ValueError: duplicate account number or unknown enum value.
    - AccountNotFoundError: missing or soft-deleted account.
    - AccountReferencedError: soft-delete of a referenced account.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.db.soft_delete import is_live, live
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import AccountInfo
from ledger_kernel.exceptions import AccountNotFoundError, AccountReferencedError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import (
    AccountCategory,
    DetailAccount,
    GeneralAccount,
    NormalBalance,
    ReportType,
)
from ledger_kernel.models.ledger_entry import LedgerEntry
from ledger_kernel.services.base import BaseService

logger = get_logger("services.account_service")


class AccountService(BaseService):
    """Create, look up and soft-delete accounts."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def create_general_account(
        self,
        account_number: str,
        account_name: str,
        category: AccountCategory | str,
        report_type: ReportType | str,
        normal_balance: NormalBalance | str,
        actor_id: UUID,
    ) -> AccountInfo:
        if self._find(GeneralAccount, account_number) is not None:
            raise ValueError(f"General account {account_number} already exists")

        account = GeneralAccount(
            account_number=account_number,
            account_name=account_name,
            category=AccountCategory(category).value,
            report_type=ReportType(report_type).value,
            normal_balance=NormalBalance(normal_balance).value,
            created_by_id=actor_id,
        )
        self.session.add(account)
        self.session.flush()

        logger.info(
            "general_account_created",
            extra={"account_number": account_number, "category": account.category},
        )
        return AccountInfo.from_general(account)

    def create_detail_account(
        self,
        account_number: str,
        account_name: str,
        general_account_number: str,
        category: AccountCategory | str,
        report_type: ReportType | str,
        normal_balance: NormalBalance | str,
        actor_id: UUID,
    ) -> AccountInfo:
        if self._find(DetailAccount, account_number) is not None:
            raise ValueError(f"Detail account {account_number} already exists")
        self._require_live(GeneralAccount, general_account_number)

        account = DetailAccount(
            account_number=account_number,
            account_name=account_name,
            general_account_number=general_account_number,
            category=AccountCategory(category).value,
            report_type=ReportType(report_type).value,
            normal_balance=NormalBalance(normal_balance).value,
            created_by_id=actor_id,
        )
        self.session.add(account)
        self.session.flush()

        logger.info(
            "detail_account_created",
            extra={
                "account_number": account_number,
                "general_account_number": general_account_number,
            },
        )
        return AccountInfo.from_detail(account)

    def get_general_account(self, account_number: str) -> AccountInfo:
        return AccountInfo.from_general(self._require_live(GeneralAccount, account_number))

    def get_detail_account(self, account_number: str) -> AccountInfo:
        return AccountInfo.from_detail(self._require_live(DetailAccount, account_number))

    def soft_delete_general_account(self, account_number: str, actor_id: UUID) -> None:
        account = self._require_live(GeneralAccount, account_number)

        live_details = self.session.execute(
            live(select(func.count()).select_from(DetailAccount), DetailAccount)
            .where(DetailAccount.general_account_number == account_number)
        ).scalar_one()
        entries_under = (
            select(func.count())
            .select_from(LedgerEntry)
            .join(
                DetailAccount,
                DetailAccount.account_number == LedgerEntry.detail_account_number,
            )
        )
        live_entries = self.session.execute(
            live(entries_under, LedgerEntry)
            .where(DetailAccount.general_account_number == account_number)
        ).scalar_one()
        if live_details or live_entries:
            raise AccountReferencedError(account_number, live_details + live_entries)

        self._mark_deleted(account, actor_id)

    def soft_delete_detail_account(self, account_number: str, actor_id: UUID) -> None:
        account = self._require_live(DetailAccount, account_number)

        live_entries = self.session.execute(
            live(select(func.count()).select_from(LedgerEntry), LedgerEntry)
            .where(LedgerEntry.detail_account_number == account_number)
        ).scalar_one()
        if live_entries:
            raise AccountReferencedError(account_number, live_entries)

        self._mark_deleted(account, actor_id)

    def _mark_deleted(self, account: GeneralAccount | DetailAccount, actor_id: UUID) -> None:
        account.deleted_at = self._clock.now()
        account.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "account_soft_deleted",
            extra={
                "account_type": type(account).__name__,
                "account_number": account.account_number,
            },
        )

    def _find(self, model, account_number: str):
        return self.session.execute(
            select(model).where(model.account_number == account_number)
        ).scalars().first()

    def _require_live(self, model, account_number: str):
        account = self._find(model, account_number)
        if not is_live(account):
            raise AccountNotFoundError(account_number)
        return account
