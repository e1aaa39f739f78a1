"""
LedgerEntryValidator -- Pure eligibility checks for a posting batch.

Responsibility:
    Decides, for each candidate ledger entry, whether it may be posted, and
    if not, the single reason why.  Produces a ValidationReport that lists
    every accepted id and every rejection.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Called by PostingEngine (inside its transaction, against a freshly
    loaded AccountSnapshot) and by PostingService.validate_batch (preview).

Invariants enforced:
    Checks run in a fixed order; the FIRST failing check determines the
    reason, so the same input always yields the same rejection:

        1. detail account exists and is live      -> AccountNotFound
        2. its general account exists and is live -> AccountNotFound
        3. amount is a valid, positive Money      -> InvalidAmount
        4. transaction type is DEBIT or CREDIT    -> InvalidTransactionType
        5. ledger date is a date on/before cutoff -> InvalidDate
        6. posting status is PENDING              -> AlreadyPosted

    Requested ids without a live entry are rejected with EntryNotFound.

Failure modes:
    None.  Problems are returned as Rejection values, never raised.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, Sequence
from uuid import UUID

from ledger_kernel.domain.dtos import (
    AccountSnapshot,
    LedgerEntryInfo,
    Rejection,
    RejectionReason,
    Side,
    ValidationReport,
)
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import InvalidAmountError

_PENDING = "PENDING"
_SIDES = frozenset(s.value for s in Side)


class LedgerEntryValidator:
    """
    Validates ledger entries against a chart-of-accounts snapshot.

    Contract:
        validate() never raises for bad data; it returns a report whose
        accepted and rejected sets partition the input.

    Non-goals:
        - Does NOT check that a batch's debits equal its credits.
        - Does NOT read from storage.
    """

    def validate(
        self,
        entries: Iterable[LedgerEntryInfo],
        accounts: AccountSnapshot,
        cutoff_date: date,
        *,
        requested_ids: Sequence[UUID] | None = None,
    ) -> ValidationReport:
        accepted: list[UUID] = []
        rejected: list[Rejection] = []
        seen: set[UUID] = set()

        for entry in entries:
            seen.add(entry.id)
            rejection = self.check_entry(entry, accounts, cutoff_date)
            if rejection is None:
                accepted.append(entry.id)
            else:
                rejected.append(rejection)

        for entry_id in requested_ids or ():
            if entry_id not in seen:
                seen.add(entry_id)
                rejected.append(
                    Rejection(
                        entry_id=entry_id,
                        reason=RejectionReason.ENTRY_NOT_FOUND,
                        message=f"Ledger entry {entry_id} does not exist",
                    )
                )

        return ValidationReport(accepted=tuple(accepted), rejected=tuple(rejected))

    def check_entry(
        self,
        entry: LedgerEntryInfo,
        accounts: AccountSnapshot,
        cutoff_date: date,
    ) -> Rejection | None:
        """Return the first failing check for one entry, or None."""

        def reject(reason: RejectionReason, message: str) -> Rejection:
            return Rejection(entry_id=entry.id, reason=reason, message=message)

        detail = accounts.detail(entry.detail_account_number)
        if detail is None or detail.is_deleted:
            return reject(
                RejectionReason.ACCOUNT_NOT_FOUND,
                f"Detail account {entry.detail_account_number} not found",
            )

        general = accounts.general(detail.general_account_number or "")
        if general is None or general.is_deleted:
            return reject(
                RejectionReason.ACCOUNT_NOT_FOUND,
                f"General account {detail.general_account_number} of detail "
                f"account {detail.account_number} not found",
            )

        try:
            amount = Money.of(entry.amount)
        except InvalidAmountError as e:
            return reject(RejectionReason.INVALID_AMOUNT, e.reason)
        if not amount.is_positive:
            return reject(
                RejectionReason.INVALID_AMOUNT,
                f"Amount must be positive, got {amount}",
            )

        if entry.transaction_type not in _SIDES:
            return reject(
                RejectionReason.INVALID_TRANSACTION_TYPE,
                f"Transaction type {entry.transaction_type!r} is not DEBIT or CREDIT",
            )

        ledger_date = entry.ledger_date
        if not isinstance(ledger_date, date) or isinstance(ledger_date, datetime):
            return reject(
                RejectionReason.INVALID_DATE,
                f"Ledger date {ledger_date!r} is not a calendar date",
            )
        if ledger_date > cutoff_date:
            return reject(
                RejectionReason.INVALID_DATE,
                f"Ledger date {ledger_date} is after cutoff {cutoff_date}",
            )

        if entry.posting_status != _PENDING:
            return reject(
                RejectionReason.ALREADY_POSTED,
                f"Entry is {entry.posting_status}, not PENDING",
            )

        return None
