"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

A POSTED ledger entry is part of a closed date.  Editing or deleting it would
make the account balances disagree with the entries they were built from.
Likewise, account balances are running accumulators that only the posting
engine may move.  This module rejects such writes when they come through the
SQLAlchemy ORM, BEFORE any SQL reaches the database.

    session.flush()
         |
         v
    [before_update event] --> _check_*() --> ImmutabilityViolationError
         |
         v
    [before_delete event] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                  | Protected                        | Writer allowed
------------------------|----------------------------------|-----------------------------
LedgerEntry             | every field once POSTED; delete  | PostingEngine (Core UPDATE)
GeneralAccount          | balance_debit, balance_credit    | PostingEngine (Core UPDATE)
DetailAccount           | balance_debit, balance_credit    | PostingEngine (Core UPDATE)

===============================================================================
DESIGN DECISIONS
===============================================================================

1. updated_at/updated_by_id may change on a protected row.  They are audit
   metadata, not financial data.

2. The posting engine moves status and balances with Core UPDATE statements.
   Those do not go through the unit of work, so these listeners never see
   them; they guard against every OTHER code path.

3. Model imports are inline to avoid a db <-> models import cycle.

===============================================================================
USAGE
===============================================================================

    from ledger_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once, at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})
_BALANCE_FIELDS = ("balance_debit", "balance_credit")


def _block(entity_type: str, entity_id: str, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _check_ledger_entry_immutability(mapper, connection, target):
    """
    Prevent updates to POSTED LedgerEntry rows.

    Uses attribute history to decide whether the entry was POSTED before this
    flush: if posting_status is changing, the old value decides; otherwise
    the current value does.
    """
    from ledger_kernel.models.ledger_entry import LedgerEntry, PostingStatus

    if not isinstance(target, LedgerEntry):
        return

    status_history = get_history(target, "posting_status")
    if status_history.deleted:
        was_posted = status_history.deleted[0] == PostingStatus.POSTED
    else:
        was_posted = target.posting_status == PostingStatus.POSTED

    if not was_posted:
        return

    for attr in inspect(target).attrs:
        if attr.key in _AUDIT_FIELDS:
            continue
        if attr.history.has_changes():
            _block(
                "LedgerEntry",
                str(target.id),
                "UPDATE",
                f"Cannot modify field '{attr.key}' on posted ledger entry",
                field=attr.key,
            )


def _check_ledger_entry_delete(mapper, connection, target):
    """Prevent deletion of POSTED LedgerEntry rows."""
    from ledger_kernel.models.ledger_entry import LedgerEntry, PostingStatus

    if not isinstance(target, LedgerEntry):
        return

    if target.posting_status == PostingStatus.POSTED:
        _block(
            "LedgerEntry",
            str(target.id),
            "DELETE",
            "Posted ledger entries cannot be deleted",
        )


def _check_account_balance_immutability(mapper, connection, target):
    """Prevent ORM writes to running balance accumulators."""
    for field in _BALANCE_FIELDS:
        if get_history(target, field).has_changes():
            _block(
                type(target).__name__,
                str(target.account_number),
                "UPDATE",
                f"Field '{field}' is maintained by the posting engine only",
                field=field,
            )


def _listeners():
    from ledger_kernel.models.account import DetailAccount, GeneralAccount
    from ledger_kernel.models.ledger_entry import LedgerEntry

    return (
        (LedgerEntry, "before_update", _check_ledger_entry_immutability),
        (LedgerEntry, "before_delete", _check_ledger_entry_delete),
        (GeneralAccount, "before_update", _check_account_balance_immutability),
        (DetailAccount, "before_update", _check_account_balance_immutability),
    )


def register_immutability_listeners() -> None:
    """
    Register all immutability enforcement event listeners (idempotent).

    Call once after the models are importable and before any writes.
    """
    for target, event_name, fn in _listeners():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that intentionally corrupt data.
    """
    for target, event_name, fn in _listeners():
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)
