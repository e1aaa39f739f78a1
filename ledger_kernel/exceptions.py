"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the posting engine (HTTP handlers, the CLI, batch jobs) must be
able to react to a failure without parsing its message.  Every error here:

  1. Has its own class (catch by type, not by message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Has an HTTP_STATUS class attribute (the boundary translation)
  4. Carries its context as attributes (not only a message string)

Example:
    try:
        service.post_period(date(2025, 1, 15), actor_id)
    except AlreadyPostedForDateError as e:
        return respond(e.http_status, code=e.code, date=str(e.batch_date))
    except ValidationFailedError as e:
        return respond(e.http_status, rejected=[r.to_dict() for r in e.rejections])

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base, 500)
    |
    +-- ValidationError (422)
    |   +-- ValidationFailedError
    |   +-- InvalidAmountError
    |   +-- InvalidTransactionTypeError
    |   +-- InvalidDateError
    |
    +-- ConflictError (409)
    |   +-- AlreadyPostedForDateError
    |   +-- ConcurrentPostingError
    |
    +-- NotFoundError (404)
    |   +-- AccountNotFoundError
    |   +-- LedgerEntryNotFoundError
    |
    +-- StorageError (500)
    |   +-- PostingFailedError
    |   +-- PostingIntegrityError
    |
    +-- StateError (400)
        +-- NoPendingEntriesError
        +-- NothingToUnpostError
        +-- EntryPostedError
        +-- AccountReferencedError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category    | Code                      | When Raised
------------|---------------------------|---------------------------------------------
Validation  | VALIDATION_FAILED         | One or more entries of a close were rejected
            | INVALID_AMOUNT            | Not a positive amount with <= 2 decimals
            | INVALID_TRANSACTION_TYPE  | Not DEBIT or CREDIT
            | INVALID_DATE              | Not a calendar date / after cutoff
------------|---------------------------|---------------------------------------------
Conflict    | ALREADY_POSTED_FOR_DATE   | A posting batch already exists for the date
            | CONCURRENT_POSTING        | Entries changed under a running close
------------|---------------------------|---------------------------------------------
Not found   | ACCOUNT_NOT_FOUND         | Account missing or soft-deleted
            | LEDGER_ENTRY_NOT_FOUND    | Entry missing or soft-deleted
------------|---------------------------|---------------------------------------------
Storage     | POSTING_FAILED            | Storage failure after bounded retries
            | POSTING_INTEGRITY         | Recorded and recomputed deltas disagree
------------|---------------------------|---------------------------------------------
State       | NO_PENDING_ENTRIES        | Nothing to close up to the date
            | NOTHING_TO_UNPOST         | No POSTED entries on the date
            | ENTRY_POSTED              | Mutating a POSTED entry
            | ACCOUNT_REFERENCED        | Deleting a referenced account
            | IMMUTABILITY_VIOLATION    | ORM write to a protected field

Retry guidance: ConflictError is recoverable by retrying or by accepting the
prior result.  StorageError has already been retried internally.  StateError
and ValidationError require the caller to change its input.
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ledger_kernel.domain.dtos import Rejection


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses define ``code`` and ``http_status`` class attributes.
    """

    code: str = "LEDGER_KERNEL_ERROR"
    http_status: int = 500


# Validation


class ValidationError(LedgerKernelError):
    """Base exception for rejected input."""

    code: str = "VALIDATION_ERROR"
    http_status: int = 422


class ValidationFailedError(ValidationError):
    """
    A close was aborted because entries failed validation.

    The full rejection list is carried so the caller sees every problem at once.
    """

    code: str = "VALIDATION_FAILED"

    def __init__(self, rejections: tuple[Rejection, ...] | list[Rejection]):
        self.rejections = tuple(rejections)
        super().__init__(
            f"Validation failed for {len(self.rejections)} ledger entr"
            f"{'y' if len(self.rejections) == 1 else 'ies'}"
        )


class InvalidAmountError(ValidationError):
    """Amount is not a valid Money value for its context."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, value: Any, reason: str):
        self.value = str(value)
        self.reason = reason
        super().__init__(f"Invalid amount {value!r}: {reason}")


class InvalidTransactionTypeError(ValidationError):
    """Transaction type is not DEBIT or CREDIT."""

    code: str = "INVALID_TRANSACTION_TYPE"

    def __init__(self, value: Any):
        self.value = str(value)
        super().__init__(f"Invalid transaction type: {value!r}")


class InvalidDateError(ValidationError):
    """Value is not a usable accounting date."""

    code: str = "INVALID_DATE"

    def __init__(self, value: Any, reason: str):
        self.value = str(value)
        self.reason = reason
        super().__init__(f"Invalid date {value!r}: {reason}")


# Conflict


class ConflictError(LedgerKernelError):
    """Base exception for lost races and duplicate closes."""

    code: str = "CONFLICT"
    http_status: int = 409


class AlreadyPostedForDateError(ConflictError):
    """A posting batch record already exists for the date."""

    code: str = "ALREADY_POSTED_FOR_DATE"

    def __init__(self, batch_date: date):
        self.batch_date = batch_date
        super().__init__(f"Ledger date {batch_date} has already been posted")


class ConcurrentPostingError(ConflictError):
    """Entries changed state between selection and the status transition."""

    code: str = "CONCURRENT_POSTING"

    def __init__(self, batch_date: date, expected: int, actual: int):
        self.batch_date = batch_date
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Concurrent modification while posting {batch_date}: "
            f"expected {expected} entries to transition, got {actual}"
        )


# Not found


class NotFoundError(LedgerKernelError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"
    http_status: int = 404


class AccountNotFoundError(NotFoundError):
    """Account does not exist or is soft-deleted."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_number: str):
        self.account_number = account_number
        super().__init__(f"Account not found: {account_number}")


class LedgerEntryNotFoundError(NotFoundError):
    """Ledger entry does not exist or is soft-deleted."""

    code: str = "LEDGER_ENTRY_NOT_FOUND"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Ledger entry not found: {entry_id}")


# Storage


class StorageError(LedgerKernelError):
    """Base exception for persistence failures."""

    code: str = "STORAGE_ERROR"
    http_status: int = 500


class PostingFailedError(StorageError):
    """The storage layer failed; the transaction was rolled back."""

    code: str = "POSTING_FAILED"

    def __init__(self, operation: str, cause: BaseException, attempts: int):
        self.operation = operation
        self.cause = f"{type(cause).__name__}: {cause}"
        self.attempts = attempts
        super().__init__(
            f"{operation} failed after {attempts} attempt(s): {self.cause}"
        )


class PostingIntegrityError(StorageError):
    """Stored balances or batch lines are inconsistent with the entries."""

    code: str = "POSTING_INTEGRITY"

    def __init__(self, batch_date: date, reason: str):
        self.batch_date = batch_date
        self.reason = reason
        super().__init__(f"Integrity check failed for {batch_date}: {reason}")


# State


class StateError(LedgerKernelError):
    """Base exception for operations invalid in the current state."""

    code: str = "STATE_ERROR"
    http_status: int = 400


class NoPendingEntriesError(StateError):
    """No PENDING entries exist up to the requested date."""

    code: str = "NO_PENDING_ENTRIES"

    def __init__(self, upto_date: date):
        self.upto_date = upto_date
        super().__init__(f"No pending ledger entries on or before {upto_date}")


class NothingToUnpostError(StateError):
    """No POSTED entries exist for the requested date."""

    code: str = "NOTHING_TO_UNPOST"

    def __init__(self, batch_date: date):
        self.batch_date = batch_date
        super().__init__(f"No posted ledger entries for {batch_date}")


class EntryPostedError(StateError):
    """A POSTED ledger entry cannot be edited or deleted."""

    code: str = "ENTRY_POSTED"

    def __init__(self, entry_id: str, operation: str):
        self.entry_id = entry_id
        self.operation = operation
        super().__init__(f"Cannot {operation} posted ledger entry {entry_id}")


class AccountReferencedError(StateError):
    """Account cannot be deleted while live records reference it."""

    code: str = "ACCOUNT_REFERENCED"

    def __init__(self, account_number: str, reference_count: int):
        self.account_number = account_number
        self.reference_count = reference_count
        super().__init__(
            f"Account {account_number} is referenced by "
            f"{reference_count} live record(s)"
        )


class ImmutabilityViolationError(StateError):
    """An ORM write touched a field owned by the posting engine."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"{entity_type} {entity_id}: {reason}")
