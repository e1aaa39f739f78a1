"""
Module: ledger_kernel.db.soft_delete
Responsibility: The one place that knows how a soft-deleted row looks.  Every
    query that must ignore deleted accounts or entries goes through ``live``;
    every in-memory check goes through ``is_live``.
Architecture position: Kernel > DB.  Imported by services/ and selectors/.

Invariants enforced:
    - A row is deleted iff ``deleted_at`` is set.  Rows are never removed.
"""

from __future__ import annotations

from typing import Any, TypeVar

S = TypeVar("S")


def live(stmt: S, *models: Any) -> S:
    """Restrict a SELECT or UPDATE to rows of ``models`` that are not soft-deleted."""
    return stmt.where(*(model.deleted_at.is_(None) for model in models))


def is_live(row: Any) -> bool:
    return row is not None and row.deleted_at is None
