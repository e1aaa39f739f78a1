"""Database layer: declarative base, column types, engine and ORM guards."""

from ledger_kernel.db.base import Base, TrackedBase, UUIDString
from ledger_kernel.db.engine import (
    build_engine,
    build_session_factory,
    create_tables,
    drop_tables,
    session_scope,
)
from ledger_kernel.db.types import MoneyAmount

__all__ = [
    "Base",
    "MoneyAmount",
    "TrackedBase",
    "UUIDString",
    "build_engine",
    "build_session_factory",
    "create_tables",
    "drop_tables",
    "session_scope",
]
