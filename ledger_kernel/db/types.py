"""
Module: ledger_kernel.db.types
Responsibility: Column types for monetary values.  Centralizes how an amount
    is written to and read from the database so that every model stores
    money identically.
Architecture position: Kernel > DB.  May be imported by models/ and services/.
    Imports only domain/values.py (pure) and exceptions.

Invariants enforced:
    - No floats anywhere.  PostgreSQL stores NUMERIC(18, 2); SQLite, which
      has no exact numeric storage class, stores the canonical decimal text
      ("1500.00") so a balance never passes through a binary float.
    - Binding a value with more than two fractional digits raises
      InvalidAmountError instead of letting the database round it.

Failure modes:
    - InvalidAmountError on float, non-finite or over-precise values.

Audit relevance:
    Every balance and entry amount column uses MoneyAmount, so the exact
    round trip posting -> un-posting holds at the storage layer too.
"""

from decimal import Decimal

from sqlalchemy import Numeric, String
from sqlalchemy.types import TypeDecorator

from ledger_kernel.domain.values import MONEY_DECIMAL_PLACES, Money

# 18 digits total, 2 decimal places
MONEY_PRECISION = 18


class MoneyAmount(TypeDecorator):
    """
    Exact two-decimal money column.

    Contract:
        Accepts Money, Decimal, int or decimal string on bind; always
        returns a Decimal quantized to 0.01 on load.

    Guarantees:
        - Dialect-specific storage chosen in load_dialect_impl.
        - cache_ok=True enables SQLAlchemy statement caching.
    """

    impl = String(32)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(
                Numeric(MONEY_PRECISION, MONEY_DECIMAL_PLACES, asdecimal=True)
            )
        return dialect.type_descriptor(String(32))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        money = Money.of(value)
        if dialect.name == "postgresql":
            return money.amount
        return money.to_storage()

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, Decimal):
            value = str(value)
        return Money.from_storage(value).amount
