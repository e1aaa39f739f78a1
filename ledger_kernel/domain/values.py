"""
Values -- Immutable, self-validating monetary value object.

Responsibility:
    Provides ``Money``, the only type in which amounts and balances flow
    through the ledger kernel.  Replaces raw ``Decimal``/``float`` wherever
    an amount appears in domain logic.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by every other domain module and by the db layer's
    ``MoneyAmount`` column type.

Invariants enforced:
    - Exact decimal arithmetic with a fixed scale of two fractional digits.
    - Construction from ``float`` is refused (binary floats cannot represent
      most cent values exactly).
    - A value with more than two significant fractional digits is refused,
      never silently rounded.

Failure modes:
    - InvalidAmountError on float, NaN/Infinity, unparseable text, or
      excess precision.
    - TypeError when arithmetic mixes Money with a non-Money operand.

Audit relevance:
    Balances are sums of Money values.  Because every operand is exact at
    two decimal places, posting followed by un-posting restores every
    balance to the cent.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterable

from ledger_kernel.exceptions import InvalidAmountError

MONEY_DECIMAL_PLACES = 2
_QUANTUM = Decimal(1).scaleb(-MONEY_DECIMAL_PLACES)


def _to_exact_decimal(value: object) -> Decimal:
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidAmountError(value, f"{type(value).__name__} is not an exact amount")
    if isinstance(value, Decimal):
        d = value
    elif isinstance(value, int):
        d = Decimal(value)
    elif isinstance(value, str):
        try:
            d = Decimal(value.strip())
        except InvalidOperation as e:
            raise InvalidAmountError(value, "not a decimal number") from e
    else:
        raise InvalidAmountError(value, f"unsupported type {type(value).__name__}")

    if not d.is_finite():
        raise InvalidAmountError(value, "amount must be finite")

    quantized = d.quantize(_QUANTUM)
    if quantized != d:
        raise InvalidAmountError(
            value, f"more than {MONEY_DECIMAL_PLACES} fractional digits"
        )
    return quantized


@dataclass(frozen=True, slots=True)
class Money:
    """
    Monetary amount value object (single currency, scale 2).

    Contract:
        Wraps a ``Decimal`` that always carries exactly two fractional
        digits.  Signed: deltas and net balances may be negative; entry
        amounts are checked for positivity by their callers.

    Guarantees:
        - Immutable and hashable (frozen dataclass with slots)
        - ``amount`` is always a Decimal quantized to 0.01, never float
        - ``Money.of("1.5") == Money.of("1.50")``
        - ``from_storage(to_storage(m)) == m``

    Non-goals:
        - Does NOT carry a currency (single-currency ledger)
        - Does NOT round; excess precision is an error
    """

    amount: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", _to_exact_decimal(self.amount))

    @classmethod
    def of(cls, value: Money | Decimal | str | int) -> Money:
        """
        Build Money from a Decimal, decimal string or int.

        Raises:
            InvalidAmountError: If value is a float, non-finite, unparseable,
                or has more than two fractional digits.
        """
        if isinstance(value, Money):
            return value
        return cls(amount=value)

    @classmethod
    def zero(cls) -> Money:
        return cls(amount=Decimal("0"))

    @classmethod
    def sum(cls, values: Iterable[Money]) -> Money:
        """Exact sum of an iterable of Money (zero when empty)."""
        total = Decimal("0")
        for v in values:
            if not isinstance(v, Money):
                raise TypeError(f"Cannot sum {type(v).__name__} as Money")
            total += v.amount
        return cls(amount=total)

    @classmethod
    def from_storage(cls, value: Decimal | str | int) -> Money:
        """Rebuild Money from its stored representation."""
        return cls(amount=value)

    def to_storage(self) -> str:
        """Canonical text form, e.g. ``"1500.00"``."""
        return format(self.amount, "f")

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    @property
    def is_positive(self) -> bool:
        return self.amount > 0

    @property
    def is_negative(self) -> bool:
        return self.amount < 0

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(amount=self.amount + other.amount)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(amount=self.amount - other.amount)

    def __neg__(self) -> Money:
        return Money(amount=-self.amount)

    def __abs__(self) -> Money:
        return Money(amount=abs(self.amount))

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.amount < other.amount

    def __le__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.amount <= other.amount

    def __gt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.amount > other.amount

    def __ge__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.amount >= other.amount

    def __str__(self) -> str:
        return self.to_storage()

    def __repr__(self) -> str:
        return f"Money({self.to_storage()!r})"
