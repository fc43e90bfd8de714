"""
services/money.py — Fixed-point money arithmetic.

All monetary values are decimal.Decimal with two decimal places. Rounding is
ROUND_HALF_UP (midpoints away from zero) everywhere; there is no other
rounding rule in this codebase.

Float never appears in or around money calculations.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext

from splitpro.app.errors import ErrorCode, ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


def round_half_up(value: Decimal, places: int = 2) -> Decimal:
    """Rounds `value` to `places` decimals, midpoints away from zero."""
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def divide_half_up(numerator: Decimal, denominator: Decimal | int) -> Decimal:
    """
    numerator / denominator rounded half-up to cents.

    The quotient is taken with enough working precision that the only
    rounding step is the final one.
    """
    with localcontext() as ctx:
        ctx.prec = 50
        quotient = Decimal(numerator) / Decimal(denominator)
    return round_half_up(quotient)


def decimal_places(value: Decimal) -> int:
    exponent = value.as_tuple().exponent
    return -exponent if isinstance(exponent, int) and exponent < 0 else 0


def parse_amount(raw, field: str = "amount") -> Decimal:
    """
    Converts a str / int / Decimal into a finite Decimal.

    Floats are refused: 0.1 + 0.2 is not 0.3 and cents must be exact.
    """
    if isinstance(raw, bool) or isinstance(raw, float):
        raise ValidationError(
            ErrorCode.INVALID_FIELD,
            f"{field} must be given as a string or integer, not {type(raw).__name__}.",
            field=field,
        )
    try:
        value = Decimal(str(raw)) if not isinstance(raw, Decimal) else raw
    except (InvalidOperation, ValueError):
        raise ValidationError(
            ErrorCode.INVALID_FIELD,
            f"{field} is not a valid decimal number.",
            field=field,
        )
    if not value.is_finite():
        raise ValidationError(
            ErrorCode.INVALID_FIELD,
            f"{field} must be a finite number.",
            field=field,
        )
    return value


@dataclass(frozen=True)
class Money:
    """A currency-tagged amount with at most two decimal places."""

    amount: Decimal
    currency: str = "USD"

    def __post_init__(self) -> None:
        amount = parse_amount(self.amount)
        if decimal_places(amount) > 2:
            raise ValidationError(
                ErrorCode.INVALID_AMOUNT_PRECISION,
                f"Amount {amount} has more than 2 decimal places.",
                field="amount",
            )
        if not isinstance(self.currency, str) or not _CURRENCY_RE.match(self.currency):
            raise ValidationError(
                ErrorCode.INVALID_CURRENCY,
                f"Currency {self.currency!r} is not a three-letter currency code.",
                field="currency",
            )
        object.__setattr__(self, "amount", amount.quantize(CENT))

    @classmethod
    def zero(cls, currency: str = "USD") -> "Money":
        return cls(ZERO, currency)

    def is_positive(self) -> bool:
        return self.amount > 0

    def _check_currency(self, other: "Money") -> None:
        if other.currency != self.currency:
            raise ValidationError(
                ErrorCode.CURRENCY_MISMATCH,
                f"Cannot combine {self.currency} with {other.currency}; "
                f"currency conversion is not supported.",
            )

    def __add__(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(self.amount - other.amount, self.currency)

    def __neg__(self) -> "Money":
        return Money(-self.amount, self.currency)

    def __str__(self) -> str:
        return f"{self.amount} {self.currency}"
