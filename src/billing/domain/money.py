from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

TAX_RATE = Decimal("0.13")
CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: object) -> Decimal:
    """Coerce to a 2-decimal Decimal. Floats go through str() to avoid binary noise."""
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as exc:
            raise ValueError(f"Invalid money amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Invalid money amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def tax_for(subtotal: Decimal) -> Decimal:
    return (subtotal * TAX_RATE).quantize(CENT, rounding=ROUND_HALF_UP)
