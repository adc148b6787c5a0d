"""Decimal helpers shared by the billing engine. Amounts never touch float."""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

ZERO = Decimal("0.00")
CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_money(value) -> Decimal:
    """Coerce *value* to a 2-place Decimal (ROUND_HALF_UP).

    Floats go through ``str`` so 0.1 stays 0.1.
    """
    if value is None:
        return ZERO
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValueError(f"Invalid monetary amount: {value!r}") from exc


def percent_of(base: Decimal, rate: Decimal) -> Decimal:
    """``base * rate / 100`` rounded to cents."""
    return to_money(Decimal(base) * Decimal(rate) / HUNDRED)
