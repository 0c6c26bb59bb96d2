"""Money helpers.

All amounts are ``Decimal`` rounded half-up to cents. Callers round after
every multiplication and every summation, not only at the end, so totals
reproduce exactly across quotes, invoices and payments.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value, default=ZERO):
    """Coerce a JSON number/string/None into a Decimal.

    Floats go through ``str()`` so 0.1 stays 0.1 instead of its binary
    expansion. Raises ValueError for non-numeric input.
    """
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Not a number: {value!r}")


def round_money(value):
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(value):
    """Dollars -> integer cents for Stripe."""
    return int((round_money(value) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_cents(cents):
    return round_money(Decimal(cents or 0) / 100)


def money_float(value):
    """Render a stored amount for JSON output."""
    if value is None:
        return None
    return float(round_money(value))
