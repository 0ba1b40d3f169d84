# storefront/utils/money.py

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

Money = Decimal
CENT = Decimal("0.01")
ZERO = Decimal("0.00")
# Numeric(12, 2) holds at most 10 integer digits
MONEY_LIMIT = Decimal(10) ** 10


def D(x) -> Money:
    return x if isinstance(x, Decimal) else Decimal(str(x or "0"))


def round_money(x) -> Money:
    """Round to cents, half away from zero (2.345 -> 2.35)."""
    return D(x).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_money(value, field: str, *, required=True, allow_none=False) -> Money | None:
    """Parse a client-supplied amount into a non-negative Decimal.

    Raises ValueError with a message naming ``field`` when the value is
    missing, not numeric, negative or too large for a Numeric(12, 2)
    column. Booleans are rejected even though they are ints in Python.
    """
    if value is None or (isinstance(value, str) and value.strip() == ""):
        if allow_none:
            return None
        if required:
            raise ValueError(f"{field} is required")
        return ZERO
    if isinstance(value, bool):
        raise ValueError(f"{field} must be numeric")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"{field} must be numeric") from None
    if not amount.is_finite():
        raise ValueError(f"{field} must be numeric")
    if amount < 0:
        raise ValueError(f"{field} must be >= 0")
    # compare before quantize, which raises on values wider than the context precision
    if amount >= MONEY_LIMIT or round_money(amount) >= MONEY_LIMIT:
        raise ValueError(f"{field} must be < {MONEY_LIMIT}")
    return round_money(amount)


def to_json_money(x):
    """Serialise an amount as a two-decimal string so client-side sums stay exact."""
    return str(round_money(x)) if x is not None else None
