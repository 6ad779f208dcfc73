from decimal import ROUND_HALF_UP, Decimal, InvalidOperation


CENT = Decimal("0.01")
# Numeric(12, 2) money columns and 32-bit Integer quantity columns
MAX_MONEY = Decimal("9999999999.99")
MAX_QUANTITY = 2**31 - 1


def to_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def ensure_positive_int(value, field: str) -> int:
    """Strict: rejects bools, fractions and anything outside 1..MAX_QUANTITY."""
    if isinstance(value, bool):
        raise ValueError(f"{field} must be a positive integer")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int) or value <= 0:
        raise ValueError(f"{field} must be a positive integer")
    if value > MAX_QUANTITY:
        raise ValueError(f"{field} must be at most {MAX_QUANTITY}")
    return value


def ensure_money(value, field: str) -> Decimal:
    if value is None or isinstance(value, bool):
        raise ValueError(f"{field} is required")
    try:
        d = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{field} must be a number") from exc
    if not d.is_finite() or d < 0:
        raise ValueError(f"{field} must be >= 0")
    if d > MAX_MONEY:
        raise ValueError(f"{field} must be at most {MAX_MONEY}")
    try:
        return to_money(d)
    except InvalidOperation as exc:
        raise ValueError(f"{field} must be a number") from exc
