"""Money handling. Callers speak rupees (Decimal, 2 places); MongoDB stores int64 paise.

Integer paise keep $inc and $gte exact on the server, so a balance built from
100.10 + 200.20 covers a 300.30 withdrawal.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from app.core.exceptions import ValidationError

CENT = Decimal("0.01")

_MAX_PAISE = 2**63 - 1


def round_money(value: Any) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_paise(amount: Decimal) -> int:
    return int(round_money(amount) * 100)


def to_rupees(paise: int | None) -> Decimal:
    return round_money(Decimal(paise or 0) / 100)


def parse_amount(amount: Any) -> Decimal:
    """Coerce a caller amount to rupees; reject non-numeric, non-finite and non-positive values."""
    invalid = ValidationError("Invalid amount. Must be a positive number.")
    if isinstance(amount, bool):
        raise invalid
    try:
        # str() first so a float like 100.1 becomes Decimal("100.1"), not its binary expansion
        value = Decimal(str(amount).strip())
        if not value.is_finite():
            raise invalid
        value = round_money(value)
    except (InvalidOperation, ValueError):
        raise invalid
    if value <= 0 or value * 100 > _MAX_PAISE:
        raise invalid
    return value
