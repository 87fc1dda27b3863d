"""Stake limits, payout multipliers and result matching for Standard and Loto bets.

Stakes and prices here are int paise.
"""

from decimal import Decimal

from app.core.exceptions import ValidationError

BET_TYPES = ("Single", "Jodi", "Patti")

DIGIT_LENGTH = {"Single": 1, "Jodi": 2, "Patti": 3}

# Rupees, inclusive
STAKE_LIMITS = {
    "Single": (5, 10000),
    "Jodi": (5, 50),
    "Patti": (5, 50),
}

MULTIPLIERS = {"Single": 9, "Jodi": 80, "Patti": 100}

# Loto tiers in match priority order: first char, first two chars, all three
LOTO_TIERS = (("single", 1, 9), ("double", 2, 80), ("triple", 3, 100))


def check_bet_type(bet_type: str) -> str:
    if bet_type not in BET_TYPES:
        raise ValidationError(f"Invalid bet type {bet_type!r}. Use one of {', '.join(BET_TYPES)}.")
    return bet_type


def check_digit(digit: str, length: int | None = None, max_length: int | None = None) -> str:
    digit = (digit or "").strip()
    if not digit.isascii() or not digit.isdigit():
        raise ValidationError("Invalid digit. Must contain only numeric characters.")
    if length is not None and len(digit) != length:
        raise ValidationError(f"Invalid digit. Expected exactly {length} digit(s).")
    if max_length is not None and len(digit) > max_length:
        raise ValidationError(f"Invalid digit. At most {max_length} digits allowed.")
    return digit


def check_stake(bet_type: str, amount: Decimal) -> None:
    """amount in rupees."""
    low, high = STAKE_LIMITS[bet_type]
    if amount < low or amount > high:
        names = "Single" if bet_type == "Single" else "Jodi or Patti"
        raise ValidationError(
            f"For {names} bet type, amount must be between {low} and {high}.",
            details={"min": low, "max": high},
        )


def standard_payout(bet_type: str, stake: int) -> int:
    return stake * MULTIPLIERS[bet_type]


def loto_comparison_digits(result_digit: str) -> dict[str, str]:
    return {tier: result_digit[:width] for tier, width, _ in LOTO_TIERS}


def loto_payout(bet_digit: str, stake: int, result_digit: str) -> tuple[str | None, int]:
    """Return (tier, winning_price); tier is None for a losing bet."""
    for tier, width, multiplier in LOTO_TIERS:
        if bet_digit == result_digit[:width]:
            return tier, stake * multiplier
    return None, 0
