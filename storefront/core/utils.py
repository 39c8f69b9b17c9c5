"""
Core Utilities

Shared helpers used across the application.
"""
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

CENTS = Decimal("0.01")


def utcnow() -> datetime:
    """
    Return timezone-aware UTC datetime.

    Use this instead of datetime.utcnow() which returns naive datetime.
    """
    return datetime.now(timezone.utc)


def quantize_money(value) -> Decimal:
    """Round a monetary value to cents, half up."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def dollars_to_cents(amount) -> int:
    """Convert dollars to integer cents for the payment processor."""
    return int(quantize_money(amount) * 100)


def cents_to_dollars(cents: int) -> Decimal:
    return quantize_money(Decimal(cents) / 100)
