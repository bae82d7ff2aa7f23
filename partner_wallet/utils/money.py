"""Decimal helpers for converting between major and minor currency units."""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
MINOR_UNITS_PER_MAJOR = Decimal("100")


def quantize_amount(amount: Decimal | int | str) -> Decimal:
    """Round an amount to two decimal places."""

    return Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)


def minor_to_major(amount_minor: int) -> Decimal:
    """Convert an integer amount in minor units (paise) to a major-unit Decimal."""

    return (Decimal(amount_minor) / MINOR_UNITS_PER_MAJOR).quantize(CENT)


def major_to_minor(amount: Decimal | int | str) -> int:
    """Convert a major-unit amount to the smallest currency unit expected by Razorpay."""

    normalized = quantize_amount(amount)
    return int((normalized * MINOR_UNITS_PER_MAJOR).to_integral_value())


__all__ = ["CENT", "quantize_amount", "minor_to_major", "major_to_minor"]
