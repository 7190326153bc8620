"""
Order pricing calculations.

All amounts are ``Decimal``. Tax and coupon discounts are rounded half-up
to whole currency units; shipping is a flat fee below the free shipping
threshold.
"""

import secrets
import string
import time
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from storefront.core.config import Settings, get_settings

_BASE36_ALPHABET = string.digits + string.ascii_uppercase
_WHOLE_UNIT = Decimal("1")


@dataclass(frozen=True)
class OrderTotals:
    """Monetary breakdown computed once at intake."""

    subtotal: Decimal
    shipping_cost: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal


def round_half_up(amount: Decimal) -> Decimal:
    """Round to whole currency units, halves away from zero."""
    return amount.quantize(_WHOLE_UNIT, rounding=ROUND_HALF_UP)


def calculate_shipping(
    subtotal: Decimal, settings: Optional[Settings] = None
) -> Decimal:
    """
    Calculate shipping cost for a subtotal.

    Args:
        subtotal: Sum of line totals
        settings: Optional settings override

    Returns:
        Zero at or above the free shipping threshold, else the flat fee
    """
    settings = settings or get_settings()
    if subtotal >= settings.free_shipping_threshold:
        return Decimal("0")
    return settings.flat_shipping_fee


def calculate_tax(
    subtotal: Decimal,
    discount: Decimal = Decimal("0"),
    settings: Optional[Settings] = None,
) -> Decimal:
    """Calculate tax on the discounted subtotal, rounded to whole units."""
    settings = settings or get_settings()
    return round_half_up(settings.tax_rate * (subtotal - discount))


def calculate_totals(
    subtotal: Decimal,
    discount: Decimal = Decimal("0"),
    settings: Optional[Settings] = None,
) -> OrderTotals:
    """
    Compute the full order breakdown.

    ``total == subtotal + shipping_cost - discount + tax`` always holds for
    the returned values.

    Example:
        >>> calculate_totals(Decimal("1200")).total
        Decimal('1416')
    """
    settings = settings or get_settings()
    shipping_cost = calculate_shipping(subtotal, settings)
    tax = calculate_tax(subtotal, discount, settings)
    total = subtotal + shipping_cost - discount + tax

    return OrderTotals(
        subtotal=subtotal,
        shipping_cost=shipping_cost,
        discount=discount,
        tax=tax,
        total=total,
    )


def to_base36(value: int) -> str:
    """Encode a non-negative integer in upper-case base 36."""
    if value < 0:
        raise ValueError("Cannot encode negative values")
    if value == 0:
        return "0"

    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def generate_order_number(
    prefix: Optional[str] = None, timestamp_ms: Optional[int] = None
) -> str:
    """
    Generate a human-readable order number.

    Format is ``<PREFIX>-<base36 ms timestamp>-<4 random base36 chars>``.
    Uniqueness is enforced by the database constraint; collisions are
    negligible at realistic volume.
    """
    prefix = prefix or get_settings().order_number_prefix
    if timestamp_ms is None:
        timestamp_ms = time.time_ns() // 1_000_000

    suffix = "".join(secrets.choice(_BASE36_ALPHABET) for _ in range(4))
    return f"{prefix}-{to_base36(timestamp_ms)}-{suffix}"
