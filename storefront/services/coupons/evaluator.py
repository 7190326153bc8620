"""
Coupon evaluation.

``evaluate_coupon`` is a pure function of the coupon, the cart total and
the current time. Checks run in a fixed order and the first failing check
determines the rejection message.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from storefront.core.logging import get_logger
from storefront.database.base import as_utc, utcnow
from storefront.database.models.coupon import Coupon, DiscountType
from storefront.services.coupons.exceptions import (
    CouponNotFoundError,
    CouponRejectedError,
)
from storefront.services.orders.pricing import round_half_up

logger = get_logger(__name__)

INVALID_CODE_MESSAGE = "Invalid coupon code"
EXPIRED_MESSAGE = "This coupon has expired"
NOT_STARTED_MESSAGE = "This coupon is not yet active"
USAGE_EXHAUSTED_MESSAGE = "This coupon has reached its usage limit"


@dataclass(frozen=True)
class CouponEvaluation:
    """Result of a successful coupon evaluation."""

    code: str
    discount_type: DiscountType
    discount_value: Decimal
    discount_amount: Decimal
    description: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "discount_type": self.discount_type.value,
            "discount_value": float(self.discount_value),
            "discount_amount": float(self.discount_amount),
            "description": self.description,
        }


def format_amount(amount: Decimal) -> str:
    """Format a currency amount without trailing zero decimals."""
    if amount == amount.to_integral_value():
        return str(int(amount))
    return f"{amount:.2f}"


def check_availability(coupon: Optional[Coupon], now: Optional[datetime] = None) -> Coupon:
    """
    Run the checks that do not depend on the cart total.

    Raises:
        CouponNotFoundError: If the coupon is missing or inactive
        CouponRejectedError: If expired, not started or used up
    """
    if coupon is None or not coupon.is_active:
        raise CouponNotFoundError(INVALID_CODE_MESSAGE)

    now = now or utcnow()

    valid_until = as_utc(coupon.valid_until)
    if valid_until is not None and valid_until < now:
        raise CouponRejectedError(EXPIRED_MESSAGE, code=coupon.code)

    valid_from = as_utc(coupon.valid_from)
    if valid_from is not None and valid_from > now:
        raise CouponRejectedError(NOT_STARTED_MESSAGE, code=coupon.code)

    if coupon.is_usage_exhausted:
        raise CouponRejectedError(
            USAGE_EXHAUSTED_MESSAGE,
            code=coupon.code,
            used_count=coupon.used_count,
            usage_limit=coupon.usage_limit,
        )

    return coupon


def calculate_discount(coupon: Coupon, cart_total: Decimal) -> Decimal:
    """
    Calculate the discount for a cart total.

    Percentage discounts are capped at ``max_discount_amount`` when set.
    The result is rounded half-up to whole units and never exceeds the
    cart total.
    """
    if coupon.discount_type == DiscountType.PERCENTAGE:
        amount = round_half_up(cart_total * coupon.discount_value / Decimal("100"))
        if coupon.max_discount_amount and amount > coupon.max_discount_amount:
            amount = coupon.max_discount_amount
    else:
        amount = round_half_up(coupon.discount_value)

    amount = min(amount, cart_total)
    return max(amount, Decimal("0"))


def evaluate_coupon(
    coupon: Optional[Coupon],
    cart_total: Decimal,
    now: Optional[datetime] = None,
) -> CouponEvaluation:
    """
    Validate a coupon against a cart total and compute the discount.

    Checks, in order: exists and active, not expired, already started,
    usage limit not reached, cart total meets the minimum order amount.

    Args:
        coupon: Coupon loaded by code, or None
        cart_total: Cart total the discount applies to
        now: Evaluation time, defaults to now

    Returns:
        CouponEvaluation with ``0 <= discount_amount <= cart_total``

    Raises:
        CouponNotFoundError: If the coupon is missing or inactive
        CouponRejectedError: If any other check fails
    """
    coupon = check_availability(coupon, now)

    if coupon.min_order_amount and cart_total < coupon.min_order_amount:
        raise CouponRejectedError(
            f"Minimum order amount of ₹{format_amount(coupon.min_order_amount)} required",
            code=coupon.code,
            cart_total=float(cart_total),
            min_order_amount=float(coupon.min_order_amount),
        )

    if coupon.per_user_limit:
        # Modelled but not checked against the customer's order history.
        logger.debug(
            "Per-user coupon limit not enforced",
            code=coupon.code,
            per_user_limit=coupon.per_user_limit,
        )

    discount_amount = calculate_discount(coupon, cart_total)

    return CouponEvaluation(
        code=coupon.code,
        discount_type=coupon.discount_type,
        discount_value=coupon.discount_value,
        discount_amount=discount_amount,
        description=coupon.description,
    )
