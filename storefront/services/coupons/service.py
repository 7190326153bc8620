"""
Coupon service.

Looks coupons up by code and runs the evaluator. Coupons are read-only to
this service; usage counters are maintained by the back office.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.logging import get_logger
from storefront.database.models.coupon import Coupon
from storefront.services.coupons.evaluator import (
    CouponEvaluation,
    check_availability,
    evaluate_coupon,
)
from storefront.services.coupons.exceptions import CouponError
from storefront.services.coupons.repository import CouponRepository, normalize_code

logger = get_logger(__name__)


class CouponService:
    """Coupon validation entry point for the API and order intake."""

    def __init__(self, session: AsyncSession):
        self.repository = CouponRepository(session)

    async def validate(
        self,
        code: str,
        cart_total: Decimal,
        now: Optional[datetime] = None,
    ) -> CouponEvaluation:
        """
        Validate a coupon code against a cart total.

        Raises:
            CouponNotFoundError: If no active coupon has this code
            CouponRejectedError: If the coupon fails a validity check
        """
        coupon = await self.repository.get_active_by_code(code)
        try:
            evaluation = evaluate_coupon(coupon, cart_total, now)
        except CouponError as e:
            logger.info(
                "Coupon rejected",
                code=normalize_code(code),
                cart_total=float(cart_total),
                reason=e.message,
            )
            raise

        logger.info(
            "Coupon validated",
            code=evaluation.code,
            cart_total=float(cart_total),
            discount_amount=float(evaluation.discount_amount),
        )
        return evaluation

    async def get_applicable(
        self, code: str, now: Optional[datetime] = None
    ) -> Coupon:
        """
        Load a coupon and run the checks that do not need a cart total.

        Used by order intake before any line item is processed.
        """
        coupon = await self.repository.get_active_by_code(code)
        return check_availability(coupon, now)
