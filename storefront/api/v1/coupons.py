"""
Coupon endpoints.
"""

from fastapi import APIRouter

from storefront.api.deps import DatabaseSession
from storefront.schemas.common import ApiResponse, ok
from storefront.schemas.coupons import CouponValidateRequest
from storefront.services.coupons.service import CouponService

router = APIRouter()


@router.post("/validate", response_model=ApiResponse, summary="Validate a coupon")
async def validate_coupon(
    request: CouponValidateRequest,
    db: DatabaseSession,
) -> ApiResponse:
    """
    Check a coupon code against a cart total and return the discount.

    Raises:
        CouponError: mapped to 400 with the rejection reason as message
    """
    evaluation = await CouponService(db).validate(request.code, request.cart_total)
    return ok(evaluation.to_dict(), message="Coupon applied")
