"""Coupon validation schemas."""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class CouponValidateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    code: str = Field(..., min_length=1, max_length=20)
    cart_total: Decimal = Field(..., ge=0, description="Cart subtotal in rupees")
