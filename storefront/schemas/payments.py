"""
Payment Pydantic schemas for gateway checkout.
"""

from uuid import UUID

from pydantic import BaseModel, Field


class GatewayOrderRequest(BaseModel):
    """Request a gateway order for an unpaid order."""

    order_id: UUID = Field(..., description="Order to pay for")


class PaymentVerifyRequest(BaseModel):
    """Checkout handler result forwarded by the storefront."""

    order_id: UUID
    razorpay_order_id: str = Field(..., min_length=1, max_length=64)
    razorpay_payment_id: str = Field(..., min_length=1, max_length=64)
    razorpay_signature: str = Field(..., min_length=1, max_length=256)
