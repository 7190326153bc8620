"""
Order Pydantic schemas for API request validation.

Shape checks live here; business rules (non-empty cart, required address
lines, stock and pricing) are enforced by the order service so both paths
answer with a 400.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from storefront.services.orders.enums import OrderStatus, PaymentMethod, PaymentStatus


class OrderItemRequest(BaseModel):
    """One cart line. A product id or slug identifies the product."""

    model_config = ConfigDict(str_strip_whitespace=True)

    product_id: Optional[str] = Field(None, max_length=200)
    slug: Optional[str] = Field(None, max_length=200)
    quantity: int = Field(..., ge=1, le=100, description="Units ordered")
    price: Optional[Decimal] = Field(
        None,
        ge=0,
        description="Client side unit price, ignored unless overrides are enabled",
    )
    variant: Optional[Union[str, dict[str, Any]]] = None
    customization: Optional[Union[str, dict[str, Any]]] = None

    @model_validator(mode="after")
    def require_reference(self) -> "OrderItemRequest":
        if not self.product_id and not self.slug:
            raise ValueError("Each item needs a product id or slug")
        return self


class ShippingAddress(BaseModel):
    """Delivery address snapshot stored on the order."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="allow")

    name: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[str] = Field(None, max_length=255)
    address: Optional[str] = Field(None, max_length=500)
    landmark: Optional[str] = Field(None, max_length=200)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    pincode: Optional[str] = Field(None, max_length=10)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        digits = "".join(filter(str.isdigit, v))
        if len(digits) < 10:
            raise ValueError("Phone number must have at least 10 digits")
        return v


class OrderCreateRequest(BaseModel):
    """Checkout request."""

    items: list[OrderItemRequest] = Field(default_factory=list)
    shipping_address: Optional[ShippingAddress] = None
    payment_method: PaymentMethod = PaymentMethod.RAZORPAY
    coupon_code: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = Field(None, max_length=1000)

    def items_payload(self) -> list[dict[str, Any]]:
        return [item.model_dump(exclude_none=True) for item in self.items]

    def address_payload(self) -> dict[str, Any]:
        if self.shipping_address is None:
            return {}
        return self.shipping_address.model_dump(exclude_none=True)


class OrderActionRequest(BaseModel):
    """Customer action on an existing order. Only cancellation is supported."""

    action: str = Field(..., min_length=1, max_length=50)
    reason: Optional[str] = Field(None, max_length=500)


class TrackingUpdate(BaseModel):
    carrier: Optional[str] = Field(None, max_length=100)
    tracking_number: Optional[str] = Field(None, max_length=100)
    tracking_url: Optional[str] = Field(None, max_length=500)
    estimated_delivery: Optional[datetime] = None


class AdminOrderUpdate(BaseModel):
    """Back office order update."""

    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
    tracking: Optional[TrackingUpdate] = None
    note: Optional[str] = Field(
        None,
        max_length=500,
        description="Timeline message for a status change",
    )
    admin_notes: Optional[str] = Field(None, max_length=2000)
    send_email: bool = True

    def tracking_payload(self) -> Optional[dict[str, Any]]:
        if self.tracking is None:
            return None
        return self.tracking.model_dump(exclude_none=True)

