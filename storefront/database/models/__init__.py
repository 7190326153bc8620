"""
Database models package initialization.

Models are imported here so they are registered with the Base metadata for
Alembic and ``create_all``.
"""

from storefront.database.base import Base, BaseModel, TimestampMixin, UUIDMixin
from storefront.database.models.coupon import Coupon, DiscountType
from storefront.database.models.order import Order
from storefront.database.models.product import Product
from storefront.database.models.return_request import (
    RefundMethod,
    ReturnReason,
    ReturnRequest,
    ReturnStatus,
)
from storefront.database.models.user import User, UserRole

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "UUIDMixin",
    "Coupon",
    "DiscountType",
    "Order",
    "Product",
    "RefundMethod",
    "ReturnReason",
    "ReturnRequest",
    "ReturnStatus",
    "User",
    "UserRole",
]
