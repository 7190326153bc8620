"""
Coupon database model for promotional discounts.

This module defines the Coupon model. Validation and discount calculation
live in ``storefront.services.coupons.evaluator`` so they can be exercised
without a database.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from storefront.database.base import BaseModel


class DiscountType(str, Enum):
    """Enumeration of discount types."""

    PERCENTAGE = "percentage"
    FIXED = "fixed"


class Coupon(BaseModel):
    """
    Promotional coupon.

    Attributes:
        code: Unique upper-case coupon code
        description: Shown to the customer when applied
        discount_type: Percentage or fixed amount
        discount_value: Percentage (0-100) or amount in currency units
        min_order_amount: Cart total required to apply the coupon
        max_discount_amount: Cap for percentage discounts
        usage_limit: Global number of uses (NULL or 0 = unlimited)
        used_count: Uses recorded so far
        per_user_limit: Uses allowed per customer (stored, not enforced)
        valid_from: Start of validity window
        valid_until: End of validity window
        is_active: Inactive coupons are treated as unknown codes
    """

    __tablename__ = "coupons"
    __table_args__ = (
        CheckConstraint(
            "discount_value >= 0",
            name="ck_coupons_discount_value_non_negative",
        ),
        CheckConstraint(
            "used_count >= 0",
            name="ck_coupons_used_count_non_negative",
        ),
        CheckConstraint(
            "per_user_limit IS NULL OR per_user_limit >= 1",
            name="ck_coupons_per_user_limit_positive",
        ),
        {"comment": "Promotional coupons for order discounts"},
    )

    code: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        unique=True,
        index=True,
    )

    description: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    discount_type: Mapped[DiscountType] = mapped_column(
        SQLEnum(
            DiscountType,
            name="discount_type",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
    )

    discount_value: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
    )

    min_order_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2),
        nullable=True,
    )

    max_discount_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2),
        nullable=True,
    )

    usage_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    per_user_limit: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        default=1,
    )

    valid_from: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    valid_until: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def is_usage_exhausted(self) -> bool:
        """Check if the global usage limit has been reached."""
        return bool(self.usage_limit) and self.used_count >= self.usage_limit
