"""
Order model for order intake, payment reconciliation and fulfilment tracking.

Line items, the shipping address, payment details, tracking info and the
timeline are stored as JSON snapshots on the order row. Line items and the
address are written once at intake and never refreshed from the live
product or address book.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    CheckConstraint,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from storefront.database.base import BaseModel, JSONType, as_utc
from storefront.services.orders.enums import OrderStatus, PaymentStatus


class Order(BaseModel):
    """
    Customer order.

    Attributes:
        order_number: Human-readable unique order number
        user_id: Purchaser
        items: Immutable line snapshots (product_id, name, slug, image,
            price, quantity, variant, customization)
        shipping_address: Delivery address snapshot
        subtotal: Sum of line totals
        shipping_cost: Shipping charge
        discount: Coupon discount
        tax: Tax on subtotal minus discount
        total: subtotal + shipping_cost - discount + tax
        coupon_code: Applied coupon, if any
        status: Order lifecycle status
        payment_method: Checkout payment method
        payment_status: Payment lifecycle status
        payment_details: Gateway ids, signature, method and paid_at
        gateway_order_id: Gateway order id (indexed copy for webhooks)
        gateway_payment_id: Gateway payment id (indexed copy for refunds)
        tracking: Carrier, tracking number/url, estimated delivery
        notes: Customer notes
        admin_notes: Operator notes
        timeline: Append-only list of {status, message, timestamp}
    """

    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("subtotal >= 0", name="ck_orders_subtotal_non_negative"),
        CheckConstraint("discount >= 0", name="ck_orders_discount_non_negative"),
        CheckConstraint("total >= 0", name="ck_orders_total_non_negative"),
        Index("ix_orders_user_created", "user_id", "created_at"),
        Index("ix_orders_status_created", "status", "created_at"),
        {"comment": "Customer orders with embedded line and timeline snapshots"},
    )

    order_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        index=True,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    items: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
    )

    shipping_address: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
    )

    subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    shipping_cost: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0.00"),
    )

    discount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0.00"),
    )

    tax: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0.00"),
    )

    total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    coupon_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(
            OrderStatus,
            name="order_status",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
    )

    payment_method: Mapped[str] = mapped_column(String(30), nullable=False)

    payment_status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(
            PaymentStatus,
            name="payment_status",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True,
    )

    payment_details: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
    )

    gateway_order_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        index=True,
    )

    gateway_payment_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        index=True,
    )

    tracking: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    admin_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    timeline: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
    )

    @property
    def item_count(self) -> int:
        """Total number of units across all lines."""
        return sum(int(item.get("quantity", 0)) for item in self.items or [])

    @property
    def placed_at(self) -> Optional[datetime]:
        return as_utc(self.created_at)

    def to_summary(self) -> dict[str, Any]:
        """Intake response shape."""
        return {
            "id": str(self.id),
            "order_number": self.order_number,
            "total": float(self.total),
            "status": self.status.value,
            "payment_status": self.payment_status.value,
        }

    def to_response(self) -> dict[str, Any]:
        """Full order representation for customers and operators."""
        return {
            "id": str(self.id),
            "order_number": self.order_number,
            "user_id": str(self.user_id),
            "items": [
                {**item, "price": float(Decimal(str(item["price"])))}
                for item in self.items or []
            ],
            "shipping_address": self.shipping_address,
            "subtotal": float(self.subtotal),
            "shipping_cost": float(self.shipping_cost),
            "discount": float(self.discount),
            "tax": float(self.tax),
            "total": float(self.total),
            "coupon_code": self.coupon_code,
            "status": self.status.value,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status.value,
            "payment_details": self.payment_details or {},
            "tracking": self.tracking or {},
            "notes": self.notes,
            "admin_notes": self.admin_notes,
            "timeline": list(self.timeline or []),
            "created_at": as_utc(self.created_at).isoformat(),
            "updated_at": as_utc(self.updated_at).isoformat(),
        }
