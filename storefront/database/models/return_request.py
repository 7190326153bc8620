"""
Return request model for post-delivery returns.

A return references the delivered order and snapshots the returned lines
with the price paid, so the refund amount never follows later catalogue
changes.
"""

import uuid
from decimal import Decimal
from enum import Enum
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


class ReturnStatus(str, Enum):
    """Return request lifecycle status."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PICKED_UP = "picked_up"
    RECEIVED = "received"
    REFUNDED = "refunded"


# A closed return does not block a new request for the same order
CLOSED_RETURN_STATUSES = (ReturnStatus.REJECTED, ReturnStatus.REFUNDED)


class ReturnReason(str, Enum):
    """Reason given for a returned line."""

    DAMAGED = "damaged"
    WRONG_ITEM = "wrong_item"
    NOT_AS_DESCRIBED = "not_as_described"
    QUALITY_ISSUE = "quality_issue"
    CHANGED_MIND = "changed_mind"
    OTHER = "other"


class RefundMethod(str, Enum):
    """Where the refund for a return is credited."""

    ORIGINAL = "original"
    STORE_CREDIT = "store_credit"


class ReturnRequest(BaseModel):
    """
    Customer return request.

    Attributes:
        return_number: Human-readable unique return number
        order_id: Delivered order being returned
        user_id: Customer who owns the order
        items: Returned line snapshots (line, product_id, name, price,
            quantity, reason, description)
        refund_amount: Sum of price x quantity over the returned lines
        refund_method: Original payment method or store credit
        status: Return lifecycle status
        images: Evidence image URLs
        admin_notes: Operator notes
        timeline: Append-only list of {status, message, timestamp}
    """

    __tablename__ = "return_requests"
    __table_args__ = (
        CheckConstraint(
            "refund_amount >= 0",
            name="ck_return_requests_refund_amount_non_negative",
        ),
        Index("ix_return_requests_user_created", "user_id", "created_at"),
        {"comment": "Customer return requests for delivered orders"},
    )

    return_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        index=True,
    )

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=False,
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

    refund_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0"),
    )

    refund_method: Mapped[RefundMethod] = mapped_column(
        SQLEnum(
            RefundMethod,
            name="refund_method",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=RefundMethod.ORIGINAL,
    )

    status: Mapped[ReturnStatus] = mapped_column(
        SQLEnum(
            ReturnStatus,
            name="return_status",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=ReturnStatus.PENDING,
        index=True,
    )

    images: Mapped[list[str]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
    )

    admin_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    timeline: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
    )

    def to_response(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "return_number": self.return_number,
            "order_id": str(self.order_id),
            "items": [
                {**item, "price": float(Decimal(str(item["price"])))}
                for item in self.items or []
            ],
            "refund_amount": float(self.refund_amount),
            "refund_method": self.refund_method.value,
            "status": self.status.value,
            "images": list(self.images or []),
            "timeline": list(self.timeline or []),
            "created_at": as_utc(self.created_at).isoformat(),
        }
