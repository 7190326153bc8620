"""Order status and state machine enums for order lifecycle management.

This module defines the order status, payment status and payment method
enums together with the transition tables the state machine enforces.
"""

from enum import Enum
from typing import Dict, Set


class OrderStatus(str, Enum):
    """Order lifecycle status.

    Valid transitions (admin, system and gateway initiated):
    - PENDING -> CONFIRMED, PROCESSING, SHIPPED, DELIVERED, CANCELLED, REFUNDED
    - CONFIRMED / PROCESSING / SHIPPED / DELIVERED -> any of PROCESSING,
      SHIPPED, DELIVERED, CANCELLED, REFUNDED (no ordering among the first three)
    - CANCELLED -> REFUNDED
    - REFUNDED -> (terminal state)

    Customers may only cancel, and only from PENDING or CONFIRMED.
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"

    @classmethod
    def from_string(cls, value: str) -> "OrderStatus":
        """Convert string to OrderStatus enum.

        Raises:
            ValueError: If value is not a valid status
        """
        try:
            return cls(value.lower())
        except ValueError:
            valid_values = ", ".join(s.value for s in cls)
            raise ValueError(
                f"Invalid order status: {value}. "
                f"Valid values are: {valid_values}"
            )

    def is_terminal(self) -> bool:
        """Check if no manual progression is possible from this status."""
        return self in {OrderStatus.CANCELLED, OrderStatus.REFUNDED}

    def can_cancel(self) -> bool:
        """Check if the customer may cancel from this status."""
        return self in CUSTOMER_CANCELLABLE_STATUSES


class PaymentStatus(str, Enum):
    """Payment status, tracked independently from the order status.

    Valid transitions:
    - PENDING -> PAID, FAILED
    - FAILED -> PAID, FAILED (retried attempt)
    - PAID -> REFUNDED
    - REFUNDED -> (terminal state)
    """

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"

    @classmethod
    def from_string(cls, value: str) -> "PaymentStatus":
        """Convert string to PaymentStatus enum.

        Raises:
            ValueError: If value is not a valid payment status
        """
        try:
            return cls(value.lower())
        except ValueError:
            valid_values = ", ".join(s.value for s in cls)
            raise ValueError(
                f"Invalid payment status: {value}. "
                f"Valid values are: {valid_values}"
            )


class PaymentMethod(str, Enum):
    """Payment methods accepted at checkout."""

    COD = "cod"
    PAY_LATER = "pay_later"
    RAZORPAY = "razorpay"
    UPI = "upi"
    CARD = "card"
    NETBANKING = "netbanking"
    WALLET = "wallet"


class TimelineStatus(str, Enum):
    """Timeline entry labels for payment events.

    Status transitions are recorded with the OrderStatus value itself.
    """

    PAID = "paid"
    PAYMENT_FAILED = "payment_failed"
    REFUND_INITIATED = "refund_initiated"
    PAYMENT_UPDATED = "payment_updated"


CUSTOMER_CANCELLABLE_STATUSES: Set[OrderStatus] = {
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
}

_FULFILMENT_TARGETS: Set[OrderStatus] = {
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
    OrderStatus.REFUNDED,
}

ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED} | _FULFILMENT_TARGETS,
    OrderStatus.CONFIRMED: set(_FULFILMENT_TARGETS),
    OrderStatus.PROCESSING: _FULFILMENT_TARGETS - {OrderStatus.PROCESSING},
    OrderStatus.SHIPPED: _FULFILMENT_TARGETS - {OrderStatus.SHIPPED},
    OrderStatus.DELIVERED: _FULFILMENT_TARGETS - {OrderStatus.DELIVERED},
    OrderStatus.CANCELLED: {OrderStatus.REFUNDED},
    OrderStatus.REFUNDED: set(),
}

PAYMENT_STATUS_TRANSITIONS: Dict[PaymentStatus, Set[PaymentStatus]] = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.FAILED: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED},
    PaymentStatus.REFUNDED: set(),
}


def get_allowed_order_transitions(current: OrderStatus) -> Set[OrderStatus]:
    """Get the statuses reachable from ``current``."""
    return ORDER_STATUS_TRANSITIONS.get(current, set())


def validate_order_status_transition(
    current: OrderStatus, target: OrderStatus
) -> bool:
    """Check if an order status transition is allowed."""
    return target in get_allowed_order_transitions(current)


def validate_payment_status_transition(
    current: PaymentStatus, target: PaymentStatus
) -> bool:
    """Check if a payment status transition is allowed."""
    return target in PAYMENT_STATUS_TRANSITIONS.get(current, set())
