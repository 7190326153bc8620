"""Order state machine implementation with transition validation.

This module implements the OrderStateMachine class which owns every mutation
of an order's status, payment status and timeline. Callers (intake, the
payment webhook, customer cancellation and the admin surface) never assign
those fields directly. The machine does not touch the session; callers
commit.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from storefront.core.logging import get_logger
from storefront.database.base import utcnow
from storefront.database.models.order import Order
from storefront.services.orders.enums import (
    OrderStatus,
    PaymentStatus,
    TimelineStatus,
    get_allowed_order_transitions,
    validate_order_status_transition,
    validate_payment_status_transition,
)
from storefront.services.orders.exceptions import (
    OrderCancellationError,
    StateTransitionError,
)

logger = get_logger(__name__)

TimelineLabel = Union[OrderStatus, TimelineStatus, str]


def _label(value: TimelineLabel) -> str:
    return value.value if hasattr(value, "value") else str(value)


class OrderStateMachine:
    """State machine for order status, payment status and timeline.

    Every applied transition appends exactly one ``{status, message,
    timestamp}`` entry. The timeline list is replaced on each append so the
    JSON column is flagged dirty; existing entries are never edited.
    """

    def record(
        self,
        order: Order,
        status: TimelineLabel,
        message: str,
        at: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Append one timeline entry.

        Args:
            order: Order to update
            status: Status or event label for the entry
            message: Human-readable message
            at: Optional timestamp, defaults to now

        Returns:
            The appended entry
        """
        entry = {
            "status": _label(status),
            "message": message,
            "timestamp": (at or utcnow()).isoformat(),
        }
        order.timeline = [*(order.timeline or []), entry]
        return entry

    def can_transition(self, order: Order, target: OrderStatus) -> bool:
        return validate_order_status_transition(order.status, target)

    def can_update_payment(self, order: Order, target: PaymentStatus) -> bool:
        return validate_payment_status_transition(order.payment_status, target)

    def ensure_transition(self, order: Order, target: OrderStatus) -> None:
        """Raise unless ``target`` is reachable from the current status."""
        current = order.status
        if not validate_order_status_transition(current, target):
            allowed = get_allowed_order_transitions(current)
            raise StateTransitionError(
                f"Cannot change order status from {current.value} to {target.value}",
                current_state=current.value,
                target_state=target.value,
                allowed_transitions=sorted(s.value for s in allowed),
            )

    def ensure_payment_transition(self, order: Order, target: PaymentStatus) -> None:
        """Raise unless the payment status may move to ``target``."""
        current = order.payment_status
        if not validate_payment_status_transition(current, target):
            raise StateTransitionError(
                f"Cannot change payment status from {current.value} to {target.value}",
                current_state=current.value,
                target_state=target.value,
            )

    def set_status(self, order: Order, target: OrderStatus) -> None:
        """Move the order to ``target`` without recording an entry.

        Used when a single event changes several fields and records one
        combined entry itself.

        Raises:
            StateTransitionError: If the transition is not allowed
        """
        self.ensure_transition(order, target)
        order.status = target

    def set_payment_status(self, order: Order, target: PaymentStatus) -> None:
        """Move the payment status to ``target`` without recording an entry.

        Raises:
            StateTransitionError: If the transition is not allowed
        """
        self.ensure_payment_transition(order, target)
        order.payment_status = target

    def transition(
        self,
        order: Order,
        target: OrderStatus,
        message: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Apply an order status transition and record it.

        Args:
            order: Order to transition
            target: Target status
            message: Timeline message, defaults to a generic one

        Returns:
            The appended timeline entry

        Raises:
            StateTransitionError: If the transition is not allowed
        """
        previous = order.status
        self.set_status(order, target)
        entry = self.record(
            order,
            target,
            message or f"Order status updated to {target.value}",
        )

        logger.info(
            "Order status transitioned",
            order_id=str(order.id),
            order_number=order.order_number,
            transition=f"{previous.value}->{target.value}",
        )
        return entry

    def update_payment(
        self,
        order: Order,
        target: PaymentStatus,
        message: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Apply a payment status transition and record it.

        Raises:
            StateTransitionError: If the transition is not allowed
        """
        previous = order.payment_status
        self.set_payment_status(order, target)
        entry = self.record(
            order,
            TimelineStatus.PAYMENT_UPDATED,
            message or f"Payment status updated to {target.value}",
        )

        logger.info(
            "Payment status transitioned",
            order_id=str(order.id),
            order_number=order.order_number,
            transition=f"{previous.value}->{target.value}",
        )
        return entry

    def cancel_by_customer(
        self, order: Order, reason: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Cancel on behalf of the purchaser.

        Only pending and confirmed orders can be cancelled. A paid order
        also moves its payment to refunded and records a second entry; no
        gateway refund is issued here.

        Returns:
            The appended timeline entries

        Raises:
            OrderCancellationError: If the order is past the cancellable stage
        """
        if not order.status.can_cancel():
            logger.info(
                "Customer cancellation rejected",
                order_id=str(order.id),
                status=order.status.value,
            )
            raise OrderCancellationError(
                "Order cannot be cancelled at this stage",
                order_id=str(order.id),
                status=order.status.value,
            )

        message = "Order cancelled by customer"
        if reason:
            message = f"{message}: {reason}"

        entries = [self.transition(order, OrderStatus.CANCELLED, message)]

        if order.payment_status == PaymentStatus.PAID:
            self.set_payment_status(order, PaymentStatus.REFUNDED)
            entries.append(
                self.record(
                    order,
                    TimelineStatus.REFUND_INITIATED,
                    "Refund initiated for cancelled order",
                )
            )
            logger.info(
                "Refund marked for cancelled order",
                order_id=str(order.id),
                amount=float(order.total),
            )

        return entries
