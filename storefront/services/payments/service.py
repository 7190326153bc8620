"""
Payment service for gateway orders, checkout verification and webhooks.

This module implements the PaymentService class. Webhook events are parsed
into typed envelopes and dispatched through an explicit event table; events
outside the table are acknowledged and ignored. Every order mutation goes
through the order state machine so each applied change records exactly one
timeline entry.
"""

import asyncio
import json
import uuid
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, ConfigDict, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import Settings, get_settings
from storefront.core.logging import get_logger
from storefront.database.base import utcnow
from storefront.database.models.order import Order
from storefront.database.models.user import User
from storefront.services.notifications.templates import format_currency
from storefront.services.orders.enums import (
    OrderStatus,
    PaymentStatus,
    TimelineStatus,
)
from storefront.services.orders.exceptions import (
    OrderNotFoundError,
    OrderValidationError,
    StateTransitionError,
)
from storefront.services.orders.repository import OrderRepository
from storefront.services.orders.state_machine import OrderStateMachine
from storefront.services.payments.razorpay_client import (
    RazorpayClient,
    RazorpayClientError,
    RazorpaySignatureError,
    from_paise,
    get_razorpay_client,
    to_paise,
)

logger = get_logger(__name__)


class PaymentServiceError(Exception):
    """Base exception for payment service errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class WebhookSignatureError(PaymentServiceError):
    """Raised when a webhook signature is missing or invalid."""

    pass


class WebhookPayloadError(PaymentServiceError):
    """Raised when a signed webhook body is not a valid event envelope."""

    pass


class PaymentVerificationError(PaymentServiceError):
    """Raised when a checkout payment signature does not verify."""

    pass


class PaymentGatewayUnavailableError(PaymentServiceError):
    """Raised when the gateway credentials are not configured."""

    pass


class GatewayError(PaymentServiceError):
    """Raised when the gateway rejects or fails a request."""

    pass


class WebhookEvent(str, Enum):
    """Gateway webhook events this service acts on."""

    PAYMENT_CAPTURED = "payment.captured"
    PAYMENT_FAILED = "payment.failed"
    REFUND_CREATED = "refund.created"
    ORDER_PAID = "order.paid"

    @classmethod
    def parse(cls, value: str) -> Optional["WebhookEvent"]:
        try:
            return cls(value)
        except ValueError:
            return None


class _Entity(BaseModel):
    model_config = ConfigDict(extra="ignore")


class PaymentEntity(_Entity):
    id: str
    order_id: Optional[str] = None
    method: Optional[str] = None
    error_description: Optional[str] = None


class RefundEntity(_Entity):
    id: str
    payment_id: str
    amount: int


class GatewayOrderEntity(_Entity):
    id: str


class WebhookEnvelope(_Entity):
    """Top-level webhook body: ``{event, payload}``."""

    event: str
    payload: dict[str, Any] = {}

    def entity(self, name: str, model: type[_Entity]) -> Any:
        """Extract ``payload[name]["entity"]`` as ``model``."""
        try:
            return model.model_validate(self.payload[name]["entity"])
        except (KeyError, TypeError, ValidationError) as e:
            raise WebhookPayloadError(
                f"Malformed {self.event} payload",
                event=self.event,
            ) from e


class PaymentService:
    """
    Payment service coordinating the gateway and order state.

    Attributes:
        orders: Order repository
        state_machine: Order state machine
        gateway: Razorpay client, created lazily when payments are enabled
    """

    def __init__(
        self,
        session: AsyncSession,
        gateway: Optional[RazorpayClient] = None,
        settings: Optional[Settings] = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.orders = OrderRepository(session)
        self.state_machine = OrderStateMachine()
        self._gateway = gateway

        self._handlers: dict[
            WebhookEvent, Callable[[WebhookEnvelope], Awaitable[dict[str, Any]]]
        ] = {
            WebhookEvent.PAYMENT_CAPTURED: self._handle_payment_captured,
            WebhookEvent.PAYMENT_FAILED: self._handle_payment_failed,
            WebhookEvent.REFUND_CREATED: self._handle_refund_created,
            WebhookEvent.ORDER_PAID: self._handle_order_paid,
        }

    @property
    def gateway(self) -> RazorpayClient:
        if not self.settings.payments_enabled:
            raise PaymentGatewayUnavailableError("Payment gateway not configured")
        if self._gateway is None:
            self._gateway = get_razorpay_client()
        return self._gateway

    # =========================================================================
    # Checkout
    # =========================================================================

    async def create_gateway_order(
        self, order_id: uuid.UUID, user: User
    ) -> dict[str, Any]:
        """
        Create a gateway order for an unpaid order owned by ``user``.

        Returns:
            Dictionary with gateway_order_id, amount (paise), currency and key_id

        Raises:
            PaymentGatewayUnavailableError: If the gateway is not configured
            OrderNotFoundError: If the order is not the user's
            OrderValidationError: If the order is not awaiting payment
            GatewayError: If the gateway call fails
        """
        gateway = self.gateway

        order = await self.orders.get_for_user(order_id, user.id)
        if order is None:
            raise OrderNotFoundError("Order not found", order_id=str(order_id))

        if order.payment_status == PaymentStatus.PAID:
            raise OrderValidationError("Order is already paid", order_id=str(order.id))
        if order.status != OrderStatus.PENDING:
            raise OrderValidationError(
                "Order is not awaiting payment",
                order_id=str(order.id),
                status=order.status.value,
            )

        amount = to_paise(order.total)
        try:
            gateway_order = await asyncio.to_thread(
                gateway.create_order,
                amount,
                order.order_number,
                self.settings.currency,
                {"order_id": str(order.id), "user_id": str(user.id)},
            )
        except RazorpayClientError as e:
            raise GatewayError(
                "Failed to create payment order",
                order_id=str(order.id),
                code=e.code,
            ) from e

        order.gateway_order_id = gateway_order["id"]
        order.payment_details = {
            **(order.payment_details or {}),
            "gateway_order_id": gateway_order["id"],
        }
        await self.session.commit()

        return {
            "gateway_order_id": gateway_order["id"],
            "amount": gateway_order.get("amount", amount),
            "currency": gateway_order.get("currency", self.settings.currency),
            "key_id": gateway.key_id,
            "order_number": order.order_number,
        }

    async def verify_checkout_payment(
        self,
        order_id: uuid.UUID,
        user: User,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature: str,
    ) -> dict[str, Any]:
        """
        Verify a checkout signature and mark the order paid.

        Already-paid orders are returned unchanged.

        Raises:
            PaymentGatewayUnavailableError: If the gateway is not configured
            PaymentVerificationError: If the signature or gateway order id does not match
            OrderNotFoundError: If the order is not the user's
            StateTransitionError: If the payment status cannot become paid
        """
        try:
            self.gateway.verify_payment_signature(
                gateway_order_id, gateway_payment_id, signature
            )
        except RazorpaySignatureError as e:
            logger.warning(
                "Checkout signature verification failed",
                order_id=str(order_id),
                gateway_order_id=gateway_order_id,
            )
            raise PaymentVerificationError("Invalid payment signature") from e

        order = await self.orders.get_for_user(order_id, user.id)
        if order is None:
            raise OrderNotFoundError("Order not found", order_id=str(order_id))

        if order.gateway_order_id and order.gateway_order_id != gateway_order_id:
            raise PaymentVerificationError(
                "Payment does not match this order",
                order_id=str(order.id),
            )

        if order.payment_status != PaymentStatus.PAID:
            self._mark_paid(
                order,
                "Payment received successfully via Razorpay",
                gateway_order_id=gateway_order_id,
                gateway_payment_id=gateway_payment_id,
                method="razorpay",
                signature=signature,
            )
            await self.session.commit()

        logger.info(
            "Checkout payment verified",
            order_id=str(order.id),
            gateway_payment_id=gateway_payment_id,
        )

        return {
            "payment_id": gateway_payment_id,
            "gateway_order_id": gateway_order_id,
            "order": order.to_summary(),
        }

    # =========================================================================
    # Webhook
    # =========================================================================

    async def handle_webhook(
        self, body: bytes, signature: Optional[str]
    ) -> dict[str, Any]:
        """
        Verify and apply a gateway webhook.

        Args:
            body: Raw request body
            signature: Value of the signature header

        Returns:
            Dictionary describing what was applied

        Raises:
            PaymentGatewayUnavailableError: If the gateway is not configured
            WebhookSignatureError: If the signature is missing or invalid
            WebhookPayloadError: If the verified body is not a valid envelope
        """
        gateway = self.gateway

        if not signature:
            logger.warning("Webhook received without signature")
            raise WebhookSignatureError("No signature")

        try:
            text = body.decode("utf-8")
            gateway.verify_webhook_signature(text, signature)
        except (UnicodeDecodeError, RazorpaySignatureError) as e:
            logger.error("Webhook signature verification failed", error=str(e))
            raise WebhookSignatureError("Invalid signature") from e

        try:
            envelope = WebhookEnvelope.model_validate(json.loads(text))
        except (ValueError, ValidationError) as e:
            raise WebhookPayloadError("Invalid webhook payload") from e

        event = WebhookEvent.parse(envelope.event)
        if event is None:
            logger.info("Unhandled webhook event type", event_type=envelope.event)
            return {"event": envelope.event, "handled": False}

        result = await self._handlers[event](envelope)
        logger.info("Webhook processed", event_type=event.value, **result)
        return {"event": event.value, **result}

    async def _handle_payment_captured(self, envelope: WebhookEnvelope) -> dict[str, Any]:
        payment: PaymentEntity = envelope.entity("payment", PaymentEntity)
        order = (
            await self.orders.get_by_gateway_order_id(payment.order_id)
            if payment.order_id
            else None
        )
        if order is None:
            return self._not_found(gateway_order_id=payment.order_id)

        if order.payment_status == PaymentStatus.PAID:
            self._merge_payment_details(
                order, gateway_payment_id=payment.id, method=payment.method
            )
            await self.session.commit()
            logger.info(
                "Order already paid, recorded captured payment",
                order_id=str(order.id),
                gateway_payment_id=payment.id,
            )
            return {"handled": False, "order_id": str(order.id), "reason": "already_paid"}

        if not self.state_machine.can_update_payment(order, PaymentStatus.PAID):
            return self._skipped(order, PaymentStatus.PAID)

        self._mark_paid(
            order,
            "Payment captured successfully",
            gateway_payment_id=payment.id,
            method=payment.method,
        )
        await self.session.commit()
        return {"handled": True, "order_id": str(order.id)}

    async def _handle_order_paid(self, envelope: WebhookEnvelope) -> dict[str, Any]:
        gateway_order: GatewayOrderEntity = envelope.entity("order", GatewayOrderEntity)
        order = await self.orders.get_by_gateway_order_id(gateway_order.id)
        if order is None:
            return self._not_found(gateway_order_id=gateway_order.id)

        if order.payment_status == PaymentStatus.PAID:
            logger.info("Order already paid, ignoring duplicate event", order_id=str(order.id))
            return {"handled": False, "order_id": str(order.id), "reason": "already_paid"}

        if not self.state_machine.can_update_payment(order, PaymentStatus.PAID):
            return self._skipped(order, PaymentStatus.PAID)

        self._mark_paid(order, "Order payment confirmed")
        await self.session.commit()
        return {"handled": True, "order_id": str(order.id)}

    async def _handle_payment_failed(self, envelope: WebhookEnvelope) -> dict[str, Any]:
        payment: PaymentEntity = envelope.entity("payment", PaymentEntity)
        order = (
            await self.orders.get_by_gateway_order_id(payment.order_id)
            if payment.order_id
            else None
        )
        if order is None:
            return self._not_found(gateway_order_id=payment.order_id)

        if not self.state_machine.can_update_payment(order, PaymentStatus.FAILED):
            return self._skipped(order, PaymentStatus.FAILED)

        self.state_machine.set_payment_status(order, PaymentStatus.FAILED)
        self.state_machine.record(
            order,
            TimelineStatus.PAYMENT_FAILED,
            f"Payment failed: {payment.error_description or 'Unknown error'}",
        )
        await self.session.commit()
        return {"handled": True, "order_id": str(order.id)}

    async def _handle_refund_created(self, envelope: WebhookEnvelope) -> dict[str, Any]:
        refund: RefundEntity = envelope.entity("refund", RefundEntity)
        order = await self.orders.get_by_gateway_payment_id(refund.payment_id)
        if order is None:
            return self._not_found(gateway_payment_id=refund.payment_id)

        # Customer cancellation of a paid order already marks the payment
        # refunded; the gateway refund still moves the order to refunded.
        if order.payment_status == PaymentStatus.REFUNDED:
            if not self.state_machine.can_transition(order, OrderStatus.REFUNDED):
                logger.info(
                    "Order already refunded, ignoring duplicate event",
                    order_id=str(order.id),
                )
                return {
                    "handled": False,
                    "order_id": str(order.id),
                    "reason": "already_refunded",
                }
        elif not self.state_machine.can_update_payment(order, PaymentStatus.REFUNDED):
            return self._skipped(order, PaymentStatus.REFUNDED)
        else:
            self.state_machine.set_payment_status(order, PaymentStatus.REFUNDED)

        if self.state_machine.can_transition(order, OrderStatus.REFUNDED):
            self.state_machine.set_status(order, OrderStatus.REFUNDED)
        self.state_machine.record(
            order,
            OrderStatus.REFUNDED,
            f"Refund initiated: {format_currency(from_paise(refund.amount))}",
        )
        await self.session.commit()
        return {"handled": True, "order_id": str(order.id)}

    def _mark_paid(
        self,
        order: Order,
        message: str,
        gateway_order_id: Optional[str] = None,
        gateway_payment_id: Optional[str] = None,
        method: Optional[str] = None,
        signature: Optional[str] = None,
    ) -> None:
        """Payment to paid, pending orders to confirmed, one timeline entry."""
        self.state_machine.set_payment_status(order, PaymentStatus.PAID)
        if order.status == OrderStatus.PENDING:
            self.state_machine.set_status(order, OrderStatus.CONFIRMED)

        self._merge_payment_details(
            order,
            gateway_order_id=gateway_order_id,
            gateway_payment_id=gateway_payment_id,
            method=method,
            signature=signature,
            paid_at=utcnow().isoformat(),
        )
        self.state_machine.record(order, TimelineStatus.PAID, message)

    @staticmethod
    def _merge_payment_details(
        order: Order,
        gateway_order_id: Optional[str] = None,
        gateway_payment_id: Optional[str] = None,
        method: Optional[str] = None,
        signature: Optional[str] = None,
        paid_at: Optional[str] = None,
    ) -> None:
        """Merge gateway identifiers into payment_details and the indexed columns."""
        details = dict(order.payment_details or {})
        if gateway_order_id:
            details["gateway_order_id"] = gateway_order_id
            order.gateway_order_id = gateway_order_id
        if gateway_payment_id:
            details["gateway_payment_id"] = gateway_payment_id
            order.gateway_payment_id = gateway_payment_id
        if signature:
            details["gateway_signature"] = signature
        if method:
            details["method"] = method
        if paid_at:
            details["paid_at"] = paid_at
        order.payment_details = details

    @staticmethod
    def _not_found(**context: Any) -> dict[str, Any]:
        logger.info("No order matches webhook event", **context)
        return {"handled": False, "reason": "order_not_found"}

    @staticmethod
    def _skipped(order: Order, target: PaymentStatus) -> dict[str, Any]:
        logger.warning(
            "Webhook transition not allowed, skipping",
            order_id=str(order.id),
            payment_status=order.payment_status.value,
            target_payment_status=target.value,
        )
        return {"handled": False, "order_id": str(order.id), "reason": "transition_not_allowed"}
