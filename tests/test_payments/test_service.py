"""
Test suite for PaymentService.

Webhook signatures are verified with the real SDK utility against the test
secret; only gateway order creation is patched since it would hit the
network.
"""

import json
from typing import Any
from unittest.mock import MagicMock

import pytest
from razorpay.errors import ServerError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import Settings
from storefront.database.models import Order, Product, User
from storefront.services.orders.enums import OrderStatus, PaymentStatus
from storefront.services.orders.exceptions import OrderNotFoundError, OrderValidationError
from storefront.services.orders.service import OrderService
from storefront.services.payments.razorpay_client import RazorpayClient
from storefront.services.payments.service import (
    GatewayError,
    PaymentGatewayUnavailableError,
    PaymentService,
    PaymentVerificationError,
    WebhookEvent,
    WebhookPayloadError,
    WebhookSignatureError,
)

GATEWAY_ORDER_ID = "order_Nx1a2b3c"
GATEWAY_PAYMENT_ID = "pay_Px9y8z7"


@pytest.fixture
async def order(
    order_service: OrderService,
    db_session: AsyncSession,
    customer: User,
    products: dict[str, Product],
    shipping_address: dict[str, Any],
) -> Order:
    """Pending razorpay order for 1416 linked to a gateway order."""
    created = await order_service.create_order(
        customer, [{"slug": "print", "quantity": 1}], shipping_address
    )
    created.gateway_order_id = GATEWAY_ORDER_ID
    await db_session.commit()
    return created


def statuses(order: Order) -> list[str]:
    return [entry["status"] for entry in order.timeline]


@pytest.fixture
def send_webhook(payment_service: PaymentService, webhook_signer, make_webhook_body):
    async def send(event: str, **entities: dict[str, Any]) -> dict[str, Any]:
        body = make_webhook_body(event, **entities)
        return await payment_service.handle_webhook(body, webhook_signer(body))

    return send


def captured(**overrides: Any) -> dict[str, Any]:
    return {
        "id": GATEWAY_PAYMENT_ID,
        "order_id": GATEWAY_ORDER_ID,
        "method": "upi",
        "amount": 141600,
        **overrides,
    }


class TestWebhookSignature:
    async def test_missing_signature(self, payment_service: PaymentService, order: Order, make_webhook_body):
        body = make_webhook_body("payment.captured", payment=captured())

        with pytest.raises(WebhookSignatureError, match="No signature"):
            await payment_service.handle_webhook(body, None)

        assert order.payment_status == PaymentStatus.PENDING

    async def test_invalid_signature_changes_nothing(
        self,
        payment_service: PaymentService,
        db_session: AsyncSession,
        order: Order,
        webhook_signer,
        make_webhook_body,
    ):
        body = make_webhook_body("payment.captured", payment=captured())

        with pytest.raises(WebhookSignatureError, match="Invalid signature"):
            await payment_service.handle_webhook(body, webhook_signer(body, "wrong_secret"))

        await db_session.refresh(order)
        assert order.payment_status == PaymentStatus.PENDING
        assert order.status == OrderStatus.PENDING
        assert statuses(order) == ["pending"]

    async def test_tampered_body(self, payment_service: PaymentService, order: Order, webhook_signer, make_webhook_body):
        signed = make_webhook_body("payment.failed", payment=captured())
        tampered = make_webhook_body("payment.captured", payment=captured())

        with pytest.raises(WebhookSignatureError):
            await payment_service.handle_webhook(tampered, webhook_signer(signed))

    async def test_gateway_not_configured(
        self, db_session: AsyncSession, settings: Settings, webhook_signer, make_webhook_body
    ):
        service = PaymentService(
            db_session, settings=settings.model_copy(update={"razorpay_key_id": None})
        )
        body = make_webhook_body("payment.captured", payment=captured())

        with pytest.raises(PaymentGatewayUnavailableError):
            await service.handle_webhook(body, webhook_signer(body))


class TestWebhookPayload:
    async def test_not_json(self, payment_service: PaymentService, webhook_signer):
        body = b"not json"

        with pytest.raises(WebhookPayloadError):
            await payment_service.handle_webhook(body, webhook_signer(body))

    async def test_missing_entity(self, payment_service: PaymentService, webhook_signer):
        body = json.dumps({"event": "payment.captured", "payload": {}}).encode()

        with pytest.raises(WebhookPayloadError, match="Malformed payment.captured payload"):
            await payment_service.handle_webhook(body, webhook_signer(body))

    async def test_unknown_event_is_acknowledged(self, send_webhook, order: Order):
        result = await send_webhook("subscription.charged", payment=captured())

        assert result == {"event": "subscription.charged", "handled": False}
        assert order.payment_status == PaymentStatus.PENDING

    async def test_unknown_gateway_order(self, send_webhook):
        result = await send_webhook("payment.captured", payment=captured(order_id="order_missing"))

        assert result["handled"] is False
        assert result["reason"] == "order_not_found"


class TestPaymentCaptured:
    async def test_marks_paid_and_confirms(self, send_webhook, order: Order):
        result = await send_webhook("payment.captured", payment=captured())

        assert result["handled"] is True
        assert result["order_id"] == str(order.id)
        assert order.payment_status == PaymentStatus.PAID
        assert order.status == OrderStatus.CONFIRMED
        assert order.gateway_payment_id == GATEWAY_PAYMENT_ID
        assert order.payment_details["gateway_payment_id"] == GATEWAY_PAYMENT_ID
        assert order.payment_details["method"] == "upi"
        assert "paid_at" in order.payment_details
        assert statuses(order) == ["pending", "paid"]
        assert order.timeline[-1]["message"] == "Payment captured successfully"

    async def test_redelivery_is_ignored(self, send_webhook, order: Order):
        await send_webhook("payment.captured", payment=captured())
        timeline = list(order.timeline)

        result = await send_webhook("payment.captured", payment=captured())

        assert result["handled"] is False
        assert result["reason"] == "already_paid"
        assert order.timeline == timeline

    async def test_after_failure(self, send_webhook, order: Order):
        await send_webhook("payment.failed", payment=captured(error_description="Timeout"))

        await send_webhook("payment.captured", payment=captured())

        assert order.payment_status == PaymentStatus.PAID
        assert statuses(order) == ["pending", "payment_failed", "paid"]

    async def test_keeps_status_of_progressed_order(
        self, send_webhook, order: Order, db_session: AsyncSession
    ):
        order.status = OrderStatus.PROCESSING
        await db_session.commit()

        await send_webhook("payment.captured", payment=captured())

        assert order.status == OrderStatus.PROCESSING
        assert order.payment_status == PaymentStatus.PAID

    async def test_after_order_paid_stores_payment_id(self, send_webhook, order: Order):
        await send_webhook("order.paid", order={"id": GATEWAY_ORDER_ID})
        timeline = list(order.timeline)

        result = await send_webhook("payment.captured", payment=captured())

        assert result["handled"] is False
        assert result["reason"] == "already_paid"
        assert order.gateway_payment_id == GATEWAY_PAYMENT_ID
        assert order.payment_details["gateway_payment_id"] == GATEWAY_PAYMENT_ID
        assert order.payment_details["method"] == "upi"
        assert order.timeline == timeline


class TestOrderPaid:
    async def test_marks_paid(self, send_webhook, order: Order):
        result = await send_webhook("order.paid", order={"id": GATEWAY_ORDER_ID})

        assert result["handled"] is True
        assert order.payment_status == PaymentStatus.PAID
        assert order.status == OrderStatus.CONFIRMED
        assert order.timeline[-1]["status"] == "paid"
        assert order.timeline[-1]["message"] == "Order payment confirmed"

    async def test_idempotent(self, send_webhook, order: Order):
        await send_webhook("order.paid", order={"id": GATEWAY_ORDER_ID})
        snapshot = (order.status, order.payment_status, list(order.timeline), dict(order.payment_details))

        result = await send_webhook("order.paid", order={"id": GATEWAY_ORDER_ID})

        assert result["reason"] == "already_paid"
        assert (order.status, order.payment_status, order.timeline, order.payment_details) == snapshot

    async def test_after_payment_captured(self, send_webhook, order: Order):
        await send_webhook("payment.captured", payment=captured())

        result = await send_webhook("order.paid", order={"id": GATEWAY_ORDER_ID})

        assert result["handled"] is False
        assert statuses(order).count("paid") == 1


class TestPaymentFailed:
    async def test_records_reason(self, send_webhook, order: Order):
        result = await send_webhook(
            "payment.failed", payment=captured(error_description="Card declined by issuer")
        )

        assert result["handled"] is True
        assert order.payment_status == PaymentStatus.FAILED
        assert order.status == OrderStatus.PENDING
        assert order.timeline[-1]["status"] == "payment_failed"
        assert order.timeline[-1]["message"] == "Payment failed: Card declined by issuer"

    async def test_without_description(self, send_webhook, order: Order):
        await send_webhook("payment.failed", payment=captured())

        assert order.timeline[-1]["message"] == "Payment failed: Unknown error"

    async def test_paid_order_is_not_downgraded(self, send_webhook, order: Order):
        await send_webhook("payment.captured", payment=captured())

        result = await send_webhook("payment.failed", payment=captured())

        assert result["handled"] is False
        assert order.payment_status == PaymentStatus.PAID


class TestRefundCreated:
    async def test_refunds_paid_order(self, send_webhook, order: Order):
        await send_webhook("payment.captured", payment=captured())

        result = await send_webhook(
            "refund.created",
            refund={"id": "rfnd_1", "payment_id": GATEWAY_PAYMENT_ID, "amount": 141600},
        )

        assert result["handled"] is True
        assert order.payment_status == PaymentStatus.REFUNDED
        assert order.status == OrderStatus.REFUNDED
        assert order.timeline[-1]["status"] == "refunded"
        assert order.timeline[-1]["message"] == "Refund initiated: ₹1,416"

    async def test_after_order_paid_then_captured(self, send_webhook, order: Order):
        await send_webhook("order.paid", order={"id": GATEWAY_ORDER_ID})
        await send_webhook("payment.captured", payment=captured())

        result = await send_webhook(
            "refund.created",
            refund={"id": "rfnd_1", "payment_id": GATEWAY_PAYMENT_ID, "amount": 141600},
        )

        assert result["handled"] is True
        assert order.payment_status == PaymentStatus.REFUNDED
        assert order.status == OrderStatus.REFUNDED
        assert statuses(order) == ["pending", "paid", "refunded"]

    async def test_customer_cancelled_paid_order(
        self, send_webhook, order: Order, order_service: OrderService, customer: User
    ):
        await send_webhook("payment.captured", payment=captured())
        await order_service.cancel_order(order.id, customer, "Changed my mind")
        assert order.status == OrderStatus.CANCELLED
        assert order.payment_status == PaymentStatus.REFUNDED

        result = await send_webhook(
            "refund.created",
            refund={"id": "rfnd_1", "payment_id": GATEWAY_PAYMENT_ID, "amount": 141600},
        )

        assert result["handled"] is True
        assert order.status == OrderStatus.REFUNDED
        assert order.payment_status == PaymentStatus.REFUNDED
        assert statuses(order).count("refunded") == 1
        assert order.timeline[-1]["status"] == "refunded"
        assert order.timeline[-1]["message"] == "Refund initiated: ₹1,416"

    async def test_duplicate_refund_is_ignored(self, send_webhook, order: Order):
        await send_webhook("payment.captured", payment=captured())
        refund = {"id": "rfnd_1", "payment_id": GATEWAY_PAYMENT_ID, "amount": 141600}
        await send_webhook("refund.created", refund=refund)
        timeline = list(order.timeline)

        result = await send_webhook("refund.created", refund=refund)

        assert result["handled"] is False
        assert result["reason"] == "already_refunded"
        assert order.timeline == timeline

    async def test_unpaid_order_is_skipped(self, send_webhook, order: Order, db_session: AsyncSession):
        order.gateway_payment_id = GATEWAY_PAYMENT_ID
        await db_session.commit()

        result = await send_webhook(
            "refund.created",
            refund={"id": "rfnd_1", "payment_id": GATEWAY_PAYMENT_ID, "amount": 50000},
        )

        assert result["reason"] == "transition_not_allowed"
        assert order.payment_status == PaymentStatus.PENDING

    async def test_unknown_payment(self, send_webhook):
        result = await send_webhook(
            "refund.created",
            refund={"id": "rfnd_1", "payment_id": "pay_unknown", "amount": 100},
        )

        assert result == {"event": "refund.created", "handled": False, "reason": "order_not_found"}


class TestCreateGatewayOrder:
    async def test_creates_gateway_order(
        self,
        payment_service: PaymentService,
        razorpay_gateway: RazorpayClient,
        order: Order,
        customer: User,
        monkeypatch: pytest.MonkeyPatch,
    ):
        create = MagicMock(
            return_value={"id": "order_new", "amount": 141600, "currency": "INR"}
        )
        monkeypatch.setattr(razorpay_gateway._client.order, "create", create)

        result = await payment_service.create_gateway_order(order.id, customer)

        assert result == {
            "gateway_order_id": "order_new",
            "amount": 141600,
            "currency": "INR",
            "key_id": "rzp_test_key",
            "order_number": order.order_number,
        }
        data = create.call_args.kwargs["data"]
        assert data["amount"] == 141600
        assert data["receipt"] == order.order_number
        assert data["notes"]["order_id"] == str(order.id)
        assert order.gateway_order_id == "order_new"
        assert order.payment_details["gateway_order_id"] == "order_new"

    async def test_gateway_failure(
        self,
        payment_service: PaymentService,
        razorpay_gateway: RazorpayClient,
        order: Order,
        customer: User,
        monkeypatch: pytest.MonkeyPatch,
    ):
        monkeypatch.setattr(
            razorpay_gateway._client.order,
            "create",
            MagicMock(side_effect=ServerError("upstream down")),
        )

        with pytest.raises(GatewayError):
            await payment_service.create_gateway_order(order.id, customer)

    async def test_other_users_order(
        self, payment_service: PaymentService, order: Order, other_customer: User
    ):
        with pytest.raises(OrderNotFoundError):
            await payment_service.create_gateway_order(order.id, other_customer)

    async def test_paid_order(self, payment_service: PaymentService, send_webhook, order: Order, customer: User):
        await send_webhook("payment.captured", payment=captured())

        with pytest.raises(OrderValidationError, match="already paid"):
            await payment_service.create_gateway_order(order.id, customer)

    async def test_not_configured(
        self, db_session: AsyncSession, settings: Settings, order: Order, customer: User
    ):
        service = PaymentService(
            db_session, settings=settings.model_copy(update={"razorpay_key_secret": None})
        )

        with pytest.raises(PaymentGatewayUnavailableError, match="not configured"):
            await service.create_gateway_order(order.id, customer)


class TestVerifyCheckoutPayment:
    async def test_valid_signature(
        self, payment_service: PaymentService, order: Order, customer: User, checkout_signer
    ):
        signature = checkout_signer(GATEWAY_ORDER_ID, GATEWAY_PAYMENT_ID)

        result = await payment_service.verify_checkout_payment(
            order.id, customer, GATEWAY_ORDER_ID, GATEWAY_PAYMENT_ID, signature
        )

        assert result["payment_id"] == GATEWAY_PAYMENT_ID
        assert result["order"]["payment_status"] == "paid"
        assert result["order"]["status"] == "confirmed"
        assert order.payment_details["gateway_signature"] == signature
        assert order.timeline[-1]["message"] == "Payment received successfully via Razorpay"

    async def test_invalid_signature(
        self, payment_service: PaymentService, order: Order, customer: User
    ):
        with pytest.raises(PaymentVerificationError, match="Invalid payment signature"):
            await payment_service.verify_checkout_payment(
                order.id, customer, GATEWAY_ORDER_ID, GATEWAY_PAYMENT_ID, "0" * 64
            )

        assert order.payment_status == PaymentStatus.PENDING

    async def test_mismatched_gateway_order(
        self, payment_service: PaymentService, order: Order, customer: User, checkout_signer
    ):
        signature = checkout_signer("order_other", GATEWAY_PAYMENT_ID)

        with pytest.raises(PaymentVerificationError, match="does not match"):
            await payment_service.verify_checkout_payment(
                order.id, customer, "order_other", GATEWAY_PAYMENT_ID, signature
            )

    async def test_repeat_verification(
        self, payment_service: PaymentService, order: Order, customer: User, checkout_signer
    ):
        signature = checkout_signer(GATEWAY_ORDER_ID, GATEWAY_PAYMENT_ID)
        args = (order.id, customer, GATEWAY_ORDER_ID, GATEWAY_PAYMENT_ID, signature)

        await payment_service.verify_checkout_payment(*args)
        await payment_service.verify_checkout_payment(*args)

        assert statuses(order).count("paid") == 1


def test_webhook_event_parse():
    assert WebhookEvent.parse("refund.created") is WebhookEvent.REFUND_CREATED
    assert WebhookEvent.parse("payment.authorized") is None
