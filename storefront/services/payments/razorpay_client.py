"""
Razorpay API client wrapper.

Wraps the official ``razorpay`` SDK: gateway order creation, checkout
signature verification and webhook signature verification. SDK calls are
synchronous; the payment service runs network calls in a worker thread.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

import razorpay
from razorpay.errors import (
    BadRequestError,
    GatewayError as RazorpayGatewayError,
    ServerError,
    SignatureVerificationError,
)
from requests.exceptions import RequestException

from storefront.core.config import Settings, get_settings
from storefront.core.logging import get_logger

logger = get_logger(__name__)


class RazorpayClientError(Exception):
    """Base exception for Razorpay client errors."""

    def __init__(self, message: str, code: Optional[str] = None, **context: Any):
        super().__init__(message)
        self.code = code
        self.context = context


class RazorpaySignatureError(RazorpayClientError):
    """Raised when a webhook or checkout signature does not verify."""

    pass


def to_paise(amount: Decimal) -> int:
    """Convert rupees to paise, the gateway's smallest currency unit."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_paise(amount: int) -> Decimal:
    """Convert paise to rupees."""
    return Decimal(amount) / Decimal(100)


class RazorpayClient:
    """
    Razorpay client with error mapping and structured logging.

    Args:
        settings: Optional settings override
        client: Optional pre-built SDK client
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[razorpay.Client] = None,
    ):
        self.settings = settings or get_settings()
        self.key_id = self.settings.razorpay_key_id
        self.webhook_secret = self.settings.razorpay_webhook_secret
        self._client = client or razorpay.Client(
            auth=(self.settings.razorpay_key_id, self.settings.razorpay_key_secret)
        )

    def create_order(
        self,
        amount_paise: int,
        receipt: str,
        currency: str = "INR",
        notes: Optional[dict[str, str]] = None,
    ) -> dict[str, Any]:
        """
        Create a gateway order.

        Args:
            amount_paise: Amount in paise
            receipt: Merchant receipt, our order number
            currency: ISO currency code
            notes: Key/value notes stored on the gateway order

        Returns:
            Gateway order entity

        Raises:
            RazorpayClientError: If the gateway rejects the request or is unreachable
        """
        data = {
            "amount": amount_paise,
            "currency": currency.upper(),
            "receipt": receipt,
            "notes": notes or {},
        }

        try:
            gateway_order = self._client.order.create(data=data)
        except BadRequestError as e:
            logger.warning("Gateway rejected order creation", receipt=receipt, error=str(e))
            raise RazorpayClientError(
                f"Gateway rejected order: {e}", code="BAD_REQUEST", receipt=receipt
            ) from e
        except (RazorpayGatewayError, ServerError, RequestException) as e:
            logger.error(
                "Gateway order creation failed",
                receipt=receipt,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise RazorpayClientError(
                "Payment gateway is unavailable", code="GATEWAY_ERROR", receipt=receipt
            ) from e

        logger.info(
            "Gateway order created",
            gateway_order_id=gateway_order.get("id"),
            receipt=receipt,
            amount=amount_paise,
        )
        return gateway_order

    def verify_webhook_signature(self, body: str, signature: str) -> None:
        """
        Verify the HMAC-SHA256 signature of a webhook body.

        Raises:
            RazorpaySignatureError: If the secret is missing or the signature does not match
        """
        if not self.webhook_secret:
            logger.error("Webhook secret not configured")
            raise RazorpaySignatureError("Webhook secret not configured", code="NO_SECRET")

        try:
            self._client.utility.verify_webhook_signature(body, signature, self.webhook_secret)
        except SignatureVerificationError as e:
            raise RazorpaySignatureError("Invalid signature", code="INVALID_SIGNATURE") from e

    def verify_payment_signature(
        self, gateway_order_id: str, gateway_payment_id: str, signature: str
    ) -> None:
        """
        Verify the ``order_id|payment_id`` signature returned by checkout.

        Raises:
            RazorpaySignatureError: If the signature does not match
        """
        try:
            self._client.utility.verify_payment_signature(
                {
                    "razorpay_order_id": gateway_order_id,
                    "razorpay_payment_id": gateway_payment_id,
                    "razorpay_signature": signature,
                }
            )
        except SignatureVerificationError as e:
            raise RazorpaySignatureError(
                "Invalid payment signature",
                code="INVALID_SIGNATURE",
                gateway_order_id=gateway_order_id,
            ) from e


_client: Optional[RazorpayClient] = None


def get_razorpay_client() -> RazorpayClient:
    """Get the process-wide Razorpay client."""
    global _client
    if _client is None:
        _client = RazorpayClient()
    return _client
