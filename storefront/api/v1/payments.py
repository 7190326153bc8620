"""
Payment endpoints for Razorpay checkout and webhooks.

The webhook route is authenticated by the gateway signature over the raw
request body, not by a user session.
"""

from typing import Any, Optional

from fastapi import APIRouter, Header, Request, status

from storefront.api.deps import CurrentUser, PaymentServiceDep
from storefront.core.logging import get_logger
from storefront.schemas.common import ApiResponse, ok
from storefront.schemas.payments import GatewayOrderRequest, PaymentVerifyRequest

logger = get_logger(__name__)

router = APIRouter()


@router.post(
    "/create-order",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create gateway order",
)
async def create_gateway_order(
    request: GatewayOrderRequest,
    current_user: CurrentUser,
    service: PaymentServiceDep,
) -> ApiResponse:
    """
    Create a Razorpay order for one of the user's unpaid orders.

    Returns the gateway order id, amount in paise, currency and the public
    key id the checkout widget needs.
    """
    result = await service.create_gateway_order(request.order_id, current_user)
    return ok(result, message="Payment order created")


@router.post("/verify", response_model=ApiResponse, summary="Verify checkout payment")
async def verify_payment(
    request: PaymentVerifyRequest,
    current_user: CurrentUser,
    service: PaymentServiceDep,
) -> ApiResponse:
    result = await service.verify_checkout_payment(
        request.order_id,
        current_user,
        gateway_order_id=request.razorpay_order_id,
        gateway_payment_id=request.razorpay_payment_id,
        signature=request.razorpay_signature,
    )
    return ok(result, message="Payment verified successfully")


@router.post("/webhook", summary="Gateway webhook")
async def payment_webhook(
    request: Request,
    service: PaymentServiceDep,
    x_razorpay_signature: Optional[str] = Header(None, alias="X-Razorpay-Signature"),
) -> dict[str, Any]:
    """
    Receive a Razorpay webhook.

    Raises:
        WebhookSignatureError: mapped to 400
        WebhookPayloadError: mapped to 400
        PaymentGatewayUnavailableError: mapped to 503
    """
    body = await request.body()
    await service.handle_webhook(body, x_razorpay_signature)
    return {"success": True, "received": True}
