"""
Customer order endpoints.

Order intake, order history, customer cancellation and public tracking.
Service exceptions propagate to the application exception handlers, which
map them to status codes and the error envelope.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from storefront.api.deps import CurrentUser, OrderServiceDep
from storefront.core.logging import get_logger
from storefront.schemas.common import ApiResponse, ok
from storefront.schemas.orders import OrderActionRequest, OrderCreateRequest

logger = get_logger(__name__)

router = APIRouter()

CANCEL_ACTION = "cancel"


@router.post(
    "",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place an order",
)
async def create_order(
    request: OrderCreateRequest,
    current_user: CurrentUser,
    service: OrderServiceDep,
) -> ApiResponse:
    """
    Place an order from the submitted cart.

    Raises:
        OrderValidationError, ProductResolutionError, InsufficientStockError,
        CouponError: mapped to 400
    """
    order = await service.create_order(
        user=current_user,
        items=request.items_payload(),
        shipping_address=request.address_payload(),
        payment_method=request.payment_method.value,
        coupon_code=request.coupon_code,
        notes=request.notes,
    )
    return ok(order.to_summary(), message="Order placed successfully")


@router.get("", response_model=ApiResponse, summary="List my orders")
async def list_orders(
    current_user: CurrentUser,
    service: OrderServiceDep,
) -> ApiResponse:
    orders = await service.list_user_orders(current_user.id)
    return ok([order.to_response() for order in orders])


@router.get("/track", response_model=ApiResponse, summary="Track an order")
async def track_order(
    service: OrderServiceDep,
    order_number: str = Query(..., min_length=1, max_length=50),
    phone: Optional[str] = Query(None, max_length=20),
) -> ApiResponse:
    """
    Public tracking by order number.

    When ``phone`` is given, its last four digits must match the phone on
    the shipping address.
    """
    tracking = await service.track_order(order_number.strip(), phone)
    return ok(tracking)


@router.get("/{order_id}", response_model=ApiResponse, summary="Get my order")
async def get_order(
    order_id: UUID,
    current_user: CurrentUser,
    service: OrderServiceDep,
) -> ApiResponse:
    order = await service.get_user_order(order_id, current_user.id)
    return ok(order.to_response())


@router.put("/{order_id}", response_model=ApiResponse, summary="Act on my order")
async def update_order(
    order_id: UUID,
    request: OrderActionRequest,
    current_user: CurrentUser,
    service: OrderServiceDep,
) -> ApiResponse:
    """
    Apply a customer action. Only ``cancel`` is supported.

    Raises:
        HTTPException: 400 for any other action
    """
    if request.action != CANCEL_ACTION:
        logger.info(
            "Unsupported order action",
            order_id=str(order_id),
            action=request.action,
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid action",
        )

    order = await service.cancel_order(order_id, current_user, request.reason)
    return ok(order.to_response(), message="Order cancelled successfully")


@router.get("/{order_id}/invoice", response_model=ApiResponse, summary="Get my invoice")
async def get_invoice(
    order_id: UUID,
    current_user: CurrentUser,
    service: OrderServiceDep,
) -> ApiResponse:
    invoice = await service.get_invoice(order_id, current_user.id)
    return ok(invoice)
