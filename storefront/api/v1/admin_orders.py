"""
Back office order endpoints. Every route requires an admin session.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query

from storefront.api.deps import CurrentAdmin, OrderServiceDep
from storefront.core.logging import get_logger
from storefront.schemas.common import ApiResponse, ok
from storefront.schemas.orders import AdminOrderUpdate
from storefront.services.orders.enums import OrderStatus

logger = get_logger(__name__)

router = APIRouter()


@router.get("", response_model=ApiResponse, summary="List orders")
async def list_orders(
    admin: CurrentAdmin,
    service: OrderServiceDep,
    status: Optional[OrderStatus] = Query(None, description="Filter by status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
) -> ApiResponse:
    result = await service.list_orders(status=status, skip=skip, limit=limit)
    return ok(result)


@router.get("/{order_id}", response_model=ApiResponse, summary="Get order")
async def get_order(
    order_id: UUID,
    admin: CurrentAdmin,
    service: OrderServiceDep,
) -> ApiResponse:
    order = await service.get_order(order_id)
    return ok(order.to_response())


@router.put("/{order_id}", response_model=ApiResponse, summary="Update order")
async def update_order(
    order_id: UUID,
    request: AdminOrderUpdate,
    admin: CurrentAdmin,
    service: OrderServiceDep,
) -> ApiResponse:
    """
    Change status, payment status, tracking details or notes.

    Raises:
        StateTransitionError: mapped to 400 when a transition is not allowed
    """
    logger.info(
        "Admin order update requested",
        order_id=str(order_id),
        admin_id=str(admin.id),
        status=request.status.value if request.status else None,
        payment_status=request.payment_status.value if request.payment_status else None,
    )
    order = await service.admin_update_order(
        order_id,
        status=request.status,
        payment_status=request.payment_status,
        tracking=request.tracking_payload(),
        note=request.note,
        admin_notes=request.admin_notes,
        send_email=request.send_email,
    )
    return ok(order.to_response(), message="Order updated successfully")
