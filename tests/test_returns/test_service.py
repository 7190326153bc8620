"""
Test suite for ReturnService.

Orders are placed through OrderService and moved to delivered by the back
office update so the delivered timeline entry is real.
"""

from datetime import timedelta
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database.base import utcnow
from storefront.database.models import Order, Product, RefundMethod, ReturnStatus, User
from storefront.services.orders.enums import OrderStatus
from storefront.services.orders.exceptions import OrderNotFoundError
from storefront.services.orders.pricing import to_base36
from storefront.services.orders.service import OrderService
from storefront.services.returns.exceptions import (
    ReturnNotAllowedError,
    ReturnValidationError,
)
from storefront.services.returns.service import ReturnService, generate_return_number


def damaged(line: int = 0, quantity: int = 1, **extra: Any) -> dict[str, Any]:
    return {"line": line, "quantity": quantity, "reason": "damaged", **extra}


@pytest.fixture
async def delivered_order(
    order_service: OrderService,
    customer: User,
    products: dict[str, Product],
    shipping_address: dict[str, Any],
) -> Order:
    """COD order for two mugs and one frame, delivered now."""
    order = await order_service.create_order(
        customer,
        [{"slug": "mug", "quantity": 2}, {"slug": "frame", "quantity": 1}],
        shipping_address,
        payment_method="cod",
    )
    return await order_service.admin_update_order(order.id, status=OrderStatus.DELIVERED)


class TestCreateReturn:
    async def test_submitted(
        self, return_service: ReturnService, delivered_order: Order, customer: User
    ):
        return_request = await return_service.create_return(
            customer, delivered_order.id, [damaged(description="Handle cracked")]
        )

        assert return_request.return_number.startswith("RET-")
        assert return_request.status == ReturnStatus.PENDING
        assert return_request.refund_method == RefundMethod.ORIGINAL
        assert return_request.refund_amount == 600
        assert return_request.items == [
            {
                "line": 0,
                "product_id": delivered_order.items[0]["product_id"],
                "name": "Photo Mug",
                "price": delivered_order.items[0]["price"],
                "quantity": 1,
                "reason": "damaged",
                "description": "Handle cracked",
            }
        ]
        assert [entry["status"] for entry in return_request.timeline] == ["pending"]
        assert return_request.timeline[0]["message"] == "Return request submitted"

    async def test_refund_amount_covers_all_lines(
        self, return_service: ReturnService, delivered_order: Order, customer: User
    ):
        return_request = await return_service.create_return(
            customer,
            delivered_order.id,
            [damaged(0, 2), {"line": 1, "quantity": 1, "reason": "changed_mind"}],
            images=["https://cdn.example.com/return.jpg"],
            refund_method=RefundMethod.STORE_CREDIT,
        )

        assert return_request.refund_amount == 1700
        assert return_request.refund_method == RefundMethod.STORE_CREDIT
        assert return_request.images == ["https://cdn.example.com/return.jpg"]

    async def test_order_must_be_delivered(
        self,
        return_service: ReturnService,
        order_service: OrderService,
        customer: User,
        products: dict[str, Product],
        shipping_address: dict[str, Any],
    ):
        order = await order_service.create_order(
            customer, [{"slug": "mug", "quantity": 1}], shipping_address, payment_method="cod"
        )

        with pytest.raises(ReturnNotAllowedError, match="only be requested for delivered orders"):
            await return_service.create_return(customer, order.id, [damaged()])

    async def test_within_window(
        self, return_service: ReturnService, delivered_order: Order, customer: User
    ):
        return_request = await return_service.create_return(
            customer, delivered_order.id, [damaged()], now=utcnow() + timedelta(days=6)
        )

        assert return_request.status == ReturnStatus.PENDING

    async def test_window_expired(
        self, return_service: ReturnService, delivered_order: Order, customer: User
    ):
        with pytest.raises(ReturnNotAllowedError) as exc_info:
            await return_service.create_return(
                customer, delivered_order.id, [damaged()], now=utcnow() + timedelta(days=8)
            )

        assert exc_info.value.message == "Return window has expired (7 days from delivery)"

    async def test_open_return_blocks_another(
        self, return_service: ReturnService, delivered_order: Order, customer: User
    ):
        await return_service.create_return(customer, delivered_order.id, [damaged()])

        with pytest.raises(ReturnNotAllowedError, match="already exists"):
            await return_service.create_return(customer, delivered_order.id, [damaged(1)])

    async def test_rejected_return_allows_another(
        self,
        return_service: ReturnService,
        delivered_order: Order,
        customer: User,
        db_session: AsyncSession,
    ):
        first = await return_service.create_return(customer, delivered_order.id, [damaged()])
        first.status = ReturnStatus.REJECTED
        await db_session.commit()

        second = await return_service.create_return(customer, delivered_order.id, [damaged(1)])

        assert second.return_number != first.return_number

    async def test_other_users_order(
        self, return_service: ReturnService, delivered_order: Order, other_customer: User
    ):
        with pytest.raises(OrderNotFoundError):
            await return_service.create_return(other_customer, delivered_order.id, [damaged()])

    async def test_unknown_line(
        self, return_service: ReturnService, delivered_order: Order, customer: User
    ):
        with pytest.raises(ReturnValidationError, match="Item not found in order"):
            await return_service.create_return(customer, delivered_order.id, [damaged(5)])

    async def test_quantity_above_ordered(
        self, return_service: ReturnService, delivered_order: Order, customer: User
    ):
        with pytest.raises(ReturnValidationError, match="exceeds ordered quantity"):
            await return_service.create_return(customer, delivered_order.id, [damaged(1, 2)])

    async def test_no_items(
        self, return_service: ReturnService, delivered_order: Order, customer: User
    ):
        with pytest.raises(ReturnValidationError):
            await return_service.create_return(customer, delivered_order.id, [])


class TestListReturns:
    async def test_only_own_returns(
        self,
        return_service: ReturnService,
        delivered_order: Order,
        customer: User,
        other_customer: User,
    ):
        return_request = await return_service.create_return(
            customer, delivered_order.id, [damaged()]
        )

        assert [r.id for r in await return_service.list_user_returns(customer.id)] == [
            return_request.id
        ]
        assert await return_service.list_user_returns(other_customer.id) == []


def test_return_number_format():
    number = generate_return_number(timestamp_ms=1_700_000_000_000)

    prefix, stamp, suffix = number.split("-")
    assert prefix == "RET"
    assert stamp == to_base36(1_700_000_000_000)
    assert len(suffix) == 2
