"""
Return request service.

Customers may request a return for a delivered order within the return
window counted from the ``delivered`` timeline entry. Only one open
request per order is allowed; a rejected or refunded request does not
block a new one. The refund amount uses the prices snapshotted on the
order.
"""

import secrets
import string
import time
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import Settings, get_settings
from storefront.core.logging import get_logger
from storefront.database.base import as_utc, utcnow
from storefront.database.models.order import Order
from storefront.database.models.return_request import (
    RefundMethod,
    ReturnRequest,
    ReturnStatus,
)
from storefront.database.models.user import User
from storefront.services.orders.enums import OrderStatus
from storefront.services.orders.exceptions import OrderNotFoundError
from storefront.services.orders.pricing import to_base36
from storefront.services.orders.repository import OrderRepository
from storefront.services.returns.exceptions import (
    ReturnNotAllowedError,
    ReturnValidationError,
)
from storefront.services.returns.repository import ReturnRepository

logger = get_logger(__name__)

RETURN_NUMBER_PREFIX = "RET"


def generate_return_number(timestamp_ms: Optional[int] = None) -> str:
    """``RET-<base36 ms timestamp>-<2 random base36 chars>``."""
    if timestamp_ms is None:
        timestamp_ms = time.time_ns() // 1_000_000
    alphabet = string.digits + string.ascii_uppercase
    suffix = "".join(secrets.choice(alphabet) for _ in range(2))
    return f"{RETURN_NUMBER_PREFIX}-{to_base36(timestamp_ms)}-{suffix}"


def delivered_at(order: Order) -> Optional[datetime]:
    """Timestamp of the latest ``delivered`` timeline entry, if any."""
    for entry in reversed(order.timeline or []):
        if entry.get("status") == OrderStatus.DELIVERED.value:
            return as_utc(datetime.fromisoformat(entry["timestamp"]))
    return None


class ReturnService:
    """Customer return requests for delivered orders."""

    def __init__(self, session: AsyncSession, settings: Optional[Settings] = None):
        self.session = session
        self.settings = settings or get_settings()
        self.orders = OrderRepository(session)
        self.returns = ReturnRepository(session)

    async def list_user_returns(self, user_id: uuid.UUID) -> Sequence[ReturnRequest]:
        return await self.returns.list_for_user(user_id)

    async def create_return(
        self,
        user: User,
        order_id: uuid.UUID,
        items: Sequence[dict[str, Any]],
        images: Optional[Sequence[str]] = None,
        refund_method: RefundMethod = RefundMethod.ORIGINAL,
        now: Optional[datetime] = None,
    ) -> ReturnRequest:
        """
        Submit a return request for a delivered order.

        Args:
            user: Customer who owns the order
            order_id: Order being returned
            items: Returned lines with ``line`` (index into the order's
                items), ``quantity``, ``reason`` and optional ``description``
            images: Evidence image URLs
            refund_method: Where the refund is credited
            now: Reference time for the return window

        Raises:
            OrderNotFoundError: If the order is not the user's
            ReturnNotAllowedError: If the order is not delivered, the window
                has passed or an open return already exists
            ReturnValidationError: If a line does not match the order
        """
        order = await self.orders.get_for_user(order_id, user.id)
        if order is None:
            raise OrderNotFoundError("Order not found", order_id=str(order_id))

        if order.status != OrderStatus.DELIVERED:
            raise ReturnNotAllowedError(
                "Return can only be requested for delivered orders",
                order_id=str(order.id),
                status=order.status.value,
            )

        window_days = self.settings.return_window_days
        delivered = delivered_at(order)
        if delivered is not None and (now or utcnow()) - delivered > timedelta(days=window_days):
            raise ReturnNotAllowedError(
                f"Return window has expired ({window_days} days from delivery)",
                order_id=str(order.id),
                delivered_at=delivered.isoformat(),
            )

        if await self.returns.get_open_for_order(order.id) is not None:
            raise ReturnNotAllowedError(
                "A return request already exists for this order",
                order_id=str(order.id),
            )

        lines = self._build_return_lines(order, items)
        refund_amount = sum(
            (Decimal(line["price"]) * line["quantity"] for line in lines),
            Decimal("0"),
        )

        return_request = ReturnRequest(
            return_number=generate_return_number(),
            order_id=order.id,
            user_id=user.id,
            items=lines,
            refund_amount=refund_amount,
            refund_method=refund_method,
            status=ReturnStatus.PENDING,
            images=list(images or []),
            timeline=[
                {
                    "status": ReturnStatus.PENDING.value,
                    "message": "Return request submitted",
                    "timestamp": utcnow().isoformat(),
                }
            ],
        )
        await self.returns.add(return_request)
        await self.session.commit()

        logger.info(
            "Return request submitted",
            return_number=return_request.return_number,
            order_id=str(order.id),
            refund_amount=float(refund_amount),
        )
        return return_request

    @staticmethod
    def _build_return_lines(
        order: Order, items: Sequence[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        if not items:
            raise ReturnValidationError("No items selected for return")

        order_items = order.items or []
        lines = []
        for item in items:
            index = item["line"]
            if not 0 <= index < len(order_items):
                raise ReturnValidationError(
                    "Item not found in order", order_id=str(order.id), line=index
                )
            ordered = order_items[index]
            quantity = int(item["quantity"])
            if quantity > int(ordered["quantity"]):
                raise ReturnValidationError(
                    "Return quantity exceeds ordered quantity",
                    order_id=str(order.id),
                    line=index,
                )
            lines.append(
                {
                    "line": index,
                    "product_id": ordered.get("product_id"),
                    "name": ordered.get("name"),
                    "price": str(ordered["price"]),
                    "quantity": quantity,
                    "reason": item["reason"],
                    "description": item.get("description"),
                }
            )
        return lines
