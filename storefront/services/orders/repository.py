"""
Order and product data access.

This module implements the repositories used by the order flow. Queries
are plain SQLAlchemy 2.0 ``select`` statements on the request session;
database failures are wrapped in ``OrderRepositoryError`` with context for
structured logging.
"""

import uuid
from typing import Any, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.logging import get_logger
from storefront.database.models.order import Order
from storefront.database.models.product import Product
from storefront.services.orders.enums import OrderStatus

logger = get_logger(__name__)


class OrderRepositoryError(Exception):
    """Base exception for order repository errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


def parse_uuid(value: Any) -> Optional[uuid.UUID]:
    """Parse a UUID from a string, returning None when it is not one."""
    if isinstance(value, uuid.UUID):
        return value
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except (ValueError, AttributeError, TypeError):
        return None


class OrderRepository:
    """
    Repository for order data access operations.

    Provides async lookups by id, order number and gateway identifiers plus
    paginated listings.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, order: Order) -> Order:
        """
        Stage a new order and flush it to obtain defaults.

        Raises:
            OrderRepositoryError: If the insert fails
        """
        try:
            self.session.add(order)
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error(
                "Order insert failed",
                order_number=order.order_number,
                error=str(e),
            )
            raise OrderRepositoryError(
                "Failed to create order",
                order_number=order.order_number,
                error=str(e),
            ) from e

        logger.debug(
            "Order staged",
            order_id=str(order.id),
            order_number=order.order_number,
        )
        return order

    async def _one(self, stmt, **context: Any) -> Optional[Order]:
        try:
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to fetch order", error=str(e), **context)
            raise OrderRepositoryError(
                "Failed to fetch order", error=str(e), **context
            ) from e

    async def get_by_id(self, order_id: uuid.UUID) -> Optional[Order]:
        return await self._one(
            select(Order).where(Order.id == order_id),
            order_id=str(order_id),
        )

    async def get_for_user(
        self, order_id: uuid.UUID, user_id: uuid.UUID
    ) -> Optional[Order]:
        """Get an order only if it belongs to ``user_id``."""
        return await self._one(
            select(Order).where(Order.id == order_id, Order.user_id == user_id),
            order_id=str(order_id),
            user_id=str(user_id),
        )

    async def get_by_number(self, order_number: str) -> Optional[Order]:
        """Get an order by its human-readable number, case-insensitively."""
        normalized = order_number.strip().upper()
        return await self._one(
            select(Order).where(func.upper(Order.order_number) == normalized),
            order_number=normalized,
        )

    async def get_by_gateway_order_id(
        self, gateway_order_id: str
    ) -> Optional[Order]:
        return await self._one(
            select(Order).where(Order.gateway_order_id == gateway_order_id),
            gateway_order_id=gateway_order_id,
        )

    async def get_by_gateway_payment_id(
        self, gateway_payment_id: str
    ) -> Optional[Order]:
        return await self._one(
            select(Order).where(Order.gateway_payment_id == gateway_payment_id),
            gateway_payment_id=gateway_payment_id,
        )

    async def list_for_user(self, user_id: uuid.UUID) -> Sequence[Order]:
        """List a user's orders, newest first."""
        stmt = (
            select(Order)
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc())
        )
        try:
            result = await self.session.execute(stmt)
            return result.scalars().all()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to list user orders",
                user_id=str(user_id),
                error=str(e),
            )
            raise OrderRepositoryError(
                "Failed to list user orders",
                user_id=str(user_id),
                error=str(e),
            ) from e

    async def list_orders(
        self,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[Sequence[Order], int]:
        """
        List all orders with pagination.

        Args:
            status: Optional status filter
            skip: Number of records to skip
            limit: Maximum number of records to return

        Returns:
            Tuple of (orders, total_count)
        """
        conditions = []
        if status is not None:
            conditions.append(Order.status == status)

        stmt = (
            select(Order)
            .where(*conditions)
            .order_by(Order.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        count_stmt = select(func.count()).select_from(Order).where(*conditions)

        try:
            result = await self.session.execute(stmt)
            orders = result.scalars().all()
            total = (await self.session.execute(count_stmt)).scalar_one()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to list orders",
                status=status.value if status else None,
                error=str(e),
            )
            raise OrderRepositoryError(
                "Failed to list orders",
                error=str(e),
            ) from e

        return orders, total


class ProductRepository:
    """Repository for the product reads and stock writes made by intake."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def resolve(
        self,
        product_id: Optional[str] = None,
        slug: Optional[str] = None,
    ) -> Optional[Product]:
        """
        Resolve an active product by id, falling back to slug.

        Args:
            product_id: Product id; ignored when it is not a valid UUID
            slug: Product slug

        Returns:
            The product, or None when neither key matches an active product
        """
        try:
            parsed_id = parse_uuid(product_id)
            if parsed_id is not None:
                product = await self.session.get(Product, parsed_id)
                if product is not None and product.is_active:
                    return product

            for candidate in (slug, product_id):
                if not candidate:
                    continue
                result = await self.session.execute(
                    select(Product).where(
                        Product.slug == str(candidate),
                        Product.is_active.is_(True),
                    )
                )
                product = result.scalar_one_or_none()
                if product is not None:
                    return product
        except SQLAlchemyError as e:
            logger.error(
                "Failed to resolve product",
                product_id=product_id,
                slug=slug,
                error=str(e),
            )
            raise OrderRepositoryError(
                "Failed to resolve product",
                product_id=product_id,
                slug=slug,
                error=str(e),
            ) from e

        return None

    async def decrement_stock(self, product: Product, quantity: int) -> None:
        """
        Decrement stock and commit immediately.

        Each decrement is its own unit of work; a later failure in the same
        request does not restore it.
        """
        product.stock = product.stock - quantity
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                "Stock decrement failed",
                product_id=str(product.id),
                quantity=quantity,
                error=str(e),
            )
            raise OrderRepositoryError(
                "Failed to update product stock",
                product_id=str(product.id),
                error=str(e),
            ) from e

        logger.info(
            "Stock decremented",
            product_id=str(product.id),
            slug=product.slug,
            quantity=quantity,
            remaining=product.stock,
        )
