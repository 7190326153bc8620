"""
Order service orchestrating intake, cancellation and back-office updates.

This module implements the OrderService class. Intake validates the cart,
re-reads authoritative product data, prices the order, decrements stock and
persists the order with its first timeline entry. Notification side effects
run after the order is committed and never fail the request.
"""

import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import Settings, get_settings
from storefront.core.logging import get_logger, log_performance
from storefront.database.models.coupon import Coupon
from storefront.database.models.order import Order
from storefront.database.models.user import User
from storefront.services.coupons.evaluator import calculate_discount
from storefront.services.coupons.service import CouponService
from storefront.services.notifications.service import (
    NotificationService,
    get_notification_service,
)
from storefront.services.orders.enums import (
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from storefront.services.orders.exceptions import (
    InsufficientStockError,
    OrderNotFoundError,
    OrderValidationError,
    ProductResolutionError,
)
from storefront.services.orders.pricing import calculate_totals, generate_order_number
from storefront.services.orders.repository import (
    OrderRepository,
    ProductRepository,
)
from storefront.services.orders.state_machine import OrderStateMachine

logger = get_logger(__name__)

ESTIMATED_DELIVERY_DAYS = 7
TRACKING_FIELDS = ("carrier", "tracking_number", "tracking_url", "estimated_delivery")

DEFERRED_CONFIRMATION_MESSAGES = {
    PaymentMethod.COD.value: "Order confirmed (Cash on Delivery)",
    PaymentMethod.PAY_LATER.value: "Order confirmed (Pay Later)",
}


def _phone_last4(phone: Optional[str]) -> str:
    return "".join(ch for ch in (phone or "") if ch.isdigit())[-4:]


class OrderService:
    """
    Order service orchestrating business logic and integrations.

    Attributes:
        session: Request-scoped async session
        orders: Order repository
        products: Product repository
        coupons: Coupon service used for code validation at intake
        state_machine: Owner of status, payment status and timeline changes
        notifications: Best-effort email and operator alerts
    """

    def __init__(
        self,
        session: AsyncSession,
        notification_service: Optional[NotificationService] = None,
        settings: Optional[Settings] = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.orders = OrderRepository(session)
        self.products = ProductRepository(session)
        self.coupons = CouponService(session)
        self.state_machine = OrderStateMachine()
        self.notifications = notification_service or get_notification_service()

    # =========================================================================
    # Intake
    # =========================================================================

    async def create_order(
        self,
        user: User,
        items: Sequence[dict[str, Any]],
        shipping_address: dict[str, Any],
        payment_method: str = PaymentMethod.RAZORPAY.value,
        coupon_code: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Order:
        """
        Create an order from a cart.

        Args:
            user: Purchaser
            items: Cart lines with ``product_id`` and/or ``slug``, ``quantity``
                and optional ``price``, ``variant``, ``customization``
            shipping_address: Delivery address snapshot
            payment_method: Checkout payment method
            coupon_code: Optional coupon code
            notes: Optional customer notes

        Returns:
            The persisted order

        Raises:
            OrderValidationError: If the cart or address is incomplete
            CouponError: If the coupon code is unusable
            ProductResolutionError: If a line does not resolve to a product
            InsufficientStockError: If a product cannot cover its quantity
        """
        logger.info(
            "Creating order",
            user_id=str(user.id),
            item_count=len(items or []),
            payment_method=payment_method,
        )

        with log_performance(logger, "order_intake", user_id=str(user.id)):
            self._validate_cart(items, shipping_address)

            coupon: Optional[Coupon] = None
            if coupon_code:
                coupon = await self.coupons.get_applicable(coupon_code)

            line_items, subtotal = await self._build_line_items(items)

            discount = Decimal("0")
            applied_code: Optional[str] = None
            if coupon is not None:
                discount, applied_code = self._apply_coupon(coupon, subtotal)

            totals = calculate_totals(subtotal, discount, self.settings)

            order = Order(
                order_number=generate_order_number(self.settings.order_number_prefix),
                user_id=user.id,
                items=line_items,
                shipping_address=dict(shipping_address),
                subtotal=totals.subtotal,
                shipping_cost=totals.shipping_cost,
                discount=totals.discount,
                tax=totals.tax,
                total=totals.total,
                coupon_code=applied_code,
                status=OrderStatus.PENDING,
                payment_method=payment_method,
                payment_status=PaymentStatus.PENDING,
                payment_details={},
                tracking={},
                notes=notes,
                timeline=[],
            )
            self.state_machine.record(order, OrderStatus.PENDING, "Order placed")

            if payment_method in self.settings.deferred_payment_methods:
                self.state_machine.transition(
                    order,
                    OrderStatus.CONFIRMED,
                    DEFERRED_CONFIRMATION_MESSAGES.get(
                        payment_method, f"Order confirmed ({payment_method})"
                    ),
                )

            await self.orders.add(order)
            await self.session.commit()

        logger.info(
            "Order created successfully",
            order_id=str(order.id),
            order_number=order.order_number,
            total=float(order.total),
            status=order.status.value,
        )

        await self.notifications.send_order_confirmation(order, user)
        await self.notifications.notify_operator(order, user)

        return order

    def _validate_cart(
        self,
        items: Sequence[dict[str, Any]],
        shipping_address: Optional[dict[str, Any]],
    ) -> None:
        if not items:
            raise OrderValidationError("No items in order")

        if (
            not shipping_address
            or not shipping_address.get("name")
            or not shipping_address.get("address")
        ):
            raise OrderValidationError("Shipping address is required")

        for item in items:
            if not item.get("product_id") and not item.get("slug"):
                raise OrderValidationError("Each item needs a product id or slug")
            if int(item.get("quantity") or 0) < 1:
                raise OrderValidationError("Item quantity must be at least 1")

    async def _build_line_items(
        self, items: Sequence[dict[str, Any]]
    ) -> tuple[list[dict[str, Any]], Decimal]:
        """
        Resolve, stock-check, price and decrement each cart line in order.

        Stock is committed per line; if a later line fails, earlier lines
        keep their decrement.
        """
        line_items: list[dict[str, Any]] = []
        subtotal = Decimal("0")

        for item in items:
            reference = item.get("product_id") or item.get("slug")
            quantity = int(item["quantity"])

            product = await self.products.resolve(
                product_id=item.get("product_id"),
                slug=item.get("slug"),
            )
            if product is None:
                logger.info("Product not resolved", reference=reference)
                raise ProductResolutionError(
                    f"Product not found: {reference}",
                    reference=reference,
                )

            if not product.has_stock_for(quantity):
                logger.info(
                    "Insufficient stock",
                    product_id=str(product.id),
                    requested=quantity,
                    available=product.stock,
                )
                raise InsufficientStockError(
                    f"Insufficient stock for {product.name}",
                    product_id=str(product.id),
                    requested=quantity,
                    available=product.stock,
                )

            unit_price = Decimal(product.price)
            client_price = item.get("price")
            if self.settings.allow_client_price_override and client_price:
                unit_price = Decimal(str(client_price))

            line_items.append(
                {
                    "product_id": str(product.id),
                    "name": product.name,
                    "slug": product.slug,
                    "image": product.primary_image_url,
                    "price": str(unit_price),
                    "quantity": quantity,
                    "variant": item.get("variant"),
                    "customization": item.get("customization"),
                }
            )
            subtotal += unit_price * quantity

            if product.track_inventory:
                await self.products.decrement_stock(product, quantity)

        return line_items, subtotal

    def _apply_coupon(
        self, coupon: Coupon, subtotal: Decimal
    ) -> tuple[Decimal, Optional[str]]:
        if coupon.min_order_amount and subtotal < coupon.min_order_amount:
            logger.info(
                "Coupon minimum not met, ignoring coupon",
                code=coupon.code,
                subtotal=float(subtotal),
                min_order_amount=float(coupon.min_order_amount),
            )
            return Decimal("0"), None

        discount = calculate_discount(coupon, subtotal)
        logger.info(
            "Coupon applied",
            code=coupon.code,
            subtotal=float(subtotal),
            discount=float(discount),
        )
        return discount, coupon.code

    # =========================================================================
    # Customer operations
    # =========================================================================

    async def list_user_orders(self, user_id: uuid.UUID) -> Sequence[Order]:
        return await self.orders.list_for_user(user_id)

    async def get_user_order(self, order_id: uuid.UUID, user_id: uuid.UUID) -> Order:
        """
        Get an order owned by ``user_id``.

        Raises:
            OrderNotFoundError: If it does not exist or belongs to someone else
        """
        order = await self.orders.get_for_user(order_id, user_id)
        if order is None:
            raise OrderNotFoundError("Order not found", order_id=str(order_id))
        return order

    async def cancel_order(
        self,
        order_id: uuid.UUID,
        user: User,
        reason: Optional[str] = None,
    ) -> Order:
        """
        Cancel an order on behalf of its owner.

        Raises:
            OrderNotFoundError: If the order is not the user's
            OrderCancellationError: If the order is past the cancellable stage
        """
        order = await self.get_user_order(order_id, user.id)
        self.state_machine.cancel_by_customer(order, reason)
        await self.session.commit()

        logger.info(
            "Order cancelled by customer",
            order_id=str(order.id),
            order_number=order.order_number,
            payment_status=order.payment_status.value,
        )
        return order

    async def track_order(
        self, order_number: str, phone: Optional[str] = None
    ) -> dict[str, Any]:
        """
        Public order tracking by order number.

        When ``phone`` is given its last four digits must match the shipping
        phone.

        Raises:
            OrderNotFoundError: If no order has this number
            OrderValidationError: If the phone does not match
        """
        order = await self.orders.get_by_number(order_number)
        if order is None:
            raise OrderNotFoundError("Order not found", order_number=order_number)

        address = order.shipping_address or {}
        if phone and _phone_last4(phone) != _phone_last4(address.get("phone")):
            logger.info("Tracking phone mismatch", order_number=order.order_number)
            raise OrderValidationError("Phone number does not match")

        placed_at = order.placed_at
        estimated_delivery: Optional[datetime] = None
        if not (order.status.is_terminal() or order.status == OrderStatus.DELIVERED):
            estimated_delivery = placed_at + timedelta(days=ESTIMATED_DELIVERY_DAYS)

        name = (address.get("name") or "").split()
        return {
            "order_number": order.order_number,
            "status": order.status.value,
            "payment_status": order.payment_status.value,
            "customer_name": name[0] if name else "Customer",
            "city": address.get("city"),
            "order_date": placed_at.isoformat(),
            "tracking": order.tracking or None,
            "timeline": list(order.timeline or []),
            "estimated_delivery": (
                estimated_delivery.isoformat() if estimated_delivery else None
            ),
        }

    async def get_invoice(self, order_id: uuid.UUID, user_id: uuid.UUID) -> dict[str, Any]:
        """
        Invoice document for an order owned by ``user_id``.

        Amounts are the ones stored at intake; nothing is re-priced.

        Raises:
            OrderNotFoundError: If it does not exist or belongs to someone else
        """
        order = await self.get_user_order(order_id, user_id)
        address = order.shipping_address or {}
        placed_at = order.placed_at.isoformat()

        items = []
        for item in order.items or []:
            price = Decimal(str(item["price"]))
            quantity = int(item["quantity"])
            items.append(
                {
                    "name": item.get("name"),
                    "quantity": quantity,
                    "price": float(price),
                    "total": float(price * quantity),
                    "variant": item.get("variant"),
                }
            )

        return {
            "invoice_number": f"INV-{order.order_number}",
            "invoice_date": placed_at,
            "company": {
                "name": self.settings.store_name,
                "address": self.settings.store_address,
                "phone": self.settings.store_phone,
                "email": self.settings.store_email,
                "gstin": self.settings.store_gstin,
            },
            "customer": {
                "name": address.get("name"),
                "phone": address.get("phone"),
                "address": (
                    f"{address.get('address', '')}, {address.get('city', '')}, "
                    f"{address.get('state', '')} - {address.get('pincode', '')}"
                ),
            },
            "order_number": order.order_number,
            "order_date": placed_at,
            "payment_method": order.payment_method,
            "payment_status": order.payment_status.value,
            "items": items,
            "subtotal": float(order.subtotal),
            "shipping": float(order.shipping_cost),
            "discount": float(order.discount),
            "tax": float(order.tax),
            "total": float(order.total),
        }

    # =========================================================================
    # Back office
    # =========================================================================

    async def list_orders(
        self,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> dict[str, Any]:
        orders, total = await self.orders.list_orders(status=status, skip=skip, limit=limit)
        return {
            "orders": [order.to_response() for order in orders],
            "total_count": total,
            "skip": skip,
            "limit": limit,
        }

    async def get_order(self, order_id: uuid.UUID) -> Order:
        order = await self.orders.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundError("Order not found", order_id=str(order_id))
        return order

    async def admin_update_order(
        self,
        order_id: uuid.UUID,
        status: Optional[OrderStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
        tracking: Optional[dict[str, Any]] = None,
        note: Optional[str] = None,
        admin_notes: Optional[str] = None,
        send_email: bool = True,
    ) -> Order:
        """
        Apply an operator update.

        Status and payment status changes are validated against the
        transition tables before anything is modified. ``note`` becomes the
        timeline message for a status change.

        Raises:
            OrderNotFoundError: If the order does not exist
            StateTransitionError: If a requested transition is not allowed
        """
        order = await self.get_order(order_id)

        status_changed = status is not None and status != order.status
        payment_changed = (
            payment_status is not None and payment_status != order.payment_status
        )

        if status_changed:
            self.state_machine.ensure_transition(order, status)
        if payment_changed:
            self.state_machine.ensure_payment_transition(order, payment_status)

        if status_changed:
            self.state_machine.transition(order, status, note)
        if payment_changed:
            self.state_machine.update_payment(order, payment_status)

        if tracking:
            merged = dict(order.tracking or {})
            for field in TRACKING_FIELDS:
                value = tracking.get(field)
                if value:
                    merged[field] = value.isoformat() if isinstance(value, datetime) else value
            order.tracking = merged

        if admin_notes is not None:
            order.admin_notes = admin_notes

        await self.session.commit()

        logger.info(
            "Order updated by admin",
            order_id=str(order.id),
            status=order.status.value,
            payment_status=order.payment_status.value,
            status_changed=status_changed,
            payment_changed=payment_changed,
        )

        if send_email and status_changed:
            user = await self.session.get(User, order.user_id)
            if user is not None:
                await self.notifications.send_status_update(order, user, status, note)

        return order
