"""
Notification service for order email and operator alerts.

Every public method is best-effort: failures are logged with context and
reported as ``False``, never raised, so a notification problem can never
fail or roll back an order operation.
"""

from typing import Any, Optional

from storefront.core.config import Settings, get_settings
from storefront.core.logging import get_logger
from storefront.database.models.order import Order
from storefront.database.models.user import User
from storefront.services.notifications.email_client import EmailClient
from storefront.services.notifications.operator_alerts import (
    OperatorNotifier,
    format_address,
)
from storefront.services.notifications.templates import (
    TemplateEngine,
    format_currency,
    get_template_engine,
)
from storefront.services.orders.enums import OrderStatus

logger = get_logger(__name__)

STORE_NAME = "Anvima Creations"

STATUS_TEMPLATES = {
    OrderStatus.SHIPPED: "order_shipped",
    OrderStatus.DELIVERED: "order_delivered",
    OrderStatus.CANCELLED: "order_cancelled",
}


class NotificationService:
    """
    Coordinates customer email and operator alerts for orders.

    Attributes:
        email_client: SES wrapper, created lazily
        operator: ntfy / WhatsApp notifier
        template_engine: Jinja2 email renderer
    """

    def __init__(
        self,
        email_client: Optional[EmailClient] = None,
        operator: Optional[OperatorNotifier] = None,
        template_engine: Optional[TemplateEngine] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._email_client = email_client
        self.operator = operator or OperatorNotifier(self.settings)
        self.template_engine = template_engine or get_template_engine()

    @property
    def email_client(self) -> EmailClient:
        if self._email_client is None:
            self._email_client = EmailClient(self.settings)
        return self._email_client

    def _base_context(self, order: Order, user: User) -> dict[str, Any]:
        return {
            "store_name": STORE_NAME,
            "site_url": self.settings.site_url.rstrip("/"),
            "order_number": order.order_number,
            "customer_name": user.name,
        }

    async def _send_template(
        self, template_name: str, to_address: str, context: dict[str, Any]
    ) -> bool:
        if not self.settings.notifications_enabled:
            logger.debug("Notifications disabled, skipping email", template_name=template_name)
            return False

        try:
            rendered = self.template_engine.render_email(template_name, context)
            await self.email_client.send(
                [to_address],
                rendered["subject"],
                rendered["html_body"],
                rendered.get("text_body"),
            )
        except Exception as e:
            logger.error(
                "Failed to send order email",
                template_name=template_name,
                order_number=context.get("order_number"),
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        return True

    async def send_order_confirmation(self, order: Order, user: User) -> bool:
        """Email the purchaser an itemised confirmation."""
        items = []
        for item in order.items or []:
            price = float(item["price"])
            items.append(
                {
                    "name": item["name"],
                    "quantity": item["quantity"],
                    "line_total": price * item["quantity"],
                }
            )

        context = {
            **self._base_context(order, user),
            "items": items,
            "subtotal": float(order.subtotal),
            "shipping_cost": float(order.shipping_cost),
            "discount": float(order.discount),
            "tax": float(order.tax),
            "total": float(order.total),
            "address": format_address(order.shipping_address),
        }
        return await self._send_template("order_confirmation", user.email, context)

    async def send_status_update(
        self,
        order: Order,
        user: User,
        status: OrderStatus,
        message: Optional[str] = None,
    ) -> bool:
        """Email the purchaser about a status change.

        Shipped, delivered and cancelled have dedicated templates; any other
        status uses the generic update.
        """
        context = {
            **self._base_context(order, user),
            "status": status.value,
            "message": message or f"Your order has been {status.value}",
            "reason": message,
            "tracking": order.tracking or {},
        }
        template_name = STATUS_TEMPLATES.get(status, "order_status_update")
        return await self._send_template(template_name, user.email, context)

    async def notify_operator(self, order: Order, user: User) -> bool:
        """Push a new-order alert to the operator."""
        if not self.settings.notifications_enabled:
            return False

        address = order.shipping_address or {}
        customer_name = address.get("name") or user.name
        customer_phone = address.get("phone") or user.phone or ""

        message = "\n".join(
            [
                f"Order #{order.order_number}",
                f"Customer: {customer_name}",
                f"Phone: {customer_phone}",
                f"Total: {format_currency(order.total)}",
                f"Items: {order.item_count}",
            ]
        )

        try:
            await self.operator.push("New Order!", message, priority="urgent")
        except Exception as e:
            logger.error(
                "Failed to notify operator",
                order_number=order.order_number,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        link = self.operator.build_whatsapp_link(
            order_number=order.order_number,
            customer_name=customer_name,
            customer_phone=customer_phone,
            item_count=order.item_count,
            total=order.total,
            address_block=format_address(address),
        )
        logger.info("Operator WhatsApp link", order_number=order.order_number, link=link)
        return True


_service: Optional[NotificationService] = None


def get_notification_service() -> NotificationService:
    """Get the process-wide notification service."""
    global _service
    if _service is None:
        _service = NotificationService()
    return _service
