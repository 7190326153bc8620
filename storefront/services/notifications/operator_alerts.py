"""
Operator alerts for new orders.

Pushes a short message to an ntfy topic the shop operator subscribes to and
builds a WhatsApp deep link carrying the full order summary.
"""

from decimal import Decimal
from typing import Any, Optional
from urllib.parse import quote

import httpx

from storefront.core.config import Settings, get_settings
from storefront.core.logging import get_logger
from storefront.services.notifications.templates import format_currency

logger = get_logger(__name__)


class OperatorNotificationError(Exception):
    """Raised when the push service rejects or cannot be reached."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.context = context


def format_address(address: dict[str, Any]) -> str:
    """Render a shipping address snapshot as a multi-line block."""
    if not address:
        return ""
    lines = [
        address.get("name"),
        address.get("address"),
        address.get("landmark"),
        ", ".join(
            part
            for part in (
                address.get("city"),
                address.get("state"),
                address.get("pincode"),
            )
            if part
        ),
        f"Phone: {address['phone']}" if address.get("phone") else None,
    ]
    return "\n".join(line for line in lines if line)


class OperatorNotifier:
    """ntfy push client plus WhatsApp link builder."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 5.0,
    ) -> None:
        self.settings = settings or get_settings()
        self._http_client = http_client
        self.timeout = timeout

    @property
    def topic_url(self) -> str:
        return f"{self.settings.ntfy_base_url.rstrip('/')}/{self.settings.ntfy_topic}"

    async def push(
        self,
        title: str,
        message: str,
        priority: str = "high",
        tags: str = "shopping_cart,rupee",
    ) -> None:
        """
        POST a message to the ntfy topic.

        Raises:
            OperatorNotificationError: On transport errors or non-2xx responses
        """
        headers = {"Title": title, "Priority": priority, "Tags": tags}

        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    self.topic_url, content=message.encode("utf-8"), headers=headers
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(
                        self.topic_url, content=message.encode("utf-8"), headers=headers
                    )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Push notification failed", topic=self.settings.ntfy_topic, error=str(e))
            raise OperatorNotificationError(
                f"Push notification failed: {e}",
                topic=self.settings.ntfy_topic,
            ) from e

        logger.info("Push notification sent", topic=self.settings.ntfy_topic, title=title)

    def build_whatsapp_link(
        self,
        order_number: str,
        customer_name: str,
        customer_phone: str,
        item_count: int,
        total: Decimal,
        address_block: str = "",
    ) -> str:
        """Build a wa.me link pre-filled with the order summary."""
        lines = [
            "*New Order Received!*",
            "",
            f"*Order #{order_number}*",
            "",
            f"*Customer:* {customer_name}",
            f"*Phone:* {customer_phone}",
            f"*Items:* {item_count} item(s)",
            f"*Total:* {format_currency(total)}",
        ]
        if address_block:
            lines += ["", "*Shipping:*", address_block]
        lines += ["", "---", "Check admin panel for full details."]

        text = quote("\n".join(lines), safe="")
        return f"https://wa.me/{self.settings.admin_whatsapp}?text={text}"
