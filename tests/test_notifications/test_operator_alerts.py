"""
Tests for operator push alerts and the WhatsApp link builder.
"""

from decimal import Decimal
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from storefront.core.config import Settings
from storefront.services.notifications.operator_alerts import (
    OperatorNotificationError,
    OperatorNotifier,
    format_address,
)


def notifier_with(settings: Settings, handler) -> OperatorNotifier:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OperatorNotifier(settings, http_client=http_client)


async def test_push(settings: Settings):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"id": "n1"})

    notifier = notifier_with(settings, handler)
    await notifier.push("New Order!", "Order #AC-1", priority="urgent")

    (request,) = requests
    assert str(request.url) == f"https://ntfy.sh/{settings.ntfy_topic}"
    assert request.headers["Title"] == "New Order!"
    assert request.headers["Priority"] == "urgent"
    assert request.content == "Order #AC-1".encode("utf-8")


async def test_push_error_status(settings: Settings):
    notifier = notifier_with(settings, lambda request: httpx.Response(500))

    with pytest.raises(OperatorNotificationError):
        await notifier.push("New Order!", "Order #AC-1")


async def test_push_transport_error(settings: Settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    notifier = notifier_with(settings, handler)

    with pytest.raises(OperatorNotificationError) as exc_info:
        await notifier.push("New Order!", "Order #AC-1")

    assert exc_info.value.context["topic"] == settings.ntfy_topic


def test_whatsapp_link(settings: Settings):
    link = OperatorNotifier(settings).build_whatsapp_link(
        order_number="AC-1",
        customer_name="Asha Verma",
        customer_phone="9876543210",
        item_count=3,
        total=Decimal("2714"),
        address_block="12 MG Road",
    )

    parsed = urlparse(link)
    assert parsed.netloc == "wa.me"
    assert parsed.path == f"/{settings.admin_whatsapp}"
    text = parse_qs(parsed.query)["text"][0]
    assert "*Order #AC-1*" in text
    assert "*Items:* 3 item(s)" in text
    assert "*Total:* ₹2,714" in text
    assert "*Shipping:*\n12 MG Road" in text


def test_format_address(shipping_address):
    assert format_address(shipping_address) == (
        "Asha Verma\n12 MG Road\nBengaluru, Karnataka, 560001\nPhone: +91 98765 43210"
    )
    assert format_address({}) == ""
