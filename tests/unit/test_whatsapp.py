"""Unit tests for the WhatsApp notification client"""

import asyncio
from unittest.mock import AsyncMock, patch

import httpx

from kirana_gateway.infrastructure.clients.whatsapp import WhatsAppClient, format_rupees


def _client() -> WhatsAppClient:
    client = WhatsAppClient(base_url="https://wa.test", api_key="key", phone_number_id="123")
    client.backoff_base = 0
    return client


def _ok() -> httpx.Response:
    return httpx.Response(200, request=httpx.Request("POST", "https://wa.test/123/messages"))


def test_unconfigured_client_skips_sending():
    client = WhatsAppClient(api_key="", phone_number_id="")

    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as post:
        assert asyncio.run(client.send_message("9876543210", "hi")) is False
        post.assert_not_called()


def test_payload_uses_digits_only_number():
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock, return_value=_ok()) as post:
        sent = asyncio.run(_client().send_invoice_notice("+91 98765-43210", "Asha", "INV-202403-0001", 5_250, "18 Mar 2024"))

    assert sent is True
    url = post.call_args.args[0]
    payload = post.call_args.kwargs["json"]
    assert url == "https://wa.test/123/messages"
    assert payload["to"] == "919876543210"
    assert payload["template"]["name"] == "invoice_notice"
    text = payload["template"]["components"][0]["parameters"][0]["text"]
    assert "INV-202403-0001" in text
    assert "₹52.50" in text
    assert post.call_args.kwargs["headers"] == {"Authorization": "Bearer key"}


def test_retries_then_gives_up():
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock, side_effect=httpx.ConnectError("down")) as post:
        sent = asyncio.run(_client().send_delivery_update("9876543210", "Asha", 1.0, "litre"))

    assert sent is False
    assert post.await_count == 3


def test_recovers_after_transient_failure():
    with patch(
        "httpx.AsyncClient.post",
        new_callable=AsyncMock,
        side_effect=[httpx.ConnectError("blip"), _ok()],
    ) as post:
        sent = asyncio.run(_client().send_payment_receipt("9876543210", "Asha", 50_000, 150_000))

    assert sent is True
    assert post.await_count == 2


def test_format_rupees():
    assert format_rupees(150_000) == "₹1,500.00"
    assert format_rupees(5) == "₹0.05"


def test_invalid_url_fails_without_retry():
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock, side_effect=httpx.InvalidURL("bad host")) as post:
        sent = asyncio.run(_client().send_message("9876543210", "hi"))

    assert sent is False
    assert post.await_count == 1
