"""WhatsApp Cloud API client for fire-and-forget customer notifications"""

import asyncio
import logging
import re
from typing import Any, Dict, Optional

import httpx

from kirana_gateway.config import settings
from kirana_gateway.infrastructure.observability.metrics import (
    notification_failure_counter,
    notification_latency_histogram,
)

logger = logging.getLogger(__name__)


def format_rupees(amount_paise: int) -> str:
    return f"₹{amount_paise / 100:,.2f}"


class WhatsAppClient:
    """Client for sending template messages to customers"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        phone_number_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = base_url or settings.whatsapp_api_base
        self.api_key = api_key if api_key is not None else settings.whatsapp_api_key
        self.phone_number_id = phone_number_id if phone_number_id is not None else settings.whatsapp_phone_number_id
        self.timeout = timeout or settings.http_timeout_seconds
        self.max_retries = settings.notification_max_retries
        self.backoff_base = settings.notification_backoff_base

    def is_configured(self) -> bool:
        return bool(self.api_key and self.phone_number_id)

    async def send_message(self, to: str, message: str, template: str = "text_message") -> bool:
        """
        Send a template message. Never raises: failures are logged and counted.

        Retry strategy:
        - Exponential backoff: 1s, 2s, 4s (base * 2^attempt)
        - Retries on HTTP errors and network failures
        - A malformed API URL fails at once

        Returns:
            True when the API accepted the message
        """
        if not self.is_configured():
            logger.warning("WhatsApp API not configured, skipping notification")
            return False

        payload = self._build_payload(to, message, template)
        attempt = 0
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            while attempt < self.max_retries:
                try:
                    with notification_latency_histogram.time():
                        response = await client.post(
                            f"{self.base_url}/{self.phone_number_id}/messages",
                            json=payload,
                            headers={"Authorization": f"Bearer {self.api_key}"},
                        )
                        response.raise_for_status()
                    return True

                except httpx.InvalidURL as e:
                    notification_failure_counter.inc()
                    logger.error(f"WhatsApp API URL is invalid: {e}", extra={"template": template})
                    return False

                except httpx.HTTPError as e:
                    attempt += 1
                    notification_failure_counter.inc()

                    if attempt >= self.max_retries:
                        logger.error(
                            f"WhatsApp notification failed after {attempt} attempts: {e}",
                            extra={"template": template},
                        )
                        return False

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)

        return False

    @staticmethod
    def _build_payload(to: str, message: str, template: str) -> Dict[str, Any]:
        return {
            "messaging_product": "whatsapp",
            "to": re.sub(r"\D", "", to),
            "type": "template",
            "template": {
                "name": template,
                "language": {"code": "en"},
                "components": [
                    {
                        "type": "body",
                        "parameters": [{"type": "text", "text": message}],
                    }
                ],
            },
        }

    async def send_delivery_update(self, mobile: str, customer_name: str, quantity: float, unit: str) -> bool:
        message = f"Hi {customer_name}, your delivery of {quantity:g} {unit} has been delivered. Thank you!"
        return await self.send_message(mobile, message, template="delivery_update")

    async def send_invoice_notice(
        self, mobile: str, customer_name: str, invoice_number: str, total_paise: int, due_date: str
    ) -> bool:
        message = (
            f"Hi {customer_name}, invoice {invoice_number} for {format_rupees(total_paise)} "
            f"is due on {due_date}."
        )
        return await self.send_message(mobile, message, template="invoice_notice")

    async def send_payment_receipt(self, mobile: str, customer_name: str, amount_paise: int, balance_paise: int) -> bool:
        message = (
            f"Hi {customer_name}, we received your payment of {format_rupees(amount_paise)}. "
            f"Outstanding khata balance: {format_rupees(balance_paise)}."
        )
        return await self.send_message(mobile, message, template="payment_receipt")
