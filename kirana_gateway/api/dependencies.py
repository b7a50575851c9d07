"""Dependency injection for FastAPI endpoints"""

from datetime import datetime
from fastapi import Header, Request
from kirana_gateway.config import settings
from kirana_gateway.infrastructure.clients.whatsapp import WhatsAppClient
from kirana_gateway.utils.date_utils import local_now


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_shop_id(x_shop_id: str = Header(..., min_length=1, description="Acting shop identifier")) -> str:
    """Shop on whose behalf the request acts; every lookup is scoped to it"""
    return x_shop_id


def get_now() -> datetime:
    """Current wall-clock time in the shop timezone"""
    return local_now(settings.timezone)


def get_whatsapp_client() -> WhatsAppClient:
    """Provide WhatsApp notification client instance"""
    return WhatsAppClient()
