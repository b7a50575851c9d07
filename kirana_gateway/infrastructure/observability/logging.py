"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from kirana_gateway.config import settings

logger = logging.getLogger("kirana_gateway")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers
    root.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    root.addHandler(handler)


def log_ledger_transaction(
    request_id: str,
    shop_id: str,
    account_id: str,
    transaction_type: str,
    amount_paise: int,
    balance_paise: int,
) -> None:
    """Log a posted ledger entry for audit analysis"""
    logger.info(
        "Credit transaction applied",
        extra={
            "request_id": request_id,
            "shop_id": shop_id,
            "account_id": account_id,
            "step": "ledger_apply",
            "transaction_type": transaction_type,
            "amount_paise": amount_paise,
            "balance_paise": balance_paise,
        },
    )


def log_delivery_completed(
    request_id: str,
    shop_id: str,
    delivery_id: str,
    subscription_id: str,
    next_delivery_id: Optional[str],
    invoice_id: Optional[str],
) -> None:
    logger.info(
        "Delivery completed",
        extra={
            "request_id": request_id,
            "shop_id": shop_id,
            "delivery_id": delivery_id,
            "subscription_id": subscription_id,
            "step": "delivery_complete",
            "next_delivery_id": next_delivery_id,
            "invoice_id": invoice_id,
        },
    )


def log_side_effect_failure(request_id: str, effect: str, error: str, **context: Any) -> None:
    """Log a best-effort secondary effect that failed without aborting the request"""
    logger.error(
        f"Side effect failed: {effect}",
        extra={
            "request_id": request_id,
            "step": "side_effect",
            "effect": effect,
            "error": error,
            **context,
        },
    )
