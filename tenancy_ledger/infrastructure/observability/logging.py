"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict
from pythonjsonlogger import jsonlogger

from tenancy_ledger.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_allocation(
    tenant_id: str,
    flow: str,
    reference: str,
    amount: Decimal,
    applied: Decimal,
    overpay: Decimal,
    periods_touched: int,
) -> None:
    """Log structured allocation outcome for audit and analysis"""
    logging.info(
        "Payment allocated",
        extra={
            "tenant_id": tenant_id,
            "step": "allocation_complete",
            "flow": flow,
            "reference_number": reference,
            "amount": str(amount),
            "applied": str(applied),
            "overpay": str(overpay),
            "periods_touched": periods_touched,
        },
    )


def log_settlement(tenant_id: str, cleared: bool, refund: Decimal, deficit: Decimal) -> None:
    """Log structured exit settlement outcome"""
    logging.info(
        "Exit clearance settled",
        extra={
            "tenant_id": tenant_id,
            "step": "settlement_complete",
            "settlement_outcome": "cleared" if cleared else "deficit",
            "refund": str(refund),
            "deficit": str(deficit),
        },
    )
