"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from placement_lifecycle.config import settings


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


def log_transition(
    request_id: str,
    application_id: str,
    from_status: str,
    to_status: str,
    performed_by: str,
) -> None:
    """Log a committed status transition"""
    logging.info(
        "Status transition completed",
        extra={
            "request_id": request_id,
            "application_id": application_id,
            "step": "status_change",
            "from_status": from_status,
            "to_status": to_status,
            "performed_by": performed_by,
        },
    )


def log_cancellation(
    request_id: str,
    application_id: str,
    cancellation_type: str,
    new_status: str,
    final_refund: str,
    next_action: Optional[str],
    new_application_id: Optional[str],
    duration_ms: float,
) -> None:
    """Log structured cancellation outcome for audit and analysis"""
    logging.info(
        "Cancellation completed",
        extra={
            "request_id": request_id,
            "application_id": application_id,
            "step": "cancellation_complete",
            "cancellation_type": cancellation_type,
            "new_status": new_status,
            "final_refund": final_refund,
            "next_action": next_action,
            "new_application_id": new_application_id,
            "duration_ms": duration_ms,
        },
    )
