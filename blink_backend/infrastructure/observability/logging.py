"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger

SERVICE_NAME = "blink-backend"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = SERVICE_NAME


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


def log_advance_event(
    request_id: str,
    user_id: str,
    advance_id: str,
    step: str,
    status: str,
    **fields: Any,
) -> None:
    """Log structured advance lifecycle event for analysis"""
    logging.info(
        "Advance event",
        extra={
            "request_id": request_id,
            "user_id": user_id,
            "advance_id": advance_id,
            "step": step,
            "status": status,
            **fields,
        },
    )


def log_sync_outcome(user_id: str, account_id: str, added: int, modified: int, removed: int) -> None:
    logging.info(
        "Account sync completed",
        extra={
            "user_id": user_id,
            "account_id": account_id,
            "step": "sync_complete",
            "added": added,
            "modified": modified,
            "removed": removed,
        },
    )
