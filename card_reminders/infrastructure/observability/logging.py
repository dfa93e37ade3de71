"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger
from card_reminders.config import settings


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

    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_run_complete(
    run_id: str,
    slot: str,
    users_processed: int,
    users_failed: int,
    reminders_sent: int,
    tokens_deleted: int,
    duration_ms: float,
) -> None:
    """Log structured run outcome for analysis"""
    logging.info(
        "Reminder run completed",
        extra={
            "run_id": run_id,
            "slot": slot,
            "step": "run_complete",
            "users_processed": users_processed,
            "users_failed": users_failed,
            "reminders_sent": reminders_sent,
            "tokens_deleted": tokens_deleted,
            "duration_ms": duration_ms,
        },
    )
