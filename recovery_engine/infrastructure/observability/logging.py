"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from pythonjsonlogger import jsonlogger

from recovery_engine.config import settings


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


def log_recommendation(
    run_id: str,
    customer_id: str,
    current_category: str,
    recommended_category: str,
    on_time_percentage: str,
    override_applied: bool,
) -> None:
    """Log structured classification outcome for analysis"""
    logging.info(
        "Category recommendation computed",
        extra={
            "run_id": run_id,
            "customer_id": customer_id,
            "step": "classification_complete",
            "current_category": current_category,
            "recommended_category": recommended_category,
            "on_time_percentage": on_time_percentage,
            "override_applied": override_applied,
        },
    )


def log_recalculation(run_id: str, customer_count: int, error_count: int, duration_ms: float) -> None:
    logging.info(
        "Recalculation completed",
        extra={
            "run_id": run_id,
            "step": "recalculation_complete",
            "customer_count": customer_count,
            "error_count": error_count,
            "duration_ms": duration_ms,
        },
    )


def log_record_error(run_id: str, record_type: str, record_id: str, kind: str, message: str) -> None:
    """Record-level failures are reported, never dropped"""
    logging.warning(
        f"Record skipped: {message}",
        extra={
            "run_id": run_id,
            "record_type": record_type,
            "record_id": record_id,
            "error_kind": kind,
        },
    )


def log_category_change(customer_id: str, from_category: str, to_category: str, reason: str, days_overdue: int) -> None:
    logging.info(
        "Category change applied",
        extra={
            "customer_id": customer_id,
            "step": "category_applied",
            "from_category": from_category,
            "to_category": to_category,
            "reason": reason,
            "days_overdue": days_overdue,
        },
    )
