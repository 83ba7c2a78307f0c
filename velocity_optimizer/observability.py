"""Structured JSON logging"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from pythonjsonlogger import jsonlogger


SERVICE_NAME = "velocity-optimizer"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = SERVICE_NAME


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging on the root logger"""
    logger = logging.getLogger()
    logger.setLevel(level.upper())

    # Remove existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s"))
    logger.addHandler(handler)


def log_comparison(request_id: str, summaries: Dict[str, Dict[str, Any]], duration_ms: float) -> None:
    """Log one compare request outcome for analysis"""
    logging.getLogger(__name__).info(
        "Comparison completed",
        extra={
            "request_id": request_id,
            "step": "comparison_complete",
            "payoff_months": {name: s["payoff_months"] for name, s in summaries.items()},
            "statuses": {name: s["status"] for name, s in summaries.items()},
            "duration_ms": duration_ms,
        },
    )
