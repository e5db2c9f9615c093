"""Structured JSON logging configuration.

Tenancy call sites log with ``extra`` fields (tenant_id, entity_type,
expected_tenant, actual_tenant); JSONFormatter lifts them into top-level keys
so audit trails can be queried without parsing messages.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from .request_id import get_request_id

# Extra attributes copied from the log record into the JSON document
STRUCTURED_FIELDS = (
    "tenant_id",
    "entity_type",
    "expected_tenant",
    "actual_tenant",
    "reference_name",
    "null_handling",
    "change_count",
)


class RequestIDFilter(logging.Filter):
    """Add request_id to all log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True


class JSONFormatter(logging.Formatter):
    """Format log records as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON string.

        Args:
            record: Log record to format

        Returns:
            str: JSON-formatted log message
        """
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "request_id": getattr(record, "request_id", "no-request-id"),
            "module": record.module,
            "function": record.funcName,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["error"] = str(record.exc_info[1])
            log_data["traceback"] = self.formatException(record.exc_info)

        for field in STRUCTURED_FIELDS:
            if hasattr(record, field):
                value = getattr(record, field)
                log_data[field] = None if value is None else str(value)

        return json.dumps(log_data)


def configure_logging(level: Optional[str] = None, json_format: Optional[bool] = None) -> None:
    """Configure application-wide logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR); defaults to LOG_LEVEL
        json_format: If True, use JSON formatter; otherwise use simple format.
            Defaults to LOG_JSON
    """
    if level is None or json_format is None:
        from ..config import get_settings

        settings = get_settings()
        level = level or settings.LOG_LEVEL
        json_format = settings.LOG_JSON if json_format is None else json_format

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(levelname)s - %(request_id)s - %(name)s - %(message)s'
        )

    handler.setFormatter(formatter)
    handler.addFilter(RequestIDFilter())
    root_logger.addHandler(handler)

    # Suppress noisy third-party loggers
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        logging.Logger: Logger instance
    """
    return logging.getLogger(name)
