"""Observability helpers for tenantguard.

Provides structured logging and request id correlation.
"""

from .logging_config import configure_logging, get_logger, JSONFormatter, RequestIDFilter
from .request_id import request_id_var, get_request_id, set_request_id, reset_request_id, generate_request_id

__all__ = [
    "configure_logging",
    "get_logger",
    "JSONFormatter",
    "RequestIDFilter",
    "request_id_var",
    "get_request_id",
    "set_request_id",
    "reset_request_id",
    "generate_request_id",
]
