"""Core service utilities: structured logging and health checks."""

from .logging_config import (
    setup_logging,
    get_logger,
    RequestLoggingMiddleware,
    set_request_context,
    operation_context,
    generate_request_id,
    LoggerAdapter,
)
from .health import ServiceHealth, HealthStatus

__all__ = [
    # Health checks
    "ServiceHealth",
    "HealthStatus",
    # Logging
    "setup_logging",
    "get_logger",
    "RequestLoggingMiddleware",
    "set_request_context",
    "operation_context",
    "generate_request_id",
    "LoggerAdapter",
]
