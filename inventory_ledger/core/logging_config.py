"""
Structured logging configuration
JSON log lines compatible with ELK, CloudWatch Insights and Datadog.

Ledger code logs through ``get_logger(__name__)`` and attaches domain fields
with ``extra={'extra_fields': {...}}``. Request and ledger-operation context
(request id, correlation id, operation name) is carried in context variables
and stamped onto every record emitted while it is set.
"""

import logging
import logging.handlers
import os
import sys
import json
import time
import traceback
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional
from contextvars import ContextVar
import uuid
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

# Context variables for request tracking
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)
# Ledger operation currently executing (getInventory, reserveInventory, ...)
operation_var: ContextVar[Optional[str]] = ContextVar('operation', default=None)

_service_info: Dict[str, str] = {
    "service": "inventory-service",
    "version": "1.0.0",
    "environment": os.getenv("ENVIRONMENT", "development"),
}

class StructuredFormatter(logging.Formatter):
    """JSON structured logging formatter"""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "@timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_service_info,
        }

        trace_context = self._get_trace_context()
        if trace_context:
            log_obj["trace"] = trace_context

        log_obj["location"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
            "module": record.module
        }

        if record.exc_info and record.exc_info[0] is not None:
            log_obj["error"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "stacktrace": traceback.format_exception(*record.exc_info)
            }

        if hasattr(record, 'extra_fields'):
            log_obj["custom"] = record.extra_fields

        if hasattr(record, 'duration_ms'):
            log_obj["performance"] = {
                "duration_ms": record.duration_ms
            }

        return json.dumps(log_obj, default=str)

    def _get_trace_context(self) -> Optional[Dict[str, Any]]:
        context = {
            "request_id": request_id_var.get(),
            "correlation_id": correlation_id_var.get(),
            "operation": operation_var.get(),
        }
        context = {k: v for k, v in context.items() if v}
        return context or None

class PerformanceFilter(logging.Filter):
    """Expose ``duration`` (seconds) as ``duration_ms``"""

    def filter(self, record: logging.LogRecord) -> bool:
        if hasattr(record, 'duration'):
            record.duration_ms = record.duration * 1000
        return True

class SecurityFilter(logging.Filter):
    """Redact credentials that leak into log messages (e.g. database URLs)"""

    SENSITIVE_FIELDS = [
        'password', 'token', 'api_key', 'secret',
        'authorization', 'cookie', 'session'
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        if not isinstance(record.msg, str):
            return True
        lowered = record.msg.lower()
        for field in self.SENSITIVE_FIELDS:
            if f"{field}=" in lowered or f"{field}:" in lowered:
                record.msg = f"[redacted message containing '{field}']"
                record.args = ()
                break
        return True

def setup_logging(
    service_name: str,
    level: str = "INFO",
    version: str = "1.0.0",
    enable_console: bool = True,
    enable_file: bool = False,
    log_file: Optional[str] = None
) -> None:
    """
    Setup structured logging for the inventory service

    Args:
        service_name: Name reported in every log line
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        version: Service version reported in every log line
        enable_console: Enable stdout output
        enable_file: Enable rotating file output
        log_file: Path to log file
    """
    _service_info["service"] = service_name
    _service_info["version"] = version

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers = []

    formatter = StructuredFormatter()

    if enable_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        console_handler.addFilter(PerformanceFilter())
        console_handler.addFilter(SecurityFilter())
        root_logger.addHandler(console_handler)

    if enable_file and log_file:
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10485760,  # 10MB
            backupCount=5
        )
        file_handler.setFormatter(formatter)
        file_handler.addFilter(PerformanceFilter())
        file_handler.addFilter(SecurityFilter())
        root_logger.addHandler(file_handler)

    logging.getLogger('uvicorn').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

    root_logger.info(
        "Logging initialized",
        extra={
            'extra_fields': {
                'service': service_name,
                'level': level,
                'handlers': {
                    'console': enable_console,
                    'file': enable_file
                }
            }
        }
    )

class LoggerAdapter(logging.LoggerAdapter):
    """Injects request and operation context into ``extra``"""

    def process(self, msg, kwargs):
        extra = kwargs.get('extra', {})

        request_id = request_id_var.get()
        if request_id:
            extra['request_id'] = request_id

        operation = operation_var.get()
        if operation:
            extra['operation'] = operation

        kwargs['extra'] = extra
        return msg, kwargs

def get_logger(name: str) -> LoggerAdapter:
    return LoggerAdapter(logging.getLogger(name), {})

def set_request_context(
    request_id: Optional[str] = None,
    correlation_id: Optional[str] = None,
) -> None:
    if request_id:
        request_id_var.set(request_id)
    if correlation_id:
        correlation_id_var.set(correlation_id)

@contextmanager
def operation_context(operation: str) -> Iterator[None]:
    """Tag every log record emitted inside the block with ``operation``"""
    token = operation_var.set(operation)
    try:
        yield
    finally:
        operation_var.reset(token)

def generate_request_id() -> str:
    return str(uuid.uuid4())

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs every request and response
    Propagates X-Request-ID and records request duration
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get('X-Request-ID') or generate_request_id()
        correlation_id = request.headers.get('X-Correlation-ID')

        set_request_context(
            request_id=request_id,
            correlation_id=correlation_id
        )

        logger = get_logger(__name__)
        logger.info(
            f"Request started: {request.method} {request.url.path}",
            extra={
                'extra_fields': {
                    'method': request.method,
                    'path': request.url.path,
                    'client_host': request.client.host if request.client else None
                }
            }
        )

        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                f"Request failed: {request.method} {request.url.path}",
                exc_info=True,
                extra={
                    'duration': time.perf_counter() - start_time,
                    'extra_fields': {
                        'method': request.method,
                        'path': request.url.path,
                    }
                }
            )
            raise

        logger.info(
            f"Request completed: {request.method} {request.url.path}",
            extra={
                'duration': time.perf_counter() - start_time,
                'extra_fields': {
                    'method': request.method,
                    'path': request.url.path,
                    'status_code': response.status_code,
                }
            }
        )

        response.headers['X-Request-ID'] = request_id
        return response
