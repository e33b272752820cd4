"""
Observability middleware and logging setup.

Every request gets a correlation ID, taken from the caller's
X-Correlation-ID header or generated. It is echoed on the response and
stamped on every log record emitted while the request is handled, so a
match can be followed from the matching service into the location
service's logs.
"""

import logging
import time
import uuid
from contextvars import ContextVar
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("driver_matching.access")

CORRELATION_ID_HEADER = "X-Correlation-ID"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] [%(correlation_id)s] %(message)s"

correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


class CorrelationIdFilter(logging.Filter):
    """Adds the current request's correlation ID to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = correlation_id_var.get() or "-"
        return True


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once per process."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, CorrelationIdFilter) for f in handler.filters):
            handler.addFilter(CorrelationIdFilter())


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get(CORRELATION_ID_HEADER) or uuid.uuid4().hex
        token = correlation_id_var.set(correlation_id)
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        finally:
            correlation_id_var.reset(token)

        duration_ms = (time.perf_counter() - start_time) * 1000

        response.headers[CORRELATION_ID_HEADER] = correlation_id
        response.headers["X-Process-Time"] = f"{duration_ms:.2f}"

        log_data = {
            "correlation_id": correlation_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round(duration_ms, 2),
        }

        if response.status_code >= 500:
            log = logger.error
        elif response.status_code >= 400:
            log = logger.warning
        else:
            log = logger.info
        log("%s %s -> %d (%.2f ms)", request.method, request.url.path, response.status_code, duration_ms, extra=log_data)

        return response
