"""
Request correlation IDs for log tracing.

HTTP requests take X-Request-ID / X-Correlation-ID from the client or get
fresh ones; background runs (SLA sweeps) bind their own run ID with
bind_request_id() so every log line of one run can be grouped.
"""

import uuid
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Callable, Iterator

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

correlation_id_ctx: ContextVar[str] = ContextVar("correlation_id", default="")
request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")


def generate_id(prefix: str = "") -> str:
    """Short unique ID suitable for logging."""
    return f"{prefix}{uuid.uuid4().hex[:12]}"


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Stamps every request/response pair with correlation and request IDs."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID") or generate_id()
        request_id = request.headers.get("X-Request-ID") or generate_id()

        correlation_id_ctx.set(correlation_id)
        request_id_ctx.set(request_id)
        request.state.request_id = request_id

        response = await call_next(request)

        response.headers["X-Correlation-ID"] = correlation_id
        response.headers["X-Request-ID"] = request_id
        return response


def get_request_id() -> str:
    """Current request (or run) ID, "unknown" outside of one."""
    return request_id_ctx.get() or "unknown"


@contextmanager
def bind_request_id(value: str) -> Iterator[str]:
    """Bind a run ID for the duration of a background job."""
    token = request_id_ctx.set(value)
    try:
        yield value
    finally:
        request_id_ctx.reset(token)


class CorrelationLogFilter(logging.Filter):
    """Injects %(request_id)s into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True
