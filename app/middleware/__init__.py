"""
Middleware modules for the Complaint Desk API.

Provides request processing middleware for:
- Correlation ID tracking, shared with background SLA runs for log grouping
"""

from .correlation import CorrelationIdMiddleware, correlation_id_ctx, request_id_ctx

__all__ = [
    "CorrelationIdMiddleware",
    "correlation_id_ctx",
    "request_id_ctx",
]
