"""
Shared API Middleware

Error envelope handlers, request trace/operator ids and request spans.
"""

from .error_handler import register_error_handlers
from .trace import TraceMiddleware, get_operator_id
from .tracing import TracingMiddleware

__all__ = [
    "register_error_handlers",
    "TraceMiddleware",
    "TracingMiddleware",
    "get_operator_id",
]
