"""
Request Context Middleware

Every request gets a trace id (``X-Trace-ID``, echoed back and used in the
error envelope). Operator consoles also send ``X-Operator-ID``; it names the
owner of the admin lease taken by retry/dispatch, so a 409 can say who is
already working on a record.
"""

import contextvars
import re
from typing import Optional
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

TRACE_HEADER = "X-Trace-ID"
OPERATOR_HEADER = "X-Operator-ID"

_OPERATOR_RE = re.compile(r"^[A-Za-z0-9._@-]{1,64}$")

operator_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("operator_id", default="")


def clean_operator_id(value: Optional[str]) -> Optional[str]:
    """Header value if it looks like an operator handle, else None."""
    if value and _OPERATOR_RE.match(value.strip()):
        return value.strip()
    return None


def get_operator_id(request: Request) -> Optional[str]:
    """FastAPI dependency: the calling operator, if the console sent one."""
    return getattr(request.state, "operator_id", None) or clean_operator_id(request.headers.get(OPERATOR_HEADER))


class TraceMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        trace_id = request.headers.get(TRACE_HEADER) or str(uuid4())
        operator_id = clean_operator_id(request.headers.get(OPERATOR_HEADER))

        operator_id_var.set(operator_id or "")
        request.state.trace_id = trace_id
        request.state.operator_id = operator_id

        response = await call_next(request)

        response.headers[TRACE_HEADER] = trace_id
        return response
