"""
Request context middleware.

WHAT: Assigns every HTTP request an ID and makes it available for the rest
of the request's lifetime.

WHY: One gateway request can fan out into many action calls and event
deliveries. The request ID is copied into CallerContext so log lines from
every service involved can be correlated.

HOW: Stores the context in request.state and in a ContextVar for code that
has no request object. A client-supplied X-Request-ID is kept if present,
and one access line is logged per request.
"""

import logging
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Optional, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


@dataclass(frozen=True)
class RequestContext:
    """
    Request-scoped context data.

    Fields:
    - request_id: Unique identifier for the request (for log correlation)
    - ip_address: Client IP (X-Forwarded-For aware)
    - path: Request path
    - method: HTTP method
    """

    request_id: str
    ip_address: str
    path: str
    method: str


# Each async request gets its own isolated context
_request_context: ContextVar[Optional[RequestContext]] = ContextVar(
    "request_context", default=None
)


def get_request_context() -> Optional[RequestContext]:
    """Get the current request context, or None outside a request."""
    return _request_context.get()


def get_request_id() -> Optional[str]:
    context = _request_context.get()
    return context.request_id if context else None


def get_client_ip(request: Request) -> str:
    """
    Client address for access logs, preferring proxy headers.

    Note:
        Proxy headers are client-controlled unless a trusted proxy sets them,
        so the result is for logging only.
    """
    x_real_ip = request.headers.get("X-Real-IP")
    if x_real_ip:
        return x_real_ip.strip()

    x_forwarded_for = request.headers.get("X-Forwarded-For")
    if x_forwarded_for:
        # Format: "client, proxy1, proxy2"
        return x_forwarded_for.split(",")[0].strip()

    if request.client and request.client.host:
        return request.client.host

    return "unknown"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tags each gateway request with an ID and logs one access line for it."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        context = RequestContext(
            request_id=request_id,
            ip_address=get_client_ip(request),
            path=request.url.path,
            method=request.method,
        )
        request.state.context = context
        token = _request_context.set(context)
        started = time.perf_counter()

        try:
            response = await call_next(request)
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.info(
                f"{context.method} {context.path} -> {response.status_code} "
                f"in {elapsed_ms:.1f}ms from {context.ip_address} (request_id={request_id})"
            )
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            _request_context.reset(token)
