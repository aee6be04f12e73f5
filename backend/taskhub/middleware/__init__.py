"""
Middleware package.

WHY: Middleware provides cross-cutting concerns (request correlation) that
apply to all gateway requests.
"""

from taskhub.middleware.request_context import (
    RequestContextMiddleware,
    RequestContext,
    get_client_ip,
    get_request_context,
    get_request_id,
)

__all__ = [
    "RequestContextMiddleware",
    "RequestContext",
    "get_client_ip",
    "get_request_context",
    "get_request_id",
]
