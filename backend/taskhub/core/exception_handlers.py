"""
FastAPI exception handlers for custom exceptions.

WHY: The gateway is the only place action failures turn into HTTP
responses, so every error kind leaves the system with the same JSON shape:

    {"error", "kind", "message", "status_code", "details"}
"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from taskhub.core.exceptions import AppException, ErrorKind


logger = logging.getLogger(__name__)


def error_response(
    error: str,
    kind: ErrorKind,
    message: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "kind": kind.value,
            "message": message,
            "status_code": status_code,
            "details": details,
        },
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """AppException and subclasses, including errors rebuilt from ActionResults."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Body parsing failures (e.g. a JSON array where params must be an object).

    Reported like action parameter errors: kind "validation", status 400,
    one entry per field.
    """
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    return error_response(
        "ValidationError", ErrorKind.VALIDATION, "Request validation failed", 400, {"errors": errors}
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Routing-level errors raised before any action runs (unknown path, wrong method)."""
    kind = ErrorKind.NOT_FOUND if exc.status_code == 404 else ErrorKind.VALIDATION
    return error_response("HTTPException", kind, str(exc.detail), exc.status_code)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Catch-all for exceptions that escaped the action bus.

    The traceback is logged; the client only gets a generic message.
    """
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return error_response(
        "InternalServerError", ErrorKind.INTERNAL, "An unexpected error occurred", 500
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
