"""
REST gateway onto the action bus.

WHAT: Exposes public actions as POST /api/{action} and attachments as
upload / download routes.

WHY: The gateway owns no business logic. It resolves the bearer token into
a CallerContext (through user.resolveToken), forwards the JSON body as
params and turns ActionErrors into the standard error response.

Internal actions (isCreated, isAuthorized, tokens.*, mail.send, ...) are
service-to-service only and answer 404 here.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, File, Request, UploadFile
from fastapi.responses import FileResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from taskhub.bus.actions import ActionResult, CallerContext
from taskhub.bus.broker import ServiceBroker
from taskhub.core.exceptions import ErrorKind, NotFoundError, exception_for
from taskhub.middleware.request_context import get_request_id
from taskhub.models.user import UserRole

logger = logging.getLogger(__name__)

router = APIRouter()

# Optional: anonymous callers may still use public actions (login, create)
bearer = HTTPBearer(auto_error=False)


def get_broker(request: Request) -> ServiceBroker:
    return request.app.state.broker


async def get_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    broker: ServiceBroker = Depends(get_broker),
) -> CallerContext:
    """
    Resolve the bearer token into the caller's identity.

    Raises:
        UnauthorizedError: If a token was sent but is invalid or expired
    """
    request_id = get_request_id()
    if credentials is None:
        return CallerContext(request_id=request_id)

    resolved = (
        await broker.call("user.resolveToken", {"token": credentials.credentials})
    ).unwrap()
    return CallerContext(
        user_id=resolved["id"],
        role=UserRole(resolved["role"]),
        request_id=request_id,
    )


def _unwrap(name: str, result: ActionResult) -> Any:
    if result.ok:
        return result.value
    if result.error.kind == ErrorKind.INTERNAL:
        logger.error(f"{name} failed internally: {result.error.message}")
    raise exception_for(result.error.kind, result.error.message, **result.error.details)


async def call_public(
    broker: ServiceBroker, name: str, params: Dict[str, Any], caller: CallerContext
) -> Any:
    action = broker.actions.get(name)
    if action is None or action.internal:
        raise NotFoundError(message=f"Unknown action '{name}'", action=name)
    logger.info(f"{name} called by {caller.user_id or 'anonymous'} (request_id={caller.request_id})")
    return _unwrap(name, await broker.call(name, params, caller))


@router.post("/upload/{task}", tags=["attachments"])
async def upload_attachment(
    task: str,
    file: UploadFile = File(..., description="File to attach"),
    broker: ServiceBroker = Depends(get_broker),
    caller: CallerContext = Depends(get_caller),
) -> Any:
    """Attach a file to a task (multipart upload)."""
    content = await file.read()
    params = {"task": task, "filename": file.filename or "upload", "content": content}
    return await call_public(broker, "task.attachment.save", params, caller)


@router.get("/upload/{task}/{file}", tags=["attachments"])
async def download_attachment(
    task: str,
    file: str,
    broker: ServiceBroker = Depends(get_broker),
    caller: CallerContext = Depends(get_caller),
) -> FileResponse:
    info = await call_public(broker, "task.attachment.get", {"task": task, "file": file}, caller)
    return FileResponse(info["path"], media_type=info["media_type"], filename=info["file"])


@router.post("/{action}", tags=["actions"])
async def call_action(
    action: str,
    params: Optional[Dict[str, Any]] = Body(default=None),
    broker: ServiceBroker = Depends(get_broker),
    caller: CallerContext = Depends(get_caller),
) -> Any:
    """
    Call a public action.

    The path segment is the full action name, e.g. POST /api/project.create
    with the params as the JSON body.
    """
    return await call_public(broker, action, params or {}, caller)
