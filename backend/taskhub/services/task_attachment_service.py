"""
Task Attachment Service.

WHAT: Stores task attachments on disk under UPLOAD_DIR/<task>/<name>.

WHY: Files are named with a random hex stem (keeping a sensible
extension) so client names never reach the filesystem. The Task Service
learns about files from task.attachment.uploaded / removed.

HOW: Blocking file I/O runs in a worker thread via asyncio.to_thread.
"""

import asyncio
import logging
import mimetypes
import secrets
import shutil
from pathlib import Path
from typing import Any, Dict, Optional

from taskhub.bus.actions import ActionDef, CallerContext
from taskhub.bus.events import TaskAttachmentRemoved, TaskAttachmentUploaded, TaskRemoved
from taskhub.core.config import settings
from taskhub.core.exceptions import NotFoundError
from taskhub.schemas.task_attachment import AttachmentParams, AttachmentResponse, AttachmentSaveParams
from taskhub.services.base import BaseService

logger = logging.getLogger(__name__)

DEFAULT_MEDIA_TYPE = "application/octet-stream"


def random_name(filename: str) -> str:
    """
    Random stored name with an extension derived from the client name.

    Falls back to the client's own suffix, then to "bin".
    """
    media_type, _ = mimetypes.guess_type(filename)
    extension = mimetypes.guess_extension(media_type) if media_type else None
    if not extension:
        suffix = Path(filename).suffix
        extension = suffix if suffix[1:].isalnum() else ".bin"
    return f"{secrets.token_hex(20)}{extension}"


def _write(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)


def _unlink(path: Path) -> None:
    path.unlink()
    if not any(path.parent.iterdir()):
        path.parent.rmdir()


class TaskAttachmentService(BaseService):
    """Task Attachment Service: actions under "task.attachment.*"."""

    prefix = "task.attachment"

    def __init__(self, broker, upload_dir: Optional[str] = None):
        super().__init__(broker)
        self.upload_dir = Path(upload_dir or settings.UPLOAD_DIR)

    def actions(self) -> Dict[str, ActionDef]:
        return {
            "save": ActionDef(self.save, AttachmentSaveParams),
            "get": ActionDef(self.get, AttachmentParams, idempotent=True),
            "remove": ActionDef(self.remove, AttachmentParams),
        }

    def subscriptions(self):
        return [(TaskRemoved, self.on_task_removed)]

    async def started(self) -> None:
        await asyncio.to_thread(self.upload_dir.mkdir, parents=True, exist_ok=True)

    def _path(self, task: str, file: str) -> Path:
        return self.upload_dir / task / file

    def _describe(self, task: str, file: str, path: Path) -> Dict[str, Any]:
        media_type, _ = mimetypes.guess_type(file)
        return AttachmentResponse(
            task=task,
            file=file,
            path=str(path),
            media_type=media_type or DEFAULT_MEDIA_TYPE,
            size=path.stat().st_size,
        ).model_dump()

    async def save(self, params: AttachmentSaveParams, ctx: CallerContext) -> Dict[str, Any]:
        """
        Store an upload for an existing task.

        Raises:
            NotFoundError: If the task does not exist

        Emits:
            task.attachment.uploaded{task, file}
        """
        await self.tasks.require_exists(params.task, ctx)

        file = random_name(params.filename)
        path = self._path(params.task, file)
        await asyncio.to_thread(_write, path, params.content)

        self.emit(TaskAttachmentUploaded(task=params.task, file=file))
        logger.info(f"Attachment {file} saved for task {params.task} ({len(params.content)} bytes)")
        return await asyncio.to_thread(self._describe, params.task, file, path)

    async def get(self, params: AttachmentParams, ctx: CallerContext) -> Dict[str, Any]:
        path = self._path(params.task, params.file)
        if not await asyncio.to_thread(path.is_file):
            raise NotFoundError(message="Attachment not found", task=params.task, file=params.file)
        return await asyncio.to_thread(self._describe, params.task, params.file, path)

    async def remove(self, params: AttachmentParams, ctx: CallerContext) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: Unknown task, or no such file on it

        Emits:
            task.attachment.removed{task, file}
        """
        await self.tasks.require_exists(params.task, ctx)
        path = self._path(params.task, params.file)
        try:
            await asyncio.to_thread(_unlink, path)
        except FileNotFoundError:
            raise NotFoundError(message="Attachment not found", task=params.task, file=params.file)

        self.emit(TaskAttachmentRemoved(task=params.task, file=params.file))
        return {"message": "Attachment removed"}

    async def on_task_removed(self, event: TaskRemoved) -> None:
        """Delete the removed task's directory with everything in it."""
        task_dir = self.upload_dir / event.task
        await asyncio.to_thread(shutil.rmtree, task_dir, True)
        logger.debug(f"task.removed: cleared attachments of {event.task}")
