"""
Task Comment Service.

WHAT: Owns comments on tasks.

WHY: Comments outlive their authors (the author reference is dropped and
the old display name kept) but not their task.
"""

import logging
from typing import Any, Dict, List

from taskhub.bus.actions import ActionDef, CallerContext
from taskhub.bus.events import TaskCommentCreated, TaskCommentRemoved, TaskRemoved, UserRemoved
from taskhub.core.exceptions import NotFoundError
from taskhub.core.roles import ANY_ROLE, MANAGERS
from taskhub.dao.task_comment import TaskCommentDAO
from taskhub.models.task_comment import TaskComment
from taskhub.schemas.common import IdParams
from taskhub.schemas.task_comment import (
    CommentCreate,
    CommentListParams,
    CommentResponse,
    CommentUpdateParams,
)
from taskhub.services.base import BaseService, dump, require_caller

logger = logging.getLogger(__name__)


class TaskCommentService(BaseService):
    """Task Comment Service: actions under "task.comment.*"."""

    prefix = "task.comment"
    store_name = "task_comments"

    def actions(self) -> Dict[str, ActionDef]:
        return {
            "create": ActionDef(self.create, CommentCreate),
            "update": ActionDef(self.update, CommentUpdateParams),
            "get": ActionDef(self.get, IdParams, idempotent=True),
            "list": ActionDef(self.list, CommentListParams, idempotent=True),
            "remove": ActionDef(self.remove, IdParams),
            "isCreated": ActionDef(
                self.is_created, IdParams, auth_required=False, idempotent=True, internal=True
            ),
        }

    def subscriptions(self):
        return [
            (TaskRemoved, self.on_task_removed),
            (UserRemoved, self.on_user_removed),
        ]

    def _dao(self, session) -> TaskCommentDAO:
        return TaskCommentDAO(session, self.change_listeners)

    async def _to_response(self, comment: TaskComment, ctx: CallerContext) -> Dict[str, Any]:
        author = None
        if comment.author:
            author = await self.users.get_basic_data(comment.author, ctx) or comment.author
        return dump(CommentResponse, comment, author=author)

    async def _require_comment(self, comment_id: str) -> TaskComment:
        async with self.store.session() as session:
            comment = await self._dao(session).get_by_id(comment_id)
        if comment is None:
            raise NotFoundError(message="Task comment not found", id=comment_id)
        return comment

    async def create(self, params: CommentCreate, ctx: CallerContext) -> Dict[str, Any]:
        """
        Comment on an existing task.

        Raises:
            NotFoundError: Task or explicit author does not exist
            ForbiddenError: Caller has no valid role (e.g. was just removed)

        Emits:
            task.comment.created{comment, task}
        """
        author = params.author or require_caller(ctx)
        await self.users.require_role(ANY_ROLE, ctx)
        if params.author:
            await self.users.require_exists(params.author, ctx)
        await self.tasks.require_exists(params.task, ctx)

        basic = await self.users.get_basic_data(author, ctx)
        async with self.store.session() as session:
            comment = await self._dao(session).insert(
                task=params.task,
                author=author,
                author_name=basic["name"] if basic else "",
                text=params.text,
            )

        self.emit(TaskCommentCreated(comment=comment.id, task=comment.task))
        return await self._to_response(comment, ctx)

    async def update(self, params: CommentUpdateParams, ctx: CallerContext) -> Dict[str, Any]:
        await self._require_comment(params.id)
        await self.users.require_role(MANAGERS, ctx)

        async with self.store.session() as session:
            comment = await self._dao(session).update_by_id(params.id, text=params.text)
        if comment is None:
            raise NotFoundError(message="Task comment not found", id=params.id)
        return await self._to_response(comment, ctx)

    async def get(self, params: IdParams, ctx: CallerContext) -> Dict[str, Any]:
        await self.users.require_role(ANY_ROLE, ctx)
        return await self._to_response(await self._require_comment(params.id), ctx)

    async def list(self, params: CommentListParams, ctx: CallerContext) -> List[Dict[str, Any]]:
        async with self.store.session() as session:
            comments = await self._dao(session).get_by_task(params.task)
        return [await self._to_response(comment, ctx) for comment in comments]

    async def remove(self, params: IdParams, ctx: CallerContext) -> Dict[str, Any]:
        """
        Emits:
            task.comment.removed{comment, task}
        """
        await self.users.require_role(ANY_ROLE, ctx)
        async with self.store.session() as session:
            comment = await self._dao(session).remove_by_id(params.id)
        if comment is None:
            raise NotFoundError(message="Task comment not found", id=params.id)

        self.emit(TaskCommentRemoved(comment=comment.id, task=comment.task))
        return {"message": "Task comment deleted"}

    async def is_created(self, params: IdParams, ctx: CallerContext) -> bool:
        async with self.store.session() as session:
            return await self._dao(session).exists(id=params.id)

    # ========================================================================
    # Event handlers
    # ========================================================================

    async def on_task_removed(self, event: TaskRemoved) -> None:
        async with self.store.session() as session:
            dao = self._dao(session)
            removed = []
            for comment in await dao.get_by_task(event.task):
                if await dao.remove_by_id(comment.id) is not None:
                    removed.append(comment.id)

        for comment_id in removed:
            self.emit(TaskCommentRemoved(comment=comment_id, task=event.task))

    async def on_user_removed(self, event: UserRemoved) -> None:
        async with self.store.session() as session:
            count = await self._dao(session).detach_author(event.user, event.old_nick)
        logger.debug(f"user.removed: detached {event.user} from {count} comment(s)")
