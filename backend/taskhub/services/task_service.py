"""
Task Service.

WHAT: Owns tasks, their assignee and their comment / attachment rosters.

WHY: A task lives inside a project that must exist when the task is
created. When the project goes, its tasks go too, and each removal is
announced so comments and attachment files follow.
"""

import logging
from typing import Any, Dict, List

from taskhub.bus.actions import ActionDef, CallerContext
from taskhub.bus.events import (
    ProjectRemoved,
    TaskAttachmentRemoved,
    TaskAttachmentUploaded,
    TaskCommentCreated,
    TaskCommentRemoved,
    TaskCreated,
    TaskRemoved,
    UserRemoved,
)
from taskhub.core.exceptions import NotFoundError
from taskhub.core.roles import MANAGERS
from taskhub.dao.task import TaskDAO
from taskhub.models.task import Task, TaskStatus
from taskhub.schemas.common import IdParams
from taskhub.schemas.task import (
    TaskAssignParams,
    TaskCreate,
    TaskListParams,
    TaskResponse,
    TaskUpdateParams,
)
from taskhub.services.base import BaseService, dump, still_exists

logger = logging.getLogger(__name__)


class TaskService(BaseService):
    """Task Service: actions under "task.*"."""

    prefix = "task"
    store_name = "tasks"

    def actions(self) -> Dict[str, ActionDef]:
        return {
            "create": ActionDef(self.create, TaskCreate),
            "update": ActionDef(self.update, TaskUpdateParams),
            "get": ActionDef(self.get, IdParams, idempotent=True),
            "list": ActionDef(self.list, TaskListParams, idempotent=True),
            "remove": ActionDef(self.remove, IdParams),
            "assign": ActionDef(self.assign, TaskAssignParams),
            "unassign": ActionDef(self.unassign, TaskAssignParams),
            "isCreated": ActionDef(
                self.is_created, IdParams, auth_required=False, idempotent=True, internal=True
            ),
        }

    def subscriptions(self):
        return [
            (ProjectRemoved, self.on_project_removed),
            (UserRemoved, self.on_user_removed),
            (TaskCommentCreated, self.on_comment_created),
            (TaskCommentRemoved, self.on_comment_removed),
            (TaskAttachmentUploaded, self.on_attachment_uploaded),
            (TaskAttachmentRemoved, self.on_attachment_removed),
        ]

    def _dao(self, session) -> TaskDAO:
        return TaskDAO(session, self.change_listeners)

    async def _load(self, task_id: str) -> tuple:
        async with self.store.session() as session:
            dao = self._dao(session)
            task = await dao.get_by_id(task_id)
            if task is None:
                raise NotFoundError(message="Task not found", id=task_id)
            return task, await dao.comments.refs(task_id), await dao.attachments.refs(task_id)

    async def _to_response(
        self, task: Task, comments: List[str], attachments: List[str], ctx: CallerContext
    ) -> Dict[str, Any]:
        assignee = None
        if task.assignee:
            assignee = await self.users.get_basic_data(task.assignee, ctx) or task.assignee
        return dump(TaskResponse, task, assignee=assignee, comments=comments, attachments=attachments)

    async def _respond(self, task_id: str, ctx: CallerContext) -> Dict[str, Any]:
        task, comments, attachments = await self._load(task_id)
        return await self._to_response(task, comments, attachments, ctx)

    # ========================================================================
    # Actions
    # ========================================================================

    async def create(self, params: TaskCreate, ctx: CallerContext) -> Dict[str, Any]:
        """
        Create a task in the backlog of an existing project.

        Raises:
            NotFoundError: Project or assignee does not exist
            ForbiddenError: Caller is not an admin or project manager

        Emits:
            task.created{project, task, user}
        """
        await self.projects.require_exists(params.project, ctx)
        if params.assignee:
            await self.users.require_exists(params.assignee, ctx)
        await self.users.require_role(MANAGERS, ctx)

        async with self.store.session() as session:
            task = await self._dao(session).insert(
                name=params.name,
                description=params.description,
                project=params.project,
                assignee=params.assignee or None,
                due_date=params.due_date,
                priority=params.priority,
                status=TaskStatus.BACKLOG,
            )

        self.emit(TaskCreated(project=task.project, task=task.id, user=task.assignee))
        logger.info(f"Task created: {task.id} in project {task.project}")
        return await self._to_response(task, [], [], ctx)

    async def update(self, params: TaskUpdateParams, ctx: CallerContext) -> Dict[str, Any]:
        changes = params.model_dump(exclude_unset=True, exclude={"id"})
        changes = {k: v for k, v in changes.items() if v is not None}
        async with self.store.session() as session:
            task = await self._dao(session).update_by_id(params.id, **changes)
        if task is None:
            raise NotFoundError(message="Task not found", id=params.id)
        return await self._respond(params.id, ctx)

    async def get(self, params: IdParams, ctx: CallerContext) -> Dict[str, Any]:
        return await self._respond(params.id, ctx)

    async def list(self, params: TaskListParams, ctx: CallerContext) -> List[Dict[str, Any]]:
        async with self.store.session() as session:
            dao = self._dao(session)
            rows = [
                (task, await dao.comments.refs(task.id), await dao.attachments.refs(task.id))
                for task in await dao.get_by_project(params.project)
            ]
        return [await self._to_response(task, c, a, ctx) for task, c, a in rows]

    async def remove(self, params: IdParams, ctx: CallerContext) -> Dict[str, Any]:
        """
        Emits:
            task.removed{task, project}
        """
        await self._load(params.id)
        await self.users.require_role(MANAGERS, ctx)

        async with self.store.session() as session:
            task = await self._dao(session).remove_by_id(params.id)
        if task is None:
            raise NotFoundError(message="Task not found", id=params.id)

        self.emit(TaskRemoved(task=task.id, project=task.project))
        logger.info(f"Task removed: {task.id}")
        return {"message": "Task deleted"}

    async def assign(self, params: TaskAssignParams, ctx: CallerContext) -> Dict[str, Any]:
        await self._load(params.id)
        await self.users.require_exists(params.user, ctx)
        await self.users.require_role(MANAGERS, ctx)

        async with self.store.session() as session:
            task = await self._dao(session).update_by_id(params.id, assignee=params.user)
        if task is None:
            raise NotFoundError(message="Task not found", id=params.id)
        return await self._respond(params.id, ctx)

    async def unassign(self, params: TaskAssignParams, ctx: CallerContext) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: Task missing, or not assigned to that user
            ForbiddenError: Caller is not a manager or admin
        """
        await self._load(params.id)
        await self.users.require_role(MANAGERS, ctx)

        async with self.store.session() as session:
            changed = await self._dao(session).update_where(
                {"id": params.id, "assignee": params.user}, assignee=None
            )
        if not changed:
            raise NotFoundError(message="Task with provided user not found", id=params.id)
        return await self._respond(params.id, ctx)

    async def is_created(self, params: IdParams, ctx: CallerContext) -> bool:
        async with self.store.session() as session:
            return await self._dao(session).exists(id=params.id)

    # ========================================================================
    # Event handlers
    # ========================================================================

    async def on_project_removed(self, event: ProjectRemoved) -> None:
        """Cascade: delete the project's tasks, announcing each one."""
        async with self.store.session() as session:
            dao = self._dao(session)
            removed = []
            for task in await dao.get_by_project(event.project):
                if await dao.remove_by_id(task.id) is not None:
                    removed.append(task.id)

        for task_id in removed:
            self.emit(TaskRemoved(task=task_id, project=event.project))
        logger.info(f"project.removed: removed {len(removed)} task(s) of {event.project}")

    async def on_user_removed(self, event: UserRemoved) -> None:
        async with self.store.session() as session:
            count = await self._dao(session).clear_assignee(event.user)
        logger.debug(f"user.removed: unassigned {event.user} from {count} task(s)")

    async def on_comment_created(self, event: TaskCommentCreated) -> None:
        if not await still_exists(self.comments, event.comment):
            return
        async with self.store.session() as session:
            dao = self._dao(session)
            if not await dao.exists(id=event.task):
                logger.debug(f"task.comment.created: task {event.task} not found")
                return
            await dao.comments.add(event.task, event.comment)

    async def on_comment_removed(self, event: TaskCommentRemoved) -> None:
        async with self.store.session() as session:
            await self._dao(session).comments.remove(event.task, event.comment)

    async def on_attachment_uploaded(self, event: TaskAttachmentUploaded) -> None:
        async with self.store.session() as session:
            dao = self._dao(session)
            if not await dao.exists(id=event.task):
                logger.debug(f"task.attachment.uploaded: task {event.task} not found")
                return
            await dao.attachments.add(event.task, event.file)

    async def on_attachment_removed(self, event: TaskAttachmentRemoved) -> None:
        async with self.store.session() as session:
            await self._dao(session).attachments.remove(event.task, event.file)
