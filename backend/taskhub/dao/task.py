"""
Task Data Access Object.

WHY: Besides CRUD, the Task Service needs to clear a removed user from
every task assigned to them without touching anything else on the row.
"""

from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.dao.base import BaseDAO, ChangeListener
from taskhub.dao.references import ReferenceSetDAO
from taskhub.models.task import Task, TaskCommentRef, TaskAttachmentRef


class TaskDAO(BaseDAO[Task]):
    """Data Access Object for Task model."""

    reference_models = (TaskCommentRef, TaskAttachmentRef)

    def __init__(self, session: AsyncSession, listeners: Optional[List[ChangeListener]] = None):
        super().__init__(Task, session, listeners)
        self.comments = ReferenceSetDAO(TaskCommentRef, session)
        self.attachments = ReferenceSetDAO(TaskAttachmentRef, session)

    async def get_by_project(self, project_id: str) -> List[Task]:
        return await self.find(project=project_id)

    async def clear_assignee(self, user_id: str) -> int:
        """Unassign user_id from all tasks. Returns the number of tasks changed."""
        return await self.update_where({"assignee": user_id}, assignee=None)
