"""Task comment Data Access Object."""

from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.dao.base import BaseDAO, ChangeListener
from taskhub.models.task_comment import TaskComment


class TaskCommentDAO(BaseDAO[TaskComment]):
    """Data Access Object for TaskComment model."""

    def __init__(self, session: AsyncSession, listeners: Optional[List[ChangeListener]] = None):
        super().__init__(TaskComment, session, listeners)

    async def get_by_task(self, task_id: str) -> List[TaskComment]:
        return await self.find(task=task_id)

    async def detach_author(self, user_id: str, display_name: str) -> int:
        """
        Drop the author reference from a removed user's comments.

        The comments stay, showing display_name as their author.
        """
        return await self.update_where(
            {"author": user_id}, author=None, author_name=display_name
        )
