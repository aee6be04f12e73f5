"""
User Data Access Object.

WHY: UserDAO provides database operations for the User Service's store,
including the conditional updates used by its propagation handlers.
"""

from typing import List, Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.dao.base import BaseDAO, ChangeListener
from taskhub.dao.references import ReferenceSetDAO
from taskhub.models.user import User, UserProject, DEFAULT_ROLE


class UserDAO(BaseDAO[User]):
    """
    Data Access Object for User model.

    Project membership is exposed through self.projects.
    """

    reference_models = (UserProject,)

    def __init__(self, session: AsyncSession, listeners: Optional[List[ChangeListener]] = None):
        super().__init__(User, session, listeners)
        self.projects = ReferenceSetDAO(UserProject, session)

    async def get_by_email(self, email: str) -> Optional[User]:
        """
        Retrieve user by email address.

        WHY: Case-insensitive comparison prevents duplicate accounts with
        different casing (user@example.com vs USER@EXAMPLE.COM).
        """
        result = await self.session.execute(
            select(User).where(func.lower(User.email) == email.lower())
        )
        return result.scalar_one_or_none()

    async def email_exists(self, email: str, exclude_id: Optional[str] = None) -> bool:
        query = select(User.id).where(func.lower(User.email) == email.lower())
        if exclude_id is not None:
            query = query.where(User.id != exclude_id)
        result = await self.session.execute(query.limit(1))
        return result.scalar_one_or_none() is not None

    async def set_organisation(self, user_id: str, org_id: str) -> bool:
        return await self.update_where({"id": user_id}, organisation=org_id) > 0

    async def clear_organisation(self, user_id: str, org_id: str) -> bool:
        """
        Detach one user from an organisation, only if still attached to it.

        WHY: A late user.orgRemoved must not undo a newer user.orgAdded for
        another organisation.
        """
        changed = await self.update_where(
            {"id": user_id, "organisation": org_id}, organisation=None
        )
        return changed > 0

    async def detach_organisation(self, org_id: str) -> int:
        """Reset every member of a removed organisation to the default role."""
        return await self.update_where(
            {"organisation": org_id}, organisation=None, role=DEFAULT_ROLE
        )
