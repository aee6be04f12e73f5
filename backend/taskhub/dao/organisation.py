"""Organisation Data Access Object."""

from typing import List, Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.dao.base import BaseDAO, ChangeListener
from taskhub.dao.references import ReferenceSetDAO
from taskhub.models.organisation import Organisation, OrganisationMember, OrganisationProject


class OrganisationDAO(BaseDAO[Organisation]):
    """
    Data Access Object for Organisation model.

    Members and projects are back-reference sets on self.members and
    self.projects.
    """

    reference_models = (OrganisationMember, OrganisationProject)

    def __init__(self, session: AsyncSession, listeners: Optional[List[ChangeListener]] = None):
        super().__init__(Organisation, session, listeners)
        self.members = ReferenceSetDAO(OrganisationMember, session)
        self.projects = ReferenceSetDAO(OrganisationProject, session)

    async def name_exists(self, name: str, exclude_id: Optional[str] = None) -> bool:
        query = select(Organisation.id).where(func.lower(Organisation.name) == name.lower())
        if exclude_id is not None:
            query = query.where(Organisation.id != exclude_id)
        result = await self.session.execute(query.limit(1))
        return result.scalar_one_or_none() is not None
