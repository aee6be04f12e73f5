"""Project Data Access Object."""

from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.dao.base import BaseDAO, ChangeListener
from taskhub.dao.references import ReferenceSetDAO
from taskhub.models.project import Project, ProjectMember, ProjectTask


class ProjectDAO(BaseDAO[Project]):
    """Data Access Object for Project model."""

    reference_models = (ProjectMember, ProjectTask)

    def __init__(self, session: AsyncSession, listeners: Optional[List[ChangeListener]] = None):
        super().__init__(Project, session, listeners)
        self.members = ReferenceSetDAO(ProjectMember, session)
        self.tasks = ReferenceSetDAO(ProjectTask, session)

    async def get_by_organisation(self, org_id: str) -> List[Project]:
        return await self.find(organisation=org_id)
