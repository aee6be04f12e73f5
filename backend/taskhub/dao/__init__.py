"""
Data Access Object (DAO) package.

WHY: DAOs keep each service's store access out of its business logic.
"""

from taskhub.dao.base import BaseDAO
from taskhub.dao.references import ReferenceSetDAO
from taskhub.dao.user import UserDAO
from taskhub.dao.organisation import OrganisationDAO
from taskhub.dao.project import ProjectDAO
from taskhub.dao.task import TaskDAO
from taskhub.dao.task_comment import TaskCommentDAO
from taskhub.dao.token import TokenDAO

__all__ = [
    "BaseDAO",
    "ReferenceSetDAO",
    "UserDAO",
    "OrganisationDAO",
    "ProjectDAO",
    "TaskDAO",
    "TaskCommentDAO",
    "TokenDAO",
]
