"""
SQLAlchemy models, grouped by owning service.

Every service declares its tables on the shared metadata but creates only
the tables listed for it in SERVICE_TABLES.
"""

from taskhub.models.base import Base, generate_id
from taskhub.models.user import User, UserProject, UserRole, DEFAULT_ROLE
from taskhub.models.organisation import Organisation, OrganisationMember, OrganisationProject
from taskhub.models.project import Project, ProjectMember, ProjectTask
from taskhub.models.task import Task, TaskStatus, TaskPriority, TaskCommentRef, TaskAttachmentRef
from taskhub.models.task_comment import TaskComment
from taskhub.models.token import Token, TokenType

SERVICE_TABLES = {
    "users": [User.__table__, UserProject.__table__],
    "organisations": [
        Organisation.__table__,
        OrganisationMember.__table__,
        OrganisationProject.__table__,
    ],
    "projects": [Project.__table__, ProjectMember.__table__, ProjectTask.__table__],
    "tasks": [Task.__table__, TaskCommentRef.__table__, TaskAttachmentRef.__table__],
    "task_comments": [TaskComment.__table__],
    "tokens": [Token.__table__],
}

__all__ = [
    "Base",
    "generate_id",
    "User",
    "UserProject",
    "UserRole",
    "DEFAULT_ROLE",
    "Organisation",
    "OrganisationMember",
    "OrganisationProject",
    "Project",
    "ProjectMember",
    "ProjectTask",
    "Task",
    "TaskStatus",
    "TaskPriority",
    "TaskCommentRef",
    "TaskAttachmentRef",
    "TaskComment",
    "Token",
    "TokenType",
    "SERVICE_TABLES",
]
