"""
Task model.

WHAT: A unit of work inside a project, optionally assigned to one user.

WHY: project is checked against the Project Service at creation. assignee
is a scalar back-reference cleared by user.removed. Comments and attachments
are set-valued back-references fed by the comment and attachment services.
"""

from enum import Enum
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Enum as SQLEnum

from taskhub.models.base import Base, TimestampMixin, PrimaryKeyMixin, ReferenceMixin


class TaskStatus(str, Enum):
    """
    Task lifecycle status.

    New tasks always start in BACKLOG.
    """

    BACKLOG = "backlog"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    DONE = "done"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Task(Base, PrimaryKeyMixin, TimestampMixin):
    """Task owned by the Task Service."""

    __tablename__ = "tasks"

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    status = Column(SQLEnum(TaskStatus), nullable=False, default=TaskStatus.BACKLOG)
    priority = Column(SQLEnum(TaskPriority), nullable=False, default=TaskPriority.MEDIUM)
    due_date = Column(DateTime, nullable=True)

    # Back-references into other services
    project = Column(String(32), nullable=False, index=True)
    assignee = Column(String(32), nullable=True, index=True)

    def __repr__(self) -> str:
        return f"<Task(id={self.id}, name={self.name}, project={self.project})>"


class TaskCommentRef(Base, ReferenceMixin):
    """Comments on a task (refs into the Task Comment Service)."""

    __tablename__ = "task_comment_refs"

    owner_id = Column(String(32), ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True)


class TaskAttachmentRef(Base, ReferenceMixin):
    """Attachment file names of a task (refs into the Task Attachment Service)."""

    __tablename__ = "task_attachment_refs"

    owner_id = Column(String(32), ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True)
