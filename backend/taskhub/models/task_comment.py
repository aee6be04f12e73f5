"""Task comment model."""

from sqlalchemy import Column, String

from taskhub.models.base import Base, TimestampMixin, PrimaryKeyMixin


class TaskComment(Base, PrimaryKeyMixin, TimestampMixin):
    """
    Comment owned by the Task Comment Service.

    author becomes NULL when the author is removed; author_name keeps the
    name that was shown at that time.
    """

    __tablename__ = "task_comments"

    task = Column(String(32), nullable=False, index=True)
    author = Column(String(32), nullable=True, index=True)
    author_name = Column(String(255), nullable=False, default="")
    text = Column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<TaskComment(id={self.id}, task={self.task}, author={self.author})>"
