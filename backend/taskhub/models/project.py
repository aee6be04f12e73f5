"""
Project model.

WHAT: A project belongs to one organisation and tracks its members and tasks.

WHY: organisation is checked against the Organisation Service when the
project is created and is immutable afterwards. members and tasks are
back-references updated from user.removed / task.created / task.removed
events and from the project's own membership actions.
"""

from sqlalchemy import Column, String, Numeric, ForeignKey

from taskhub.models.base import Base, TimestampMixin, PrimaryKeyMixin, ReferenceMixin


class Project(Base, PrimaryKeyMixin, TimestampMixin):
    """Project owned by the Project Service."""

    __tablename__ = "projects"

    name = Column(String(255), nullable=False)
    organisation = Column(String(32), nullable=False, index=True)
    budget = Column(Numeric(12, 2), nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, name={self.name}, organisation={self.organisation})>"


class ProjectMember(Base, ReferenceMixin):
    """Members of a project (refs into the User Service)."""

    __tablename__ = "project_members"

    owner_id = Column(String(32), ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True)


class ProjectTask(Base, ReferenceMixin):
    """Tasks of a project (refs into the Task Service)."""

    __tablename__ = "project_tasks"

    owner_id = Column(String(32), ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True)
