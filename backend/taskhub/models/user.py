"""
User model.

WHY: Users are owned by the User Service. Other services only ever hold
their IDs, and ask the User Service for everything else (role, name).
"""

import enum
from sqlalchemy import Column, String, Enum, ForeignKey, JSON

from taskhub.models.base import Base, TimestampMixin, PrimaryKeyMixin, ReferenceMixin


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    WHY: A closed enum turns role checks into set membership and rejects
    unknown role names at the validation step.
    """

    ADMIN = "admin"
    PROJECT_MANAGER = "project_manager"
    EMPLOYEE = "employee"


DEFAULT_ROLE = UserRole.EMPLOYEE


class User(Base, PrimaryKeyMixin, TimestampMixin):
    """
    User model representing individuals who use the platform.

    organisation is a weak back-reference maintained by user.orgAdded /
    user.orgRemoved / organisation.removed events. Project membership lives in
    the user_projects link table.
    """

    __tablename__ = "users"

    # User identification
    email = Column(String(255), unique=True, index=True, nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)

    # Authentication
    hashed_password = Column(String(255), nullable=False)

    # Authorization
    role = Column(Enum(UserRole, name="userrole"), nullable=False, default=DEFAULT_ROLE)

    # Back-reference to the Organisation Service
    organisation = Column(String(32), nullable=True, index=True)

    settings = Column(JSON, nullable=False, default=dict)

    @property
    def name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"


class UserProject(Base, ReferenceMixin):
    """Projects a user is a member of (refs into the Project Service)."""

    __tablename__ = "user_projects"

    owner_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
