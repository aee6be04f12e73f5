"""
Organisation model.

WHY: Organisations group users and projects. Both lists are back-references
kept in the Organisation Service's own link tables.
"""

from sqlalchemy import Column, String, ForeignKey

from taskhub.models.base import Base, TimestampMixin, PrimaryKeyMixin, ReferenceMixin


class Organisation(Base, PrimaryKeyMixin, TimestampMixin):
    """Organisation owned by the Organisation Service."""

    __tablename__ = "organisations"

    name = Column(String(255), unique=True, nullable=False, index=True)
    address = Column(String(255), nullable=False)
    city = Column(String(100), nullable=False)
    country = Column(String(100), nullable=False)

    def __repr__(self) -> str:
        return f"<Organisation(id={self.id}, name={self.name})>"


class OrganisationMember(Base, ReferenceMixin):
    """Members of an organisation (refs into the User Service)."""

    __tablename__ = "organisation_members"

    owner_id = Column(
        String(32), ForeignKey("organisations.id", ondelete="CASCADE"), primary_key=True
    )


class OrganisationProject(Base, ReferenceMixin):
    """Projects of an organisation (refs into the Project Service)."""

    __tablename__ = "organisation_projects"

    owner_id = Column(
        String(32), ForeignKey("organisations.id", ondelete="CASCADE"), primary_key=True
    )
