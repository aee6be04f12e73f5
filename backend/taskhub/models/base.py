"""
Base model class for all SQLAlchemy models.

WHY: Centralizing common model functionality (timestamps, ID) in a base class
ensures consistency across all models and reduces code duplication.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import DeclarativeBase


def generate_id() -> str:
    """Opaque 32-character identifier assigned on insert."""
    return uuid.uuid4().hex


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    All services declare their tables on this metadata, but each service
    creates only its own tables in its own database.
    """

    pass


class TimestampMixin:
    """
    Mixin to add created_at and updated_at timestamps to models.
    """

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class PrimaryKeyMixin:
    """
    Mixin to add an opaque string primary key to models.

    WHY: IDs travel between services inside events and action params,
    so they must not depend on any one database's sequence.
    """

    id = Column(String(32), primary_key=True, default=generate_id)


class ReferenceMixin:
    """
    Columns shared by every back-reference link table.

    A row (owner_id, ref_id) means "owner holds a weak reference to ref".
    The composite primary key makes the pair a set member, so adding an
    existing pair is a no-op and removing an absent pair deletes nothing.
    ref_id is never a foreign key: it points into another service's store.
    """

    ref_id = Column(String(255), primary_key=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
