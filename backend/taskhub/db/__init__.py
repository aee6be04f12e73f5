"""Database package"""

from taskhub.db.session import ServiceStore, create_store
from taskhub.models.base import Base

__all__ = ["Base", "ServiceStore", "create_store"]
