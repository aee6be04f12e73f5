"""
Base Data Access Object (DAO) class.

WHY: The DAO pattern separates database operations from business logic.
Each service talks to its own store only through DAOs, which also own the
change-notification hook fired after every write.
"""

import logging
from typing import Any, Callable, Generic, List, Optional, Sequence, Type, TypeVar
from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.models.base import Base

logger = logging.getLogger(__name__)

# Type variable for model class
ModelType = TypeVar("ModelType", bound=Base)

# Called as listener(change, entity) with change in {"inserted", "updated", "removed"}
ChangeListener = Callable[[str, Any], None]


class BaseDAO(Generic[ModelType]):
    """
    Base Data Access Object providing CRUD operations for all models.

    WHY: Centralizing database operations in DAOs separates data access
    concerns from business logic. Using generics allows type-safe reuse
    across different models.

    Type Parameters:
        ModelType: The SQLAlchemy model class this DAO manages
    """

    # Link tables whose owner_id points at this model; cleared on remove_by_id
    reference_models: Sequence[Type[Base]] = ()

    def __init__(
        self,
        model: Type[ModelType],
        session: AsyncSession,
        listeners: Optional[List[ChangeListener]] = None,
    ):
        """
        Initialize DAO with model class and database session.

        Args:
            model: The SQLAlchemy model class
            session: Async database session
            listeners: Change listeners shared with the owning service
        """
        self.model = model
        self.session = session
        self.listeners = listeners if listeners is not None else []

    def add_change_listener(self, listener: ChangeListener) -> None:
        self.listeners.append(listener)

    def _notify(self, change: str, entity: Any) -> None:
        for listener in list(self.listeners):
            try:
                listener(change, entity)
            except Exception:
                # A broken cache hook must not undo the write
                logger.exception(f"Change listener failed for {self.model.__name__} {change}")

    def _filtered(self, query, filters: dict):
        for field, value in filters.items():
            if not hasattr(self.model, field):
                raise AttributeError(f"{self.model.__name__} has no field '{field}'")
            query = query.where(getattr(self.model, field) == value)
        return query

    async def insert(self, **values: Any) -> ModelType:
        """
        Insert a new record.

        Args:
            **values: Field values for the new record

        Returns:
            The created model instance with generated fields populated

        Raises:
            IntegrityError: If unique constraints are violated
        """
        instance = self.model(**values)
        self.session.add(instance)
        await self.session.flush()  # Flush to get generated fields
        await self.session.refresh(instance)
        self._notify("inserted", instance)
        return instance

    async def get_by_id(self, id: str) -> Optional[ModelType]:
        """
        Retrieve a single record by primary key.

        Returns:
            The model instance if found, None otherwise
        """
        result = await self.session.execute(select(self.model).where(self.model.id == id))
        return result.scalar_one_or_none()

    async def find_one(self, **filters: Any) -> Optional[ModelType]:
        """Return the first record matching all equality filters, or None."""
        query = self._filtered(select(self.model), filters).limit(1)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def find(self, skip: int = 0, limit: Optional[int] = None, **filters: Any) -> List[ModelType]:
        """
        Retrieve multiple records with optional pagination and filtering.

        Args:
            skip: Number of records to skip
            limit: Maximum number of records to return (None for all)
            **filters: Field name to value filters (e.g., project="...")

        Returns:
            List of model instances matching the filters, oldest first
        """
        query = self._filtered(select(self.model), filters)
        if hasattr(self.model, "created_at"):
            query = query.order_by(self.model.created_at, self.model.id)
        query = query.offset(skip)
        if limit is not None:
            query = query.limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_many(self, ids: Sequence[str]) -> List[ModelType]:
        """
        Fetch the records for a list of IDs, keeping the list's order.

        WHY: Back-reference lists may hold IDs whose records are gone;
        those are skipped rather than reported.
        """
        if not ids:
            return []
        result = await self.session.execute(select(self.model).where(self.model.id.in_(ids)))
        by_id = {row.id: row for row in result.scalars().all()}
        return [by_id[i] for i in ids if i in by_id]

    async def update_by_id(self, id: str, **values: Any) -> Optional[ModelType]:
        """
        Apply a partial update to a record.

        Args:
            id: Primary key of the record to update
            **values: Fields to set

        Returns:
            Updated model instance if found, None otherwise
        """
        instance = await self.get_by_id(id)
        if instance is None:
            return None
        for field, value in values.items():
            setattr(instance, field, value)
        await self.session.flush()
        await self.session.refresh(instance)
        self._notify("updated", instance)
        return instance

    async def remove_by_id(self, id: str) -> Optional[ModelType]:
        """
        Delete a record and the link rows it owns.

        Returns:
            The deleted instance if found, None otherwise
        """
        instance = await self.get_by_id(id)
        if instance is None:
            return None
        for link_model in self.reference_models:
            await self.session.execute(delete(link_model).where(link_model.owner_id == id))
        await self.session.execute(delete(self.model).where(self.model.id == id))
        await self.session.flush()
        self._notify("removed", instance)
        return instance

    async def update_where(self, filters: dict, **values: Any) -> int:
        """
        Set fields on every record matching filters in one statement.

        WHY: Clearing a scalar back-reference must not read, modify and
        write whole rows, or concurrent handlers lose each other's updates.

        Returns:
            Number of rows changed
        """
        stmt = update(self.model)
        for field, value in filters.items():
            stmt = stmt.where(getattr(self.model, field) == value)
        result = await self.session.execute(stmt.values(**values))
        if result.rowcount:
            self._notify("updated", None)
        return result.rowcount

    async def count(self, **filters: Any) -> int:
        query = self._filtered(select(func.count()).select_from(self.model), filters)
        result = await self.session.execute(query)
        return result.scalar_one()

    async def exists(self, **filters: Any) -> bool:
        return await self.find_one(**filters) is not None
