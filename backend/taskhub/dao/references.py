"""
Back-reference set DAO.

WHAT: Set-add / set-remove over a link table of (owner_id, ref_id) pairs.

WHY: Event handlers for the same owner can run concurrently. Reading a list,
changing it and writing it back would lose updates, so every change is a
single statement:
- add: INSERT ... ON CONFLICT DO NOTHING (duplicate delivery is a no-op)
- remove: DELETE ... WHERE (removing an absent ref is a no-op)
"""

from typing import List, Type

from sqlalchemy import select, delete
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.models.base import Base


_INSERT_BY_DIALECT = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class ReferenceSetDAO:
    """
    Data Access Object for one link table.

    Type of link_model: any model with owner_id and ref_id columns
    (see ReferenceMixin).
    """

    def __init__(self, link_model: Type[Base], session: AsyncSession):
        self.model = link_model
        self.session = session

    def _insert(self):
        dialect = self.session.get_bind().dialect.name
        try:
            insert = _INSERT_BY_DIALECT[dialect]
        except KeyError:
            raise NotImplementedError(f"Set-add is not supported on dialect '{dialect}'")
        return insert(self.model)

    async def add(self, owner_id: str, ref_id: str) -> bool:
        """
        Add ref_id to owner's set.

        Returns:
            True if the pair was new, False if it was already present
        """
        stmt = (
            self._insert()
            .values(owner_id=owner_id, ref_id=ref_id)
            .on_conflict_do_nothing(index_elements=["owner_id", "ref_id"])
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def add_many(self, owner_id: str, ref_ids: List[str]) -> int:
        added = 0
        for ref_id in dict.fromkeys(ref_ids):
            if await self.add(owner_id, ref_id):
                added += 1
        return added

    async def remove(self, owner_id: str, ref_id: str) -> bool:
        """
        Remove ref_id from owner's set.

        Returns:
            True if a pair was deleted, False if it was absent
        """
        result = await self.session.execute(
            delete(self.model).where(self.model.owner_id == owner_id, self.model.ref_id == ref_id)
        )
        return result.rowcount > 0

    async def remove_everywhere(self, ref_id: str) -> int:
        """Drop ref_id from every owner's set. Returns the number of sets changed."""
        result = await self.session.execute(delete(self.model).where(self.model.ref_id == ref_id))
        return result.rowcount

    async def clear(self, owner_id: str) -> int:
        result = await self.session.execute(delete(self.model).where(self.model.owner_id == owner_id))
        return result.rowcount

    async def contains(self, owner_id: str, ref_id: str) -> bool:
        result = await self.session.execute(
            select(self.model.ref_id)
            .where(self.model.owner_id == owner_id, self.model.ref_id == ref_id)
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def refs(self, owner_id: str) -> List[str]:
        """Refs held by owner, in insertion order."""
        result = await self.session.execute(
            select(self.model.ref_id)
            .where(self.model.owner_id == owner_id)
            .order_by(self.model.created_at, self.model.ref_id)
        )
        return list(result.scalars().all())

    async def owners_of(self, ref_id: str) -> List[str]:
        result = await self.session.execute(
            select(self.model.owner_id).where(self.model.ref_id == ref_id)
        )
        return list(result.scalars().all())
