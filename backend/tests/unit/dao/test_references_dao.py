"""
Tests for back-reference sets.

WHY: Event handlers apply set changes that may be delivered twice or race
with each other. Adds and removes must be idempotent single statements.
"""

import asyncio

import pytest
import pytest_asyncio

from taskhub.dao.organisation import OrganisationDAO
from taskhub.db.session import create_store
from taskhub.models import SERVICE_TABLES


@pytest_asyncio.fixture
async def store(tmp_path):
    store = create_store("organisations", f"sqlite+aiosqlite:///{tmp_path / 'orgs.db'}")
    await store.create_tables(SERVICE_TABLES["organisations"])
    yield store
    await store.dispose()


@pytest_asyncio.fixture
async def org(store):
    async with store.session() as session:
        return await OrganisationDAO(session).insert(
            name="Acme", address="1 Main Street", city="Springfield", country="Freedonia"
        )


class TestReferenceSetDAO:
    @pytest.mark.asyncio
    async def test_add_is_idempotent(self, store, org):
        """Adding the same ref twice leaves a single entry."""
        async with store.session() as session:
            members = OrganisationDAO(session).members
            assert await members.add(org.id, "u1") is True
            assert await members.add(org.id, "u1") is False

        async with store.session() as session:
            assert await OrganisationDAO(session).members.refs(org.id) == ["u1"]

    @pytest.mark.asyncio
    async def test_remove_absent_is_noop(self, store, org):
        async with store.session() as session:
            members = OrganisationDAO(session).members
            assert await members.remove(org.id, "missing") is False

    @pytest.mark.asyncio
    async def test_add_many_skips_duplicates(self, store, org):
        async with store.session() as session:
            members = OrganisationDAO(session).members
            assert await members.add_many(org.id, ["u1", "u2", "u1"]) == 2
            assert sorted(await members.refs(org.id)) == ["u1", "u2"]
            assert await members.contains(org.id, "u2")
            assert not await members.contains(org.id, "u3")

    @pytest.mark.asyncio
    async def test_remove_everywhere(self, store, org):
        async with store.session() as session:
            dao = OrganisationDAO(session)
            other = await dao.insert(name="Globex", address="2 Side St", city="Shelbyville", country="Freedonia")
            await dao.members.add(org.id, "u1")
            await dao.members.add(other.id, "u1")
            await dao.members.add(other.id, "u2")

            assert sorted(await dao.members.owners_of("u1")) == sorted([org.id, other.id])
            assert await dao.members.remove_everywhere("u1") == 2
            assert await dao.members.refs(org.id) == []
            assert await dao.members.refs(other.id) == ["u2"]

    @pytest.mark.asyncio
    async def test_concurrent_adds_keep_both(self, store, org):
        """Two handlers adding different refs at once lose neither."""

        async def add(ref):
            async with store.session() as session:
                await OrganisationDAO(session).projects.add(org.id, ref)

        await asyncio.gather(add("p1"), add("p2"))

        async with store.session() as session:
            assert sorted(await OrganisationDAO(session).projects.refs(org.id)) == ["p1", "p2"]

    @pytest.mark.asyncio
    async def test_removing_owner_clears_its_sets(self, store, org):
        async with store.session() as session:
            dao = OrganisationDAO(session)
            await dao.members.add(org.id, "u1")
            await dao.projects.add(org.id, "p1")

        async with store.session() as session:
            dao = OrganisationDAO(session)
            assert (await dao.remove_by_id(org.id)).id == org.id
            assert await dao.members.refs(org.id) == []
            assert await dao.projects.owners_of("p1") == []
