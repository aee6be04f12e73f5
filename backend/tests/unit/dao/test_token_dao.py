"""
Unit Tests for TokenDAO.

WHAT: Tests for single-use consumption and the expiry sweep.

WHY: A token must never be valid twice, and expired tokens must be
reclaimed even if nobody presents them again.
"""

import asyncio
from datetime import datetime, timedelta

import pytest
import pytest_asyncio

from taskhub.core.auth import digest_secret
from taskhub.dao.token import TokenDAO
from taskhub.db.session import create_store
from taskhub.models import SERVICE_TABLES
from taskhub.models.token import TokenType


@pytest_asyncio.fixture
async def store(tmp_path):
    store = create_store("tokens", f"sqlite+aiosqlite:///{tmp_path / 'tokens.db'}")
    await store.create_tables(SERVICE_TABLES["tokens"])
    yield store
    await store.dispose()


async def issue(store, secret: str, expires_in: float, token_type=TokenType.PASSWORD_RESET):
    async with store.session() as session:
        return await TokenDAO(session).insert(
            token_type=token_type,
            owner="u1",
            digest=digest_secret(secret),
            expires_at=datetime.utcnow() + timedelta(seconds=expires_in),
        )


class TestConsume:
    @pytest.mark.asyncio
    async def test_consume_valid_token_once(self, store):
        await issue(store, "secret-1", 3600)
        digest = digest_secret("secret-1")

        async with store.session() as session:
            token = await TokenDAO(session).consume(digest, TokenType.PASSWORD_RESET)
        assert token is not None
        assert token.owner == "u1"

        async with store.session() as session:
            assert await TokenDAO(session).consume(digest, TokenType.PASSWORD_RESET) is None

    @pytest.mark.asyncio
    async def test_wrong_type_rejected(self, store):
        await issue(store, "secret-1", 3600)

        async with store.session() as session:
            dao = TokenDAO(session)
            assert await dao.consume(digest_secret("secret-1"), TokenType.VERIFICATION) is None
            # Still there for the right type
            assert await dao.get_by_digest(digest_secret("secret-1")) is not None

    @pytest.mark.asyncio
    async def test_expired_token_rejected(self, store):
        await issue(store, "secret-1", -1)

        async with store.session() as session:
            assert (
                await TokenDAO(session).consume(digest_secret("secret-1"), TokenType.PASSWORD_RESET)
                is None
            )

    @pytest.mark.asyncio
    async def test_concurrent_consumers_one_wins(self, store):
        await issue(store, "secret-1", 3600)
        digest = digest_secret("secret-1")

        async def consume():
            async with store.session() as session:
                return await TokenDAO(session).consume(digest, TokenType.PASSWORD_RESET)

        results = await asyncio.gather(consume(), consume(), return_exceptions=True)
        winners = [r for r in results if r is not None and not isinstance(r, Exception)]
        assert len(winners) == 1


class TestSweep:
    @pytest.mark.asyncio
    async def test_delete_expired_only(self, store):
        await issue(store, "old-1", -10)
        await issue(store, "old-2", -1)
        await issue(store, "fresh", 3600)

        async with store.session() as session:
            dao = TokenDAO(session)
            assert await dao.count_expired() == 2
            assert await dao.delete_expired() == 2

        async with store.session() as session:
            dao = TokenDAO(session)
            assert await dao.count() == 1
            assert await dao.get_by_digest(digest_secret("fresh")) is not None

    @pytest.mark.asyncio
    async def test_delete_expired_with_explicit_now(self, store):
        await issue(store, "soon", 60)

        async with store.session() as session:
            later = datetime.utcnow() + timedelta(minutes=5)
            assert await TokenDAO(session).delete_expired(now=later) == 1

    @pytest.mark.asyncio
    async def test_delete_by_digest(self, store):
        await issue(store, "secret-1", 3600)

        async with store.session() as session:
            dao = TokenDAO(session)
            assert await dao.delete_by_digest(digest_secret("secret-1")) == 1
            assert await dao.delete_by_digest(digest_secret("secret-1")) == 0
