"""
Token Data Access Object.

WHAT: Creation, single-use consumption and expiry sweep for tokens.

WHY: Consumption and the sweep are both plain DELETE statements, so a
token can be consumed at most once even when two checks race.
"""

from datetime import datetime
from typing import List, Optional
from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.dao.base import BaseDAO, ChangeListener
from taskhub.models.token import Token, TokenType


class TokenDAO(BaseDAO[Token]):
    """Data Access Object for Token model."""

    def __init__(self, session: AsyncSession, listeners: Optional[List[ChangeListener]] = None):
        super().__init__(Token, session, listeners)

    async def get_by_digest(
        self,
        digest: str,
        token_type: Optional[TokenType] = None,
    ) -> Optional[Token]:
        conditions = [Token.digest == digest]
        if token_type:
            conditions.append(Token.token_type == token_type)
        result = await self.session.execute(select(Token).where(*conditions))
        return result.scalar_one_or_none()

    async def consume(
        self,
        digest: str,
        token_type: TokenType,
        now: Optional[datetime] = None,
    ) -> Optional[Token]:
        """
        Delete and return a valid token.

        WHAT: Looks the token up by digest and type, rejects it if expired,
        then deletes it.

        HOW: The DELETE is conditional on the row still existing, so of two
        concurrent consumers only the one whose DELETE hits a row wins.

        Returns:
            The consumed token, or None if absent, expired or already used
        """
        now = now or datetime.utcnow()
        token = await self.get_by_digest(digest, token_type)
        if token is None or token.expires_at <= now:
            return None

        result = await self.session.execute(delete(Token).where(Token.id == token.id))
        if result.rowcount == 0:
            return None
        self._notify("removed", token)
        return token

    async def delete_by_digest(self, digest: str) -> int:
        result = await self.session.execute(delete(Token).where(Token.digest == digest))
        return result.rowcount

    async def delete_expired(self, now: Optional[datetime] = None) -> int:
        """
        Delete every token whose expiry has passed.

        Returns:
            Number of tokens deleted
        """
        now = now or datetime.utcnow()
        result = await self.session.execute(delete(Token).where(Token.expires_at <= now))
        if result.rowcount:
            self._notify("removed", None)
        return result.rowcount

    async def count_expired(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.utcnow()
        result = await self.session.execute(
            select(func.count()).select_from(Token).where(Token.expires_at <= now)
        )
        return result.scalar_one()
