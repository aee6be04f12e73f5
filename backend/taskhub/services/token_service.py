"""
Token Service.

WHAT: Issues, checks and reclaims single-use tokens for email verification
and password reset.

WHY: A token moves from issued to either consumed (deleted by a successful
check) or expired (deleted by the sweep). It is never valid twice.

HOW: The plain secret leaves the service only in generate()'s response.
The store holds its SHA-256 digest.
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from taskhub.bus.actions import ActionDef, CallerContext
from taskhub.core.auth import digest_secret
from taskhub.core.config import settings
from taskhub.dao.token import TokenDAO
from taskhub.models.token import TokenType
from taskhub.schemas.common import EmptyParams
from taskhub.schemas.token import (
    TokenCheckParams,
    TokenGenerateParams,
    TokenInfo,
    TokenRemoveParams,
    TokenResponse,
)
from taskhub.services.base import BaseService

logger = logging.getLogger(__name__)


def default_ttl(token_type: TokenType) -> int:
    """Default lifetime in seconds for a token type."""
    if token_type == TokenType.PASSWORD_RESET:
        return settings.PASSWORD_RESET_TOKEN_TTL_SECONDS
    return settings.VERIFICATION_TOKEN_TTL_SECONDS


class TokenService(BaseService):
    """Token Service: internal actions under "tokens.*"."""

    prefix = "tokens"
    store_name = "tokens"

    def actions(self) -> Dict[str, ActionDef]:
        internal = {"auth_required": False, "internal": True}
        return {
            "generate": ActionDef(self.generate, TokenGenerateParams, **internal),
            "check": ActionDef(self.check, TokenCheckParams, **internal),
            "remove": ActionDef(self.remove, TokenRemoveParams, **internal),
            "clearExpired": ActionDef(self.clear_expired, EmptyParams, **internal),
        }

    def _dao(self, session) -> TokenDAO:
        return TokenDAO(session, self.change_listeners)

    async def generate(self, params: TokenGenerateParams, ctx: CallerContext) -> Dict[str, Any]:
        """
        Issue a token.

        expiry is seconds from now; a negative value yields a token that is
        already expired (the sweep will reclaim it).
        """
        expiry = params.expiry if params.expiry is not None else default_ttl(params.type)
        secret = secrets.token_urlsafe(32)

        async with self.store.session() as session:
            token = await self._dao(session).insert(
                token_type=params.type,
                owner=params.owner,
                digest=digest_secret(secret),
                expires_at=datetime.utcnow() + timedelta(seconds=expiry),
            )

        logger.info(f"Issued {params.type.value} token {token.id} for {params.owner}")
        return TokenResponse(
            id=token.id,
            type=token.token_type,
            owner=token.owner,
            token=secret,
            expires_at=token.expires_at,
        ).model_dump(mode="json")

    async def check(self, params: TokenCheckParams, ctx: CallerContext) -> Optional[Dict[str, Any]]:
        """
        Consume a token.

        Returns:
            {id, type, owner} on success; None if unknown, expired or used
        """
        async with self.store.session() as session:
            token = await self._dao(session).consume(digest_secret(params.token), params.type)
        if token is None:
            return None
        return TokenInfo(id=token.id, type=token.token_type, owner=token.owner).model_dump(mode="json")

    async def remove(self, params: TokenRemoveParams, ctx: CallerContext) -> bool:
        async with self.store.session() as session:
            return await self._dao(session).delete_by_digest(digest_secret(params.token)) > 0

    async def clear_expired(self, params: EmptyParams, ctx: CallerContext) -> int:
        """Delete every expired token. Returns how many were deleted."""
        async with self.store.session() as session:
            count = await self._dao(session).delete_expired()
        if count:
            logger.info(f"Token sweep removed {count} expired token(s)")
        return count
