"""
JWT authentication and password hashing utilities.

WHY: Hashing and signing are opaque primitives for the services. The User
Service is the only caller; everything else sees a resolved CallerContext.
"""

import hashlib
from datetime import datetime, timedelta
from typing import Dict, Any, Optional
from jose import jwt, JWTError
from passlib.context import CryptContext

from taskhub.core.config import settings
from taskhub.core.exceptions import (
    TokenExpiredError,
    TokenInvalidError,
)


# bcrypt__rounds is lowered in tests to keep hashing fast
pwd_context = CryptContext(
    schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.BCRYPT_ROUNDS
)


# ============================================================================
# Passwords
# ============================================================================


def hash_password(password: str) -> str:
    """bcrypt hash with a per-password salt; cost from BCRYPT_ROUNDS."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def digest_secret(secret: str) -> str:
    """
    One-way digest for single-use token secrets.

    WHY: Token secrets are high-entropy, so a fast SHA-256 digest is enough
    and lets the store look tokens up by their digest.
    """
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


# ============================================================================
# Access tokens
# ============================================================================


def issue_access_token(
    user_id: str,
    role: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Sign a bearer token for a logged-in user.

    Claims: sub (user ID), role (informational, never trusted for
    authorization), iat and exp.

    Args:
        user_id: Subject of the token
        role: Role at login time
        expires_delta: Lifetime, JWT_EXPIRATION_MINUTES if omitted

    Returns:
        Encoded JWT
    """
    issued_at = datetime.utcnow()
    lifetime = expires_delta or timedelta(minutes=settings.JWT_EXPIRATION_MINUTES)
    claims = {"sub": user_id, "role": role, "iat": issued_at, "exp": issued_at + lifetime}
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Check a bearer token's signature and expiry and return its claims.

    Raises:
        TokenExpiredError: If the token has expired
        TokenInvalidError: If the token is malformed, unsigned by us or has no subject
    """
    try:
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise TokenExpiredError(message="Token has expired")
    except JWTError as e:
        raise TokenInvalidError(message="Invalid token", error=str(e))

    if not claims.get("sub"):
        raise TokenInvalidError(message="Token has no subject")
    return claims
