"""
Token model for email verification and password reset.

WHAT: Stores temporary, single-use secrets issued by the Token Service.

WHY: Secure token-based flows require:
1. Time-limited tokens, reclaimed by a periodic sweep
2. One-time use (the row is deleted when the token is checked)
3. Secrets that are useless if the table leaks

HOW: The plain secret is handed to the caller exactly once. Only its
SHA-256 digest is stored, so lookups hash the presented secret first.
"""

import enum
from sqlalchemy import Column, String, Enum, DateTime, Index

from taskhub.models.base import Base, TimestampMixin, PrimaryKeyMixin


class TokenType(str, enum.Enum):
    """
    Types of tokens.

    WHY: Types have different default lifetimes (verification: 24h,
    reset: 1h) and a token of one type never satisfies a check for another.
    """

    VERIFICATION = "verification"
    PASSWORD_RESET = "password_reset"


class Token(Base, PrimaryKeyMixin, TimestampMixin):
    """Single-use token owned by the Token Service."""

    __tablename__ = "tokens"

    token_type = Column(Enum(TokenType), nullable=False)

    # Owner is a user ID held by the User Service
    owner = Column(String(32), nullable=False, index=True)

    digest = Column(String(64), unique=True, index=True, nullable=False)
    """SHA-256 hex digest of the secret."""

    expires_at = Column(DateTime, nullable=False)

    __table_args__ = (Index("ix_tokens_expires_at", "expires_at"),)

    def __repr__(self) -> str:
        return f"<Token(id={self.id}, type={self.token_type}, owner={self.owner})>"
