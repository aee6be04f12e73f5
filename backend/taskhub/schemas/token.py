"""Pydantic schemas for Token Service actions."""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from taskhub.models.token import TokenType


class TokenGenerateParams(BaseModel):
    """
    expiry is in seconds from now. Negative values produce an already
    expired token; None uses the type's default lifetime.
    """

    type: TokenType
    owner: str = Field(..., min_length=1, max_length=32)
    expiry: Optional[float] = None


class TokenCheckParams(BaseModel):
    type: TokenType
    token: str = Field(..., min_length=1)


class TokenRemoveParams(BaseModel):
    token: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    """The plain token is returned only here, at generation time."""

    id: str
    type: TokenType
    owner: str
    token: str
    expires_at: datetime


class TokenInfo(BaseModel):
    id: str
    type: TokenType
    owner: str
