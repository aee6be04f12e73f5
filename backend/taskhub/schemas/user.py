"""
Pydantic schemas for User Service actions.

WHAT: Params and response shapes for registration, login, profile changes
and the authorization queries other services make.

WHY: Every action validates its params before the handler runs, so a
malformed call fails with a validation error before any side effect.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from taskhub.models.user import UserRole
from taskhub.schemas.organisation import OrganisationCreate


class UserCreate(BaseModel):
    """
    User registration params.

    Role defaults to employee; only admins may pick another one.
    """

    email: EmailStr = Field(..., description="Unique email address")
    password: str = Field(..., min_length=5, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    role: Optional[UserRole] = None
    settings: Dict[str, Any] = Field(default_factory=dict)


class UserFirstParams(UserCreate):
    """Bootstrap params: the first admin and the organisation they run."""

    organisation: OrganisationCreate


class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ResolveTokenParams(BaseModel):
    token: str = Field(..., min_length=1)


class UserUpdateParams(BaseModel):
    """Partial profile update; omitted fields are left unchanged."""

    id: str = Field(..., min_length=1, max_length=32)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(default=None, min_length=5, max_length=128)
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    role: Optional[UserRole] = None
    settings: Optional[Dict[str, Any]] = None


class GetByOrgParams(BaseModel):
    organisation: str = Field(..., min_length=1, max_length=32)


class IsAuthorizedParams(BaseModel):
    """
    Authorization query params.

    Accepts either roles (a list) or actionRank ("admin|project_manager").
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1, max_length=32)
    roles: Optional[List[str]] = None
    action_rank: Optional[str] = Field(default=None, alias="actionRank")

    @model_validator(mode="after")
    def require_roles(self) -> "IsAuthorizedParams":
        if not self.roles and not self.action_rank:
            raise ValueError("roles or actionRank is required")
        return self

    @property
    def accepted(self):
        return self.roles if self.roles else self.action_rank


class ForgotPasswordParams(BaseModel):
    email: EmailStr


class ResetPasswordParams(BaseModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=5, max_length=128)


class UserBasicData(BaseModel):
    """What other services get to see about a user."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    role: UserRole


class UserResponse(BaseModel):
    """
    User response schema.

    hashed_password is never part of it.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    first_name: str
    last_name: str
    name: str
    role: UserRole
    organisation: Optional[str] = None
    projects: List[str] = Field(default_factory=list)
    settings: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class LoginResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    user: UserResponse
