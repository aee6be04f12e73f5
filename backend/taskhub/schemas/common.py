"""Params shared by several services."""

from pydantic import BaseModel, ConfigDict, Field


class EmptyParams(BaseModel):
    """Params for actions that take none. Unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid")


class IdParams(BaseModel):
    """Params for actions addressed to one entity."""

    id: str = Field(..., min_length=1, max_length=32, description="Entity ID")


class MembershipParams(BaseModel):
    """Params for adding or removing a user from a set-valued membership."""

    id: str = Field(..., min_length=1, max_length=32, description="Owning entity ID")
    user: str = Field(..., min_length=1, max_length=32, description="User ID")


class MessageResponse(BaseModel):
    message: str
