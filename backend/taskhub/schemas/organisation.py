"""Pydantic schemas for Organisation Service actions."""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from taskhub.schemas.common import MembershipParams


class OrganisationCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    address: str = Field(..., min_length=2, max_length=255)
    city: str = Field(..., min_length=2, max_length=100)
    country: str = Field(..., min_length=2, max_length=100)


class OrganisationUpdateParams(BaseModel):
    id: str = Field(..., min_length=1, max_length=32)
    name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    address: Optional[str] = Field(default=None, min_length=2, max_length=255)
    city: Optional[str] = Field(default=None, min_length=2, max_length=100)
    country: Optional[str] = Field(default=None, min_length=2, max_length=100)


class OrganisationMemberParams(MembershipParams):
    """id is the organisation."""


class MemberSummary(BaseModel):
    id: str
    name: str
    role: str


class ProjectSummary(BaseModel):
    id: str
    name: str
    budget: float


class OrganisationResponse(BaseModel):
    """
    Organisation with populated members and projects.

    References whose targets no longer exist are left out.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    address: str
    city: str
    country: str
    members: List[MemberSummary] = Field(default_factory=list)
    projects: List[ProjectSummary] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
