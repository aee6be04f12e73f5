"""
Pydantic schemas for Project Service actions.

WHY: organisation is required at creation and checked against the
Organisation Service; it cannot be changed by update.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_serializer


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    organisation: str = Field(..., min_length=1, max_length=32)
    budget: Decimal = Field(default=Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    members: List[str] = Field(default_factory=list, description="Initial member user IDs")


class ProjectUpdateParams(BaseModel):
    id: str = Field(..., min_length=1, max_length=32)
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    budget: Optional[Decimal] = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    organisation: Optional[str] = Field(
        default=None,
        max_length=32,
        description="Accepted only if unchanged",
    )


class ProjectListParams(BaseModel):
    organisation: Optional[str] = Field(default=None, max_length=32)


class ProjectMemberParams(BaseModel):
    """id is the project."""

    id: str = Field(..., min_length=1, max_length=32)
    user: str = Field(..., min_length=1, max_length=32)


class ProjectResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    organisation: str
    budget: Decimal
    members: List[str] = Field(default_factory=list)
    tasks: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @field_serializer("budget")
    def serialize_budget(self, budget: Decimal) -> float:
        return float(budget)
