"""Pydantic schemas for Task Comment Service actions."""

from datetime import datetime
from typing import Any, Dict, Optional, Union
from pydantic import BaseModel, ConfigDict, Field


class CommentCreate(BaseModel):
    """author defaults to the caller."""

    task: str = Field(..., min_length=1, max_length=32)
    text: str = Field(..., min_length=1, max_length=255)
    author: Optional[str] = Field(default=None, max_length=32)


class CommentUpdateParams(BaseModel):
    id: str = Field(..., min_length=1, max_length=32)
    text: str = Field(..., min_length=1, max_length=255)


class CommentListParams(BaseModel):
    task: str = Field(..., min_length=1, max_length=32)


class CommentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    task: str
    author: Optional[Union[Dict[str, Any], str]] = None
    author_name: str = ""
    text: str
    created_at: datetime
    updated_at: datetime
