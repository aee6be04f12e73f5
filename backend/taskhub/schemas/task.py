"""Pydantic schemas for Task Service actions."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

from taskhub.models.task import TaskStatus, TaskPriority


class TaskCreate(BaseModel):
    """
    Task creation params.

    New tasks always start in backlog, so status is not accepted here.
    """

    name: str = Field(..., min_length=2, max_length=255)
    description: str = Field(default="", max_length=5000)
    project: str = Field(..., min_length=1, max_length=32)
    assignee: Optional[str] = Field(default=None, max_length=32)
    due_date: Optional[datetime] = None
    priority: TaskPriority = TaskPriority.MEDIUM


class TaskUpdateParams(BaseModel):
    id: str = Field(..., min_length=1, max_length=32)
    name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None


class TaskListParams(BaseModel):
    project: str = Field(..., min_length=1, max_length=32)


class TaskAssignParams(BaseModel):
    """id is the task."""

    id: str = Field(..., min_length=1, max_length=32)
    user: str = Field(..., min_length=1, max_length=32)


class TaskResponse(BaseModel):
    """
    Task response schema.

    assignee is the user's basic data when the User Service knows them,
    otherwise the raw ID.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str
    status: TaskStatus
    priority: TaskPriority
    due_date: Optional[datetime] = None
    project: str
    assignee: Optional[Union[Dict[str, Any], str]] = None
    comments: List[str] = Field(default_factory=list)
    attachments: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
