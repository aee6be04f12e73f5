"""Pydantic schemas for Task Attachment Service actions."""

from pydantic import BaseModel, Field


class AttachmentSaveParams(BaseModel):
    task: str = Field(..., min_length=1, max_length=32, pattern=r"^[A-Za-z0-9]+$")
    filename: str = Field(..., min_length=1, max_length=255, description="Client file name")
    content: bytes = Field(..., description="File body")


class AttachmentParams(BaseModel):
    task: str = Field(..., min_length=1, max_length=32, pattern=r"^[A-Za-z0-9]+$")
    file: str = Field(
        ...,
        min_length=1,
        max_length=255,
        pattern=r"^[A-Za-z0-9]+(\.[A-Za-z0-9]+)?$",
        description="Stored file name",
    )


class AttachmentResponse(BaseModel):
    task: str
    file: str
    path: str
    media_type: str
    size: int
