"""Pydantic schemas for Mail Service actions."""

from pydantic import BaseModel, EmailStr, Field


class MailSendParams(BaseModel):
    to: EmailStr
    subject: str = Field(..., min_length=1, max_length=255)
    text: str = Field(default="")
