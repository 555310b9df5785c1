"""
StudyCare Backend — Response Envelope & Shared Schemas
========================================================

What:  The JSON envelope every endpoint returns, plus small summaries reused
       across features.

Envelope:
    success → {"success": true,  "data": <T>}
    failure → {"success": false, "error": {"message": "...", "code": "..."}}
"""

import uuid
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    data: T


class ErrorBody(BaseModel):
    message: str = Field(description="Human-readable error description")
    code: Optional[str] = Field(default=None, description="Machine-readable error code")


class ErrorResponse(BaseModel):
    success: bool = False
    error: ErrorBody


class MessageResult(BaseModel):
    """Result of operations that only acknowledge (delete, leave, unlink)."""

    message: str


class UserSummary(BaseModel):
    """The public face of a user embedded in other results."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    full_name: Optional[str] = None
