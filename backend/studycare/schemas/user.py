"""
StudyCare Backend — User & Auth Schemas
=========================================
"""

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

Role = Literal["student", "teacher", "caregiver"]


class UserProfile(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    full_name: Optional[str] = None
    role: Role
    language_preference: str
    simplified_mode: bool
    created_at: datetime
    updated_at: datetime


class RegisterRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=6, max_length=128)
    full_name: Optional[str] = Field(default=None, max_length=255)
    role: Role
    language_preference: Optional[str] = Field(default=None, max_length=10)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("Invalid email address")
        return v


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class UpdateProfileRequest(BaseModel):
    """Only fields present in the body are changed."""

    full_name: Optional[str] = Field(default=None, max_length=255)
    language_preference: Optional[str] = Field(default=None, max_length=10)
    simplified_mode: Optional[bool] = None


class AuthPayload(BaseModel):
    user: UserProfile
    token: str
