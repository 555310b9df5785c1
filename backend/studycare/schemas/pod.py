"""
StudyCare Backend — Study Pod Schemas
=======================================
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from studycare.schemas.common import UserSummary


class PodCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    subject: Optional[str] = Field(default=None, max_length=100)
    is_private: bool = Field(default=False, alias="isPrivate")

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Pod name is required")
        return v


class PodMemberOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    pod_id: uuid.UUID
    user_id: uuid.UUID
    role: str
    joined_at: datetime
    user: Optional[UserSummary] = None


class PodOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: Optional[str] = None
    subject: Optional[str] = None
    created_by: uuid.UUID
    is_private: bool
    created_at: datetime
    member_count: int = 0
    is_member: bool = False
    creator: Optional[UserSummary] = None
    # only populated for members
    members: List[PodMemberOut] = Field(default_factory=list)


class MessageAuthor(BaseModel):
    """Author of a pod message; id is "ai" for StudyCare AI guidance."""

    id: str
    email: str
    full_name: Optional[str] = None


class PodMessageOut(BaseModel):
    id: uuid.UUID
    pod_id: uuid.UUID
    user_id: uuid.UUID
    content: str
    is_ai_guided: bool
    ai_guidance: Optional[str] = None
    created_at: datetime
    user: Optional[MessageAuthor] = None


class SendPodMessageRequest(BaseModel):
    content: str = Field(min_length=1, max_length=5000)

    @field_validator("content")
    @classmethod
    def require_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Message content is required")
        return v


class AIHelpRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message_id: Optional[uuid.UUID] = Field(default=None, alias="messageId")
    question: Optional[str] = Field(default=None, max_length=2000)


class InvitationCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    invitee_id: uuid.UUID = Field(alias="userId")


class PodBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    created_by: uuid.UUID
    created_at: datetime


class InvitationOut(BaseModel):
    id: uuid.UUID
    pod_id: uuid.UUID
    inviter_id: uuid.UUID
    invitee_id: uuid.UUID
    status: str
    created_at: datetime
    responded_at: Optional[datetime] = None
    pod: Optional[PodBrief] = None
    inviter: Optional[UserSummary] = None
    invitee: Optional[UserSummary] = None
