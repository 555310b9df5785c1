"""
StudyCare Backend — Chat Schemas
==================================

Sessions and messages are shared by every feature that keeps a transcript
(chat, image, voice, symptom); only the session_type differs.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class StudySessionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    session_type: str
    subject: Optional[str] = None
    created_at: datetime


class ChatMessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    session_id: uuid.UUID
    user_id: uuid.UUID
    message_type: str
    content: str
    # ORM attribute is message_metadata (`metadata` is reserved on declarative models)
    metadata: Optional[Dict[str, Any]] = Field(default=None, validation_alias="message_metadata")
    created_at: datetime


class CreateSessionRequest(BaseModel):
    subject: Optional[str] = Field(default=None, max_length=100)


class SendMessageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: uuid.UUID = Field(alias="sessionId")
    message: str = Field(min_length=1, max_length=10000)
    language: Optional[str] = Field(default=None, max_length=10)
    step_by_step: bool = Field(default=True, alias="stepByStep")


class SendMessageResult(BaseModel):
    response: str
    message: ChatMessageOut


class SessionWithMessages(BaseModel):
    session: StudySessionOut
    messages: List[ChatMessageOut]
