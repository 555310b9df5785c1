"""
StudyCare Backend — Voice Schemas
===================================
"""

import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TranscriptionResult(BaseModel):
    text: str
    session_id: Optional[uuid.UUID] = None


class SynthesizeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(min_length=1, max_length=4096)
    language: Optional[str] = Field(default=None, max_length=10)
    session_id: Optional[uuid.UUID] = Field(default=None, alias="sessionId")


class SynthesisResult(BaseModel):
    audio_url: str
    session_id: Optional[uuid.UUID] = None


class VoiceChatResult(BaseModel):
    transcription: str
    ai_response: str
    audio_url: Optional[str] = None
    session_id: uuid.UUID
