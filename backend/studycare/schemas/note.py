"""
StudyCare Backend — Note Schemas
==================================

What:  Request bodies and result models for study notes and their AI
       summaries/explanations.
Why:   Schemas are separate from the SQLAlchemy models so the API contract
       (e.g. the embedded class summary) can change independently of the table.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class NoteClass(BaseModel):
    """The class a note is filed under."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    class_code: str
    subject: Optional[str] = None


class NoteOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    class_id: Optional[uuid.UUID] = None
    title: str
    content: str
    tags: List[str] = Field(default_factory=list)
    ai_summary: Optional[str] = None
    ai_explanation: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    # attached by the service, not an ORM attribute
    class_: Optional[NoteClass] = Field(default=None, serialization_alias="class")


class NoteCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    content: str = Field(min_length=1)
    tags: Optional[List[str]] = None
    class_id: Optional[uuid.UUID] = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Title and content are required")
        return v


class NoteUpdate(BaseModel):
    """Partial update: fields absent from the body are left unchanged."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    content: Optional[str] = None
    tags: Optional[List[str]] = None
    # explicit null detaches the note from its class
    class_id: Optional[uuid.UUID] = None


class NoteSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    summary: str
    key_points: List[str] = Field(default_factory=list, alias="keyPoints")
    suggested_tags: List[str] = Field(default_factory=list, alias="suggestedTags")


class NoteExplanation(BaseModel):
    explanation: str
    concepts: List[str] = Field(default_factory=list)
