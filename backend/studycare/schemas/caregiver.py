"""
StudyCare Backend — Caregiver Schemas
=======================================

Results of the caregiver linking flow and the child activity report.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class LinkChildRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    child_email: str = Field(alias="childEmail", min_length=1, max_length=320)


class ChildSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    full_name: Optional[str] = None
    simplified_mode: bool = False


class CaregiverLink(BaseModel):
    """One caregiver ↔ child relationship with the child's summary."""

    id: uuid.UUID
    caregiver_id: uuid.UUID
    child_id: uuid.UUID
    relationship: Optional[str] = None
    created_at: datetime
    child: Optional[ChildSummary] = None


class ActivityEntry(BaseModel):
    type: str = Field(description="'note' or the session type (chat, image, voice, ...)")
    description: str
    created_at: datetime


class ChildActivity(BaseModel):
    child_id: uuid.UUID
    child_name: Optional[str] = None
    child_email: str
    classes_count: int
    notes_count: int
    chat_sessions_count: int = Field(description="All study sessions, every type")
    last_active: Optional[datetime] = None
    recent_activity: List[ActivityEntry] = Field(default_factory=list)
