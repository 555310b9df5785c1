"""
StudyCare Backend — Symptom Guidance Schemas
==============================================

Guidance fields keep the camelCase names the model is asked to produce.
"""

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

SeverityLevel = Literal["mild", "moderate", "severe", "emergency"]


class SymptomCheckRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    symptoms: str = Field(min_length=1, max_length=5000)
    additional_info: Optional[str] = Field(default=None, alias="additionalInfo", max_length=5000)

    @field_validator("symptoms")
    @classmethod
    def require_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Symptoms description is required")
        return v


class SymptomGuidance(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    guidance: str
    educational_info: str = Field(default="", alias="educationalInfo")
    when_to_seek_help: str = Field(default="", alias="whenToSeekHelp")
    severity_level: SeverityLevel = Field(default="mild", alias="severityLevel")
    disclaimer: str = ""


class SymptomHistoryEntry(BaseModel):
    id: uuid.UUID
    session_id: uuid.UUID
    symptoms: str
    guidance: str
    severity_level: Optional[SeverityLevel] = None
    created_at: datetime
