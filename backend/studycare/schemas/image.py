"""
StudyCare Backend — Image Analysis Schemas
============================================
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ImageAnalysis(BaseModel):
    """One analyzed upload: the OCR excerpt plus the full explanation."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    session_id: uuid.UUID
    image_url: str = Field(validation_alias="file_url")
    mime_type: str
    ocr_text: Optional[str] = None
    explanation: Optional[str] = Field(default=None, validation_alias="ai_explanation")
    created_at: datetime


class ImageQuestionRequest(BaseModel):
    question: str = Field(min_length=1, max_length=2000)


class ImageAnswer(BaseModel):
    session_id: uuid.UUID
    question: str
    answer: str
