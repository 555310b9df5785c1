"""
StudyCare Backend — Class Schemas (teacher & student views)
=============================================================
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from studycare.schemas.common import UserSummary


class ClassOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    teacher_id: uuid.UUID
    name: str
    subject: Optional[str] = None
    class_code: str
    created_at: datetime


class CreateClassRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    subject: Optional[str] = Field(default=None, max_length=100)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Class name is required")
        return v


class ClassStudentOut(BaseModel):
    id: uuid.UUID
    class_id: uuid.UUID
    student_id: uuid.UUID
    joined_at: datetime
    user: Optional[UserSummary] = None


class StudentActivityStats(BaseModel):
    student_id: uuid.UUID
    student_name: Optional[str] = None
    student_email: Optional[str] = None
    last_active: Optional[datetime] = None
    questions_asked: int = 0
    images_submitted: int = 0
    notes_created: int = 0


class JoinClassRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    class_code: str = Field(alias="classCode", min_length=1, max_length=20)

    @field_validator("class_code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()


class TeacherSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    full_name: Optional[str] = None
    email: str


class EnrolledClass(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    class_code: str
    subject: Optional[str] = None
    teacher_id: uuid.UUID
    teacher: Optional[TeacherSummary] = None


class Enrollment(BaseModel):
    id: uuid.UUID
    class_id: uuid.UUID
    student_id: uuid.UUID
    joined_at: datetime
    class_: Optional[EnrolledClass] = Field(default=None, serialization_alias="class")
