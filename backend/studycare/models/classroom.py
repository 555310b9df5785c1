"""
StudyCare Backend — Class Roster Models
=========================================

`classes` is a teacher-owned roster keyed by a generated 6-character join
code; `class_students` records enrollments.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from studycare.database import Base
from studycare.models.common import created_at_column, uuid_pk


class Classroom(Base):
    __tablename__ = "classes"

    id: Mapped[uuid.UUID] = uuid_pk()
    teacher_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    subject: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    class_code: Mapped[str] = mapped_column(String(6), nullable=False, unique=True)
    created_at: Mapped[datetime] = created_at_column()

    __table_args__ = (Index("idx_classes_teacher", "teacher_id"),)


class ClassStudent(Base):
    __tablename__ = "class_students"

    id: Mapped[uuid.UUID] = uuid_pk()
    class_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("classes.id", ondelete="CASCADE"), nullable=False
    )
    student_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    joined_at: Mapped[datetime] = created_at_column()

    __table_args__ = (
        UniqueConstraint("class_id", "student_id", name="uq_class_students_pair"),
        Index("idx_class_students_student", "student_id"),
    )
