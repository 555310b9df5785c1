"""
StudyCare Backend — Note SQLAlchemy Model
===========================================

What:  ORM model for the `notes` table: a user-owned document with optional
       AI summary/explanation, an optional class association and free-form tags.
Who:   NoteService (CRUD + AI actions), CaregiverService (activity counts),
       TeacherService (per-student stats).

Table Design:
    - class_id is nullable; when set, the author must be enrolled in the class
      (checked by NoteService, not by a constraint)
    - tags is a JSON list so the same model runs on PostgreSQL (JSONB) and SQLite
    - updated_at drives the list order; created_at drives the caregiver timeline
"""

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from studycare.database import Base
from studycare.models.common import JSONType, created_at_column, utcnow, uuid_pk


class Note(Base):

    __tablename__ = "notes"

    id: Mapped[uuid.UUID] = uuid_pk()
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    class_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("classes.id", ondelete="SET NULL"), nullable=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    tags: Mapped[List[str]] = mapped_column(JSONType, nullable=False, default=list)
    ai_summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ai_explanation: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = created_at_column()
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        Index("idx_notes_user_updated", "user_id", updated_at.desc()),
        Index("idx_notes_class", "class_id"),
    )

    def __repr__(self) -> str:
        return f"<Note(id={self.id}, title='{self.title}')>"
