"""
StudyCare Backend — Image Upload Model
========================================

One analysed image: where it lives in object storage, the OCR excerpt and
the full AI explanation. Linked to the `image` StudySession that holds the
follow-up question/answer turns.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from studycare.database import Base
from studycare.models.common import created_at_column, uuid_pk


class ImageUpload(Base):
    __tablename__ = "image_uploads"

    id: Mapped[uuid.UUID] = uuid_pk()
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("study_sessions.id", ondelete="CASCADE"), nullable=False
    )
    file_url: Mapped[str] = mapped_column(Text, nullable=False)
    # Object key inside the bucket (needed to delete the object)
    storage_path: Mapped[str] = mapped_column(String(512), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(50), nullable=False, default="image/jpeg")
    ocr_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ai_explanation: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = created_at_column()

    __table_args__ = (
        Index("idx_image_uploads_user", "user_id"),
        Index("idx_image_uploads_session", "session_id"),
    )
