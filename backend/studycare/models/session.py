"""
StudyCare Backend — Study Session & Chat Message Models
=========================================================

What:  A StudySession is a conversation container of one feature type
       (chat, image, voice, notes, symptom) owned by exactly one user.
       ChatMessage rows are its ordered user/assistant turns.

Note on `metadata`:
    The column is named `metadata` in the database, but `metadata` is
    reserved on declarative classes, so the attribute is `message_metadata`.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from studycare.database import Base
from studycare.models.common import JSONType, created_at_column, uuid_pk

SESSION_TYPES = ("chat", "image", "voice", "notes", "symptom")


class StudySession(Base):
    __tablename__ = "study_sessions"

    id: Mapped[uuid.UUID] = uuid_pk()
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    session_type: Mapped[str] = mapped_column(String(20), nullable=False)
    subject: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = created_at_column()

    __table_args__ = (
        Index("idx_study_sessions_user_type", "user_id", "session_type"),
        Index("idx_study_sessions_created_at", created_at.desc()),
    )


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id: Mapped[uuid.UUID] = uuid_pk()
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("study_sessions.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    # 'user' or 'assistant'
    message_type: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    message_metadata: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        "metadata", JSONType, nullable=True
    )
    created_at: Mapped[datetime] = created_at_column()

    __table_args__ = (Index("idx_chat_messages_session", "session_id", "created_at"),)
