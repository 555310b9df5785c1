"""
StudyCare Backend — User & Caregiver Link Models
==================================================

What:  `users` holds the application profile row for an auth identity;
       `caregiver_children` pairs a caregiver with a student.
Why:   The auth provider owns credentials; everything the app needs to know
       about a person (role, language, simplified mode) lives here.

Profile row vs identity:
    users.id is the auth provider's user id. A row can be missing for an
    identity that exists (signup raced, provisioning failed), which is why
    profile creation goes through the duplicate-tolerant provisioning path.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from studycare.database import Base
from studycare.models.common import created_at_column, utcnow, uuid_pk

USER_ROLES = ("student", "teacher", "caregiver")


class User(Base):
    """Application profile for one authenticated identity."""

    __tablename__ = "users"

    # Same id as the auth identity; never generated locally
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="student")
    language_preference: Mapped[str] = mapped_column(String(10), nullable=False, default="en")
    simplified_mode: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = created_at_column()
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        Index("idx_users_role", "role"),
        Index("idx_users_email", "email"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, role='{self.role}')>"


class CaregiverChild(Base):
    """
    One caregiver ↔ student link.

    Unique per (caregiver_id, child_id); the unique constraint is what turns a
    concurrent double-link into an IntegrityError the link flow recovers from.
    """

    __tablename__ = "caregiver_children"

    id: Mapped[uuid.UUID] = uuid_pk()
    caregiver_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    child_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    # Caregiver-side relationship label (parent, guardian, ...); unset by default
    relationship: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = created_at_column()

    __table_args__ = (
        UniqueConstraint("caregiver_id", "child_id", name="uq_caregiver_children_pair"),
        Index("idx_caregiver_children_caregiver", "caregiver_id"),
    )
