"""
StudyCare Backend — Study Pod Models
======================================

What:  Group-study "pods": the pod itself, its memberships (member/admin),
       its message feed and its invitation lifecycle.

Invariants (enforced by PodService):
    - every pod keeps at least one admin membership
    - (pod_id, user_id) membership is unique
    - invitations move pending → accepted | declined exactly once

AI guidance:
    A user message mentioning @studycare gets a follow-up PodMessage with
    is_ai_guided=True, stored under the requesting member's id with
    content == ai_guidance; API responses render its author as "StudyCare AI".
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from studycare.database import Base
from studycare.models.common import created_at_column, uuid_pk

MEMBER_ROLES = ("member", "admin")
INVITATION_STATUSES = ("pending", "accepted", "declined")


class StudyPod(Base):
    __tablename__ = "study_pods"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    subject: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_by: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    is_private: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = created_at_column()


class StudyPodMember(Base):
    __tablename__ = "study_pod_members"

    id: Mapped[uuid.UUID] = uuid_pk()
    pod_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("study_pods.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="member")
    joined_at: Mapped[datetime] = created_at_column()

    __table_args__ = (
        UniqueConstraint("pod_id", "user_id", name="uq_study_pod_members_pair"),
        Index("idx_study_pod_members_user", "user_id"),
    )


class PodMessage(Base):
    __tablename__ = "pod_messages"

    id: Mapped[uuid.UUID] = uuid_pk()
    pod_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("study_pods.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_ai_guided: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ai_guidance: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = created_at_column()

    __table_args__ = (Index("idx_pod_messages_pod", "pod_id", "created_at"),)


class PodInvitation(Base):
    __tablename__ = "pod_invitations"

    id: Mapped[uuid.UUID] = uuid_pk()
    pod_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("study_pods.id", ondelete="CASCADE"), nullable=False
    )
    inviter_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    invitee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    created_at: Mapped[datetime] = created_at_column()
    responded_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("idx_pod_invitations_invitee_status", "invitee_id", "status"),
        Index("idx_pod_invitations_pod", "pod_id"),
    )
