"""Initial StudyCare schema

Revision ID: 001
Revises: None
Create Date: 2026-10-17 00:00:00.000000+00:00

What:  Creates every table (profiles, caregiver links, classes, sessions,
       messages, notes, image uploads, study pods) and the two privileged
       SQL functions used as fallbacks by the duplicate-tolerant create flow.

Privileged functions (SECURITY DEFINER, bypass row-level security):
    create_user_profile(id, email, full_name, role, language, simplified)
        → id of the inserted profile, NULL when it already exists
    link_caregiver_child(caregiver_id, child_id)
        → id of the inserted link, NULL when the pair already exists

Rollback: downgrade() drops everything (destructive — all data lost).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        server_default=sa.text("gen_random_uuid()"),
        nullable=False,
    )


def _timestamp(name: str = "created_at") -> sa.Column:
    return sa.Column(
        name,
        sa.TIMESTAMP(timezone=True),
        server_default=sa.text("CURRENT_TIMESTAMP"),
        nullable=False,
    )


def _user_fk(name: str) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )


CREATE_USER_PROFILE = """
CREATE OR REPLACE FUNCTION create_user_profile(
    p_id UUID, p_email TEXT, p_full_name TEXT, p_role TEXT,
    p_language_preference TEXT, p_simplified_mode BOOLEAN
) RETURNS UUID
LANGUAGE plpgsql SECURITY DEFINER AS $$
DECLARE
    new_id UUID;
BEGIN
    INSERT INTO users (id, email, full_name, role, language_preference, simplified_mode)
    VALUES (p_id, p_email, p_full_name, COALESCE(p_role, 'student'),
            COALESCE(p_language_preference, 'en'), COALESCE(p_simplified_mode, FALSE))
    ON CONFLICT (id) DO NOTHING
    RETURNING id INTO new_id;
    RETURN new_id;
END;
$$;
"""

LINK_CAREGIVER_CHILD = """
CREATE OR REPLACE FUNCTION link_caregiver_child(p_caregiver_id UUID, p_child_id UUID)
RETURNS UUID
LANGUAGE plpgsql SECURITY DEFINER AS $$
DECLARE
    new_id UUID;
BEGIN
    INSERT INTO caregiver_children (caregiver_id, child_id)
    VALUES (p_caregiver_id, p_child_id)
    ON CONFLICT (caregiver_id, child_id) DO NOTHING
    RETURNING id INTO new_id;
    RETURN new_id;
END;
$$;
"""


def upgrade() -> None:
    # ── Profiles & caregiver links ────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False,
                  comment="Same id as the auth identity"),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'student'")),
        sa.Column("language_preference", sa.String(10), nullable=False, server_default=sa.text("'en'")),
        sa.Column("simplified_mode", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _timestamp(),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("role IN ('student', 'teacher', 'caregiver')", name="ck_users_role"),
    )
    op.create_index("idx_users_role", "users", ["role"])
    op.create_index("idx_users_email", "users", ["email"])

    op.create_table(
        "caregiver_children",
        _id(),
        _user_fk("caregiver_id"),
        _user_fk("child_id"),
        sa.Column("relationship", sa.String(50), nullable=True),
        _timestamp(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("caregiver_id", "child_id", name="uq_caregiver_children_pair"),
    )
    op.create_index("idx_caregiver_children_caregiver", "caregiver_children", ["caregiver_id"])

    # ── Classes ───────────────────────────────────────────────────────────
    op.create_table(
        "classes",
        _id(),
        _user_fk("teacher_id"),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("subject", sa.String(100), nullable=True),
        sa.Column("class_code", sa.String(6), nullable=False, unique=True),
        _timestamp(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_classes_teacher", "classes", ["teacher_id"])

    op.create_table(
        "class_students",
        _id(),
        sa.Column("class_id", postgresql.UUID(as_uuid=True),
                  sa.ForeignKey("classes.id", ondelete="CASCADE"), nullable=False),
        _user_fk("student_id"),
        _timestamp("joined_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("class_id", "student_id", name="uq_class_students_pair"),
    )
    op.create_index("idx_class_students_student", "class_students", ["student_id"])

    # ── Sessions & messages ───────────────────────────────────────────────
    op.create_table(
        "study_sessions",
        _id(),
        _user_fk("user_id"),
        sa.Column("session_type", sa.String(20), nullable=False),
        sa.Column("subject", sa.String(100), nullable=True),
        _timestamp(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "session_type IN ('chat', 'image', 'voice', 'notes', 'symptom')",
            name="ck_study_sessions_type",
        ),
    )
    op.create_index("idx_study_sessions_user_type", "study_sessions", ["user_id", "session_type"])
    op.create_index("idx_study_sessions_created_at", "study_sessions", [sa.text("created_at DESC")])

    op.create_table(
        "chat_messages",
        _id(),
        sa.Column("session_id", postgresql.UUID(as_uuid=True),
                  sa.ForeignKey("study_sessions.id", ondelete="CASCADE"), nullable=False),
        _user_fk("user_id"),
        sa.Column("message_type", sa.String(20), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        _timestamp(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_chat_messages_session", "chat_messages", ["session_id", "created_at"])

    # ── Notes & images ────────────────────────────────────────────────────
    op.create_table(
        "notes",
        _id(),
        _user_fk("user_id"),
        sa.Column("class_id", postgresql.UUID(as_uuid=True),
                  sa.ForeignKey("classes.id", ondelete="SET NULL"), nullable=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("tags", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("ai_summary", sa.Text(), nullable=True),
        sa.Column("ai_explanation", sa.Text(), nullable=True),
        _timestamp(),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_notes_user_updated", "notes", ["user_id", sa.text("updated_at DESC")])
    op.create_index("idx_notes_class", "notes", ["class_id"])

    op.create_table(
        "image_uploads",
        _id(),
        _user_fk("user_id"),
        sa.Column("session_id", postgresql.UUID(as_uuid=True),
                  sa.ForeignKey("study_sessions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("file_url", sa.Text(), nullable=False),
        sa.Column("storage_path", sa.String(512), nullable=False),
        sa.Column("mime_type", sa.String(50), nullable=False, server_default=sa.text("'image/jpeg'")),
        sa.Column("ocr_text", sa.Text(), nullable=True),
        sa.Column("ai_explanation", sa.Text(), nullable=True),
        _timestamp(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_image_uploads_user", "image_uploads", ["user_id"])
    op.create_index("idx_image_uploads_session", "image_uploads", ["session_id"])

    # ── Study pods ────────────────────────────────────────────────────────
    op.create_table(
        "study_pods",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("subject", sa.String(100), nullable=True),
        _user_fk("created_by"),
        sa.Column("is_private", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _timestamp(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "study_pod_members",
        _id(),
        sa.Column("pod_id", postgresql.UUID(as_uuid=True),
                  sa.ForeignKey("study_pods.id", ondelete="CASCADE"), nullable=False),
        _user_fk("user_id"),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'member'")),
        _timestamp("joined_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("pod_id", "user_id", name="uq_study_pod_members_pair"),
        sa.CheckConstraint("role IN ('member', 'admin')", name="ck_study_pod_members_role"),
    )
    op.create_index("idx_study_pod_members_user", "study_pod_members", ["user_id"])

    op.create_table(
        "pod_messages",
        _id(),
        sa.Column("pod_id", postgresql.UUID(as_uuid=True),
                  sa.ForeignKey("study_pods.id", ondelete="CASCADE"), nullable=False),
        _user_fk("user_id"),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_ai_guided", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("ai_guidance", sa.Text(), nullable=True),
        _timestamp(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_pod_messages_pod", "pod_messages", ["pod_id", "created_at"])

    op.create_table(
        "pod_invitations",
        _id(),
        sa.Column("pod_id", postgresql.UUID(as_uuid=True),
                  sa.ForeignKey("study_pods.id", ondelete="CASCADE"), nullable=False),
        _user_fk("inviter_id"),
        _user_fk("invitee_id"),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        _timestamp(),
        sa.Column("responded_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'declined')", name="ck_pod_invitations_status"
        ),
    )
    op.create_index("idx_pod_invitations_invitee_status", "pod_invitations", ["invitee_id", "status"])
    op.create_index("idx_pod_invitations_pod", "pod_invitations", ["pod_id"])

    # ── Privileged fallbacks ──────────────────────────────────────────────
    op.execute(CREATE_USER_PROFILE)
    op.execute(LINK_CAREGIVER_CHILD)


def downgrade() -> None:
    """WARNING: destructive — every table and all data are dropped."""
    op.execute("DROP FUNCTION IF EXISTS link_caregiver_child(UUID, UUID)")
    op.execute("DROP FUNCTION IF EXISTS create_user_profile(UUID, TEXT, TEXT, TEXT, TEXT, BOOLEAN)")
    for table in (
        "pod_invitations",
        "pod_messages",
        "study_pod_members",
        "study_pods",
        "image_uploads",
        "notes",
        "chat_messages",
        "study_sessions",
        "class_students",
        "classes",
        "caregiver_children",
        "users",
    ):
        op.drop_table(table)
