"""
StudyCare Backend — Caregiver Service
=======================================

What:  Links caregivers to student accounts and reports a linked child's
       study activity.
Why:   A caregiver only knows the child's email. The child may have a
       profile, or only an auth identity whose profile was never written
       (signup raced or failed half-way), so linking has to reconcile both
       stores before the relationship row can exist.

Child Resolution (resolve_child):
    ┌───────────────────┐ found  ┌────────────────┐
    │ students by email │──────▶│  role check    │──▶ child
    └───────────────────┘        └────────────────┘
             │ none                      ▲
             ▼                           │
    ┌───────────────────┐ found  ┌────────────────┐
    │ auth users list   │──────▶│ profile by id, │
    └───────────────────┘        │ else provision │
             │ none              └────────────────┘
             ▼
          404 not found

Link Creation (link_child):
    existing pair → 400; insert, falling back to the link_caregiver_child
    procedure; a duplicate key during either means another request linked
    the pair first → 400 as well.

Activity Report (get_child_activity):
    counts (classes, notes, all sessions), last session time, and a timeline
    built from the 5 newest notes + 5 newest sessions, merged newest-first
    and cut to 10. Older entries of one kind can therefore be missing even
    when the other kind has fewer than 5; this is accepted.
"""

import logging
import uuid
from typing import Iterable, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from studycare.database import create_or_fetch
from studycare.exceptions import (
    AuthorizationError,
    ConflictError,
    DatabaseError,
    NotFoundError,
    ValidationError,
)
from studycare.models import CaregiverChild, ClassStudent, Note, StudySession, User
from studycare.schemas.caregiver import ActivityEntry, CaregiverLink, ChildActivity, ChildSummary
from studycare.services.auth_gateway import SupabaseAuthGateway, auth_gateway
from studycare.services.profile_service import ProfileService, profile_service

logger = logging.getLogger(__name__)

TIMELINE_PER_KIND = 5
TIMELINE_LIMIT = 10

INCOMPLETE_PROFILE_MESSAGE = (
    "Child account exists in authentication but profile is incomplete. "
    "The student needs to complete their registration."
)


def merge_recent_activity(
    notes: Iterable, sessions: Iterable, limit: int = TIMELINE_LIMIT
) -> List[ActivityEntry]:
    """
    Build the activity timeline from note rows (title, created_at) and
    session rows (session_type, subject, created_at), newest first.
    """
    entries = [
        ActivityEntry(type="note", description=f"Created note: {note.title}", created_at=note.created_at)
        for note in notes
    ]
    for session in sessions:
        description = f"{session.session_type} session"
        if session.subject:
            description += f" - {session.subject}"
        entries.append(
            ActivityEntry(type=session.session_type, description=description, created_at=session.created_at)
        )

    entries.sort(key=lambda entry: entry.created_at, reverse=True)
    return entries[:limit]


def _link_result(link: CaregiverChild, child: Optional[User]) -> CaregiverLink:
    return CaregiverLink(
        id=link.id,
        caregiver_id=link.caregiver_id,
        child_id=link.child_id,
        relationship=link.relationship,
        created_at=link.created_at,
        child=ChildSummary.model_validate(child) if child is not None else None,
    )


class CaregiverService:

    def __init__(
        self,
        gateway: Optional[SupabaseAuthGateway] = None,
        profiles: Optional[ProfileService] = None,
    ):
        self.gateway = gateway or auth_gateway
        self.profiles = profiles or profile_service

    async def _get_link(
        self, db: AsyncSession, caregiver_id: uuid.UUID, child_id: uuid.UUID
    ) -> Optional[CaregiverChild]:
        result = await db.execute(
            select(CaregiverChild).where(
                CaregiverChild.caregiver_id == caregiver_id,
                CaregiverChild.child_id == child_id,
            )
        )
        return result.scalar_one_or_none()

    # ══════════════════════════════════════════════════════════════════════
    # Linking
    # ══════════════════════════════════════════════════════════════════════

    async def resolve_child(self, db: AsyncSession, child_email: str) -> User:
        """
        Find the student profile behind an email, provisioning it from the
        auth identity when only the identity exists.

        Raises:
            NotFoundError:   no identity, or the profile could not be provisioned
            ValidationError: the account exists with a non-student role
        """
        email = child_email.strip().lower()

        child = await self.profiles.find_student_by_email(db, email)
        if child is None:
            identity = await self.gateway.find_user_by_email(email)
            if identity is None:
                raise NotFoundError(
                    f'Child account not found. Make sure the email "{child_email.strip()}" '
                    f"is correct and the account is registered as a student.",
                    resource="User",
                )

            child = await self.profiles.get_profile(db, identity.id)
            if child is None:
                logger.info("Identity %s has no profile; provisioning as student", identity.id)
                try:
                    child = await self.profiles.provision_profile(
                        db, identity, role="student", language_preference="en"
                    )
                except DatabaseError:
                    raise NotFoundError(INCOMPLETE_PROFILE_MESSAGE, resource="User")

        if child.role != "student":
            raise ValidationError(
                f"Account found but is registered as {child.role}, not student.",
                field="childEmail",
            )
        return child

    async def link_child(
        self, db: AsyncSession, caregiver_id: uuid.UUID, child_email: str
    ) -> CaregiverLink:
        child = await self.resolve_child(db, child_email)

        if await self._get_link(db, caregiver_id, child.id) is not None:
            raise ConflictError("Child is already linked to this caregiver")

        async def fetch() -> Optional[CaregiverChild]:
            return await self._get_link(db, caregiver_id, child.id)

        async def via_insert() -> Optional[CaregiverChild]:
            link = CaregiverChild(caregiver_id=caregiver_id, child_id=child.id)
            db.add(link)
            await db.flush()
            return link

        async def via_procedure() -> Optional[CaregiverChild]:
            # Returns NULL when the pair already exists (ON CONFLICT DO NOTHING)
            result = await db.execute(select(func.link_caregiver_child(caregiver_id, child.id)))
            if result.scalar_one_or_none() is None:
                return None
            return await fetch()

        try:
            link, created = await create_or_fetch(
                db, [via_insert, via_procedure], fetch, description="caregiver link"
            )
        except DatabaseError:
            raise DatabaseError(message="Failed to link child")

        if not created:
            raise ConflictError("Child is already linked to this caregiver")

        logger.info("Caregiver %s linked to child %s", caregiver_id, child.id)
        return _link_result(link, child)

    async def get_linked_children(
        self, db: AsyncSession, caregiver_id: uuid.UUID
    ) -> List[CaregiverLink]:
        result = await db.execute(
            select(CaregiverChild, User)
            .outerjoin(User, User.id == CaregiverChild.child_id)
            .where(CaregiverChild.caregiver_id == caregiver_id)
            .order_by(CaregiverChild.created_at.desc())
        )
        return [_link_result(link, child) for link, child in result.all()]

    async def unlink_child(
        self, db: AsyncSession, caregiver_id: uuid.UUID, child_id: uuid.UUID
    ) -> None:
        result = await db.execute(
            delete(CaregiverChild).where(
                CaregiverChild.caregiver_id == caregiver_id,
                CaregiverChild.child_id == child_id,
            )
        )
        logger.info(
            "Caregiver %s unlinked child %s (%d rows)", caregiver_id, child_id, result.rowcount
        )

    # ══════════════════════════════════════════════════════════════════════
    # Activity
    # ══════════════════════════════════════════════════════════════════════

    async def get_child_activity(
        self, db: AsyncSession, caregiver_id: uuid.UUID, child_id: uuid.UUID
    ) -> ChildActivity:
        # Link check first: an unlinked pair is 403 whether or not the child exists
        if await self._get_link(db, caregiver_id, child_id) is None:
            raise AuthorizationError("Child not linked to this caregiver")

        child = await self.profiles.get_profile(db, child_id)
        if child is None:
            raise NotFoundError("Child not found", resource="User", resource_id=str(child_id))

        classes_count = await db.scalar(
            select(func.count()).select_from(ClassStudent).where(ClassStudent.student_id == child_id)
        )
        notes_count = await db.scalar(
            select(func.count()).select_from(Note).where(Note.user_id == child_id)
        )
        sessions_count = await db.scalar(
            select(func.count()).select_from(StudySession).where(StudySession.user_id == child_id)
        )

        recent_notes = (
            await db.execute(
                select(Note.title, Note.created_at)
                .where(Note.user_id == child_id)
                .order_by(Note.created_at.desc())
                .limit(TIMELINE_PER_KIND)
            )
        ).all()
        recent_sessions = (
            await db.execute(
                select(StudySession.session_type, StudySession.subject, StudySession.created_at)
                .where(StudySession.user_id == child_id)
                .order_by(StudySession.created_at.desc())
                .limit(TIMELINE_PER_KIND)
            )
        ).all()

        return ChildActivity(
            child_id=child.id,
            child_name=child.full_name,
            child_email=child.email,
            classes_count=classes_count or 0,
            notes_count=notes_count or 0,
            chat_sessions_count=sessions_count or 0,
            last_active=recent_sessions[0].created_at if recent_sessions else None,
            recent_activity=merge_recent_activity(recent_notes, recent_sessions),
        )


caregiver_service = CaregiverService()
