"""
StudyCare Backend — Teacher Service
=====================================

What:  Class creation with shareable join codes, rosters, and per-student
       activity statistics for a class.
Who:   /api/teacher routes (role teacher).

Class codes:
    6 characters from A-Z0-9, drawn with `secrets`. The unique constraint on
    classes.class_code is the arbiter: a collision rolls back the SAVEPOINT
    and a new code is drawn.

Stats:
    Per student: last session time, chat questions asked, images submitted,
    notes filed under this class. Computed with one grouped query per metric
    and memoized in the TTL cache for `class_stats_cache_ttl` seconds.
"""

import logging
import secrets
import string
import uuid
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from studycare.config import settings
from studycare.exceptions import DatabaseError, NotFoundError
from studycare.models import ChatMessage, ClassStudent, Classroom, ImageUpload, Note, StudySession, User
from studycare.schemas.classroom import ClassOut, ClassStudentOut, StudentActivityStats
from studycare.schemas.common import UserSummary
from studycare.services.cache import TTLCache

logger = logging.getLogger(__name__)

CLASS_CODE_ALPHABET = string.ascii_uppercase + string.digits
CLASS_CODE_LENGTH = 6
MAX_CODE_ATTEMPTS = 5


def generate_class_code() -> str:
    return "".join(secrets.choice(CLASS_CODE_ALPHABET) for _ in range(CLASS_CODE_LENGTH))


class TeacherService:

    async def create_class(
        self, db: AsyncSession, teacher_id: uuid.UUID, name: str, subject: Optional[str] = None
    ) -> ClassOut:
        for attempt in range(1, MAX_CODE_ATTEMPTS + 1):
            classroom = Classroom(
                teacher_id=teacher_id, name=name, subject=subject, class_code=generate_class_code()
            )
            try:
                async with db.begin_nested():
                    db.add(classroom)
                    await db.flush()
            except IntegrityError:
                logger.warning("Class code collision (attempt %d); drawing a new code", attempt)
                continue
            logger.info("Class %s (%s) created by %s", classroom.id, classroom.class_code, teacher_id)
            return ClassOut.model_validate(classroom)

        raise DatabaseError(message="Failed to create class")

    async def get_classes(self, db: AsyncSession, teacher_id: uuid.UUID) -> List[ClassOut]:
        result = await db.execute(
            select(Classroom)
            .where(Classroom.teacher_id == teacher_id)
            .order_by(Classroom.created_at.desc())
        )
        return [ClassOut.model_validate(c) for c in result.scalars().all()]

    async def _owned_class(
        self, db: AsyncSession, teacher_id: uuid.UUID, class_id: uuid.UUID
    ) -> Classroom:
        classroom = await db.get(Classroom, class_id)
        if classroom is None or classroom.teacher_id != teacher_id:
            raise NotFoundError("Class not found or access denied", resource="Class")
        return classroom

    async def get_class_students(
        self, db: AsyncSession, teacher_id: uuid.UUID, class_id: uuid.UUID
    ) -> List[ClassStudentOut]:
        await self._owned_class(db, teacher_id, class_id)
        result = await db.execute(
            select(ClassStudent, User)
            .outerjoin(User, User.id == ClassStudent.student_id)
            .where(ClassStudent.class_id == class_id)
            .order_by(ClassStudent.joined_at.asc())
        )
        return [
            ClassStudentOut(
                id=enrollment.id,
                class_id=enrollment.class_id,
                student_id=enrollment.student_id,
                joined_at=enrollment.joined_at,
                user=UserSummary.model_validate(user) if user is not None else None,
            )
            for enrollment, user in result.all()
        ]

    async def get_class_stats(
        self,
        db: AsyncSession,
        teacher_id: uuid.UUID,
        class_id: uuid.UUID,
        cache: Optional[TTLCache] = None,
    ) -> List[StudentActivityStats]:
        await self._owned_class(db, teacher_id, class_id)

        key = TTLCache.make_key("class-stats", class_id)
        if cache is not None:
            cached = cache.get(key)
            if cached is not None:
                return cached

        students = (
            await db.execute(
                select(User.id, User.full_name, User.email)
                .join(ClassStudent, ClassStudent.student_id == User.id)
                .where(ClassStudent.class_id == class_id)
            )
        ).all()
        student_ids = [s.id for s in students]

        last_active: Dict[uuid.UUID, object] = {}
        questions: Dict[uuid.UUID, int] = {}
        images: Dict[uuid.UUID, int] = {}
        notes: Dict[uuid.UUID, int] = {}
        if student_ids:
            last_active = dict((await db.execute(
                select(StudySession.user_id, func.max(StudySession.created_at))
                .where(StudySession.user_id.in_(student_ids))
                .group_by(StudySession.user_id)
            )).all())
            questions = dict((await db.execute(
                select(ChatMessage.user_id, func.count(ChatMessage.id))
                .join(StudySession, StudySession.id == ChatMessage.session_id)
                .where(
                    ChatMessage.user_id.in_(student_ids),
                    ChatMessage.message_type == "user",
                    StudySession.session_type == "chat",
                )
                .group_by(ChatMessage.user_id)
            )).all())
            images = dict((await db.execute(
                select(ImageUpload.user_id, func.count(ImageUpload.id))
                .where(ImageUpload.user_id.in_(student_ids))
                .group_by(ImageUpload.user_id)
            )).all())
            notes = dict((await db.execute(
                select(Note.user_id, func.count(Note.id))
                .where(Note.user_id.in_(student_ids), Note.class_id == class_id)
                .group_by(Note.user_id)
            )).all())

        stats = [
            StudentActivityStats(
                student_id=s.id,
                student_name=s.full_name,
                student_email=s.email,
                last_active=last_active.get(s.id),
                questions_asked=questions.get(s.id, 0),
                images_submitted=images.get(s.id, 0),
                notes_created=notes.get(s.id, 0),
            )
            for s in students
        ]

        if cache is not None:
            cache.set(key, stats, ttl=settings.class_stats_cache_ttl)
        return stats


teacher_service = TeacherService()
