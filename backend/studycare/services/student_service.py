"""
StudyCare Backend — Student Service
=====================================

What:  Joining a class by code and listing the classes a student is in.
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studycare.database import create_or_fetch
from studycare.exceptions import ConflictError, NotFoundError
from studycare.models import ClassStudent, Classroom, User
from studycare.schemas.classroom import EnrolledClass, Enrollment, TeacherSummary

logger = logging.getLogger(__name__)


def _enrollment(
    enrollment: ClassStudent, classroom: Optional[Classroom], teacher: Optional[User]
) -> Enrollment:
    enrolled_class = None
    if classroom is not None:
        enrolled_class = EnrolledClass.model_validate(classroom)
        if teacher is not None:
            enrolled_class.teacher = TeacherSummary.model_validate(teacher)
    return Enrollment(
        id=enrollment.id,
        class_id=enrollment.class_id,
        student_id=enrollment.student_id,
        joined_at=enrollment.joined_at,
        class_=enrolled_class,
    )


class StudentService:

    async def _get_enrollment(
        self, db: AsyncSession, student_id: uuid.UUID, class_id: uuid.UUID
    ) -> Optional[ClassStudent]:
        return await db.scalar(
            select(ClassStudent).where(
                ClassStudent.class_id == class_id, ClassStudent.student_id == student_id
            )
        )

    async def join_class(
        self, db: AsyncSession, student_id: uuid.UUID, class_code: str
    ) -> Enrollment:
        classroom = await db.scalar(
            select(Classroom).where(Classroom.class_code == class_code.strip().upper())
        )
        if classroom is None:
            raise NotFoundError("Invalid class code", resource="Class")

        if await self._get_enrollment(db, student_id, classroom.id) is not None:
            raise ConflictError("Already joined this class")

        async def fetch() -> Optional[ClassStudent]:
            return await self._get_enrollment(db, student_id, classroom.id)

        async def via_insert() -> ClassStudent:
            enrollment = ClassStudent(class_id=classroom.id, student_id=student_id)
            db.add(enrollment)
            await db.flush()
            return enrollment

        enrollment, created = await create_or_fetch(
            db, [via_insert], fetch, description="class enrollment"
        )
        if not created:
            raise ConflictError("Already joined this class")

        logger.info("Student %s joined class %s", student_id, classroom.id)
        teacher = await db.get(User, classroom.teacher_id)
        return _enrollment(enrollment, classroom, teacher)

    async def get_classes(self, db: AsyncSession, student_id: uuid.UUID) -> List[Enrollment]:
        result = await db.execute(
            select(ClassStudent, Classroom, User)
            .join(Classroom, Classroom.id == ClassStudent.class_id)
            .outerjoin(User, User.id == Classroom.teacher_id)
            .where(ClassStudent.student_id == student_id)
            .order_by(ClassStudent.joined_at.desc())
        )
        return [_enrollment(e, c, t) for e, c, t in result.all()]


student_service = StudentService()
