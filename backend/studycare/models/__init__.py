"""
StudyCare Backend — ORM Models
================================

Importing this package registers every table on `Base.metadata`
(used by Alembic autogenerate and by the test suite's create_all).

Relationships are intentionally not declared: services issue explicit
joins, which keeps every query visible and avoids implicit lazy loads
(lazy loading is not available on AsyncSession).
"""

from studycare.models.user import User, CaregiverChild
from studycare.models.classroom import Classroom, ClassStudent
from studycare.models.session import StudySession, ChatMessage
from studycare.models.note import Note
from studycare.models.image import ImageUpload
from studycare.models.pod import StudyPod, StudyPodMember, PodMessage, PodInvitation

__all__ = [
    "User",
    "CaregiverChild",
    "Classroom",
    "ClassStudent",
    "StudySession",
    "ChatMessage",
    "Note",
    "ImageUpload",
    "StudyPod",
    "StudyPodMember",
    "PodMessage",
    "PodInvitation",
]
