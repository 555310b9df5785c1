"""
StudyCare Backend — Caregiver Service Tests
=============================================

Linking reconciliation and child-activity aggregation against a real
(SQLite) schema with a fake auth provider.

Test Categories:
    1. Child resolution (case-insensitive email, auth-only identities, roles)
    2. Linking (duplicates, races)
    3. Listing and unlinking
    4. Activity (authorization order, counts, timeline)
    5. merge_recent_activity unit tests
"""

import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select

from studycare.exceptions import (
    AuthorizationError,
    ConflictError,
    DatabaseError,
    NotFoundError,
    ValidationError,
)
from studycare.models import CaregiverChild, ClassStudent, Classroom, Note, StudySession, User
from studycare.services.caregiver_service import (
    INCOMPLETE_PROFILE_MESSAGE,
    CaregiverService,
    merge_recent_activity,
)
from studycare.services.auth_gateway import AuthIdentity
from studycare.services.profile_service import ProfileService


@pytest.fixture
def service(fake_gateway):
    return CaregiverService(gateway=fake_gateway, profiles=ProfileService())


async def _link_count(db, caregiver_id) -> int:
    return await db.scalar(
        select(func.count(CaregiverChild.id)).where(CaregiverChild.caregiver_id == caregiver_id)
    )


# ══════════════════════════════════════════════════════════════════════════
# 1. Child resolution
# ══════════════════════════════════════════════════════════════════════════

class TestResolveChild:

    @pytest.mark.asyncio
    async def test_email_match_is_case_insensitive(self, service, db_session, make_user):
        child = await make_user("kid@example.com")
        resolved = await service.resolve_child(db_session, "KID@Example.com")
        assert resolved.id == child.id

    @pytest.mark.asyncio
    async def test_unknown_email_is_not_found(self, service, db_session):
        with pytest.raises(NotFoundError) as exc_info:
            await service.resolve_child(db_session, "nobody@example.com")
        assert "Child account not found" in exc_info.value.message
        assert "nobody@example.com" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_auth_only_identity_is_provisioned_as_student(
        self, service, db_session, fake_gateway
    ):
        identity = fake_gateway.add_identity("newkid@example.com", full_name="New Kid")

        child = await service.resolve_child(db_session, "newkid@example.com")

        assert child.id == identity.id
        assert child.role == "student"
        assert child.full_name == "New Kid"
        assert child.language_preference == "en"

    @pytest.mark.asyncio
    async def test_non_student_account_is_rejected(self, service, db_session, make_user, fake_gateway):
        teacher = await make_user("teach@example.com", role="teacher")
        fake_gateway.identities["teach@example.com"] = AuthIdentity(id=teacher.id, email="teach@example.com")

        with pytest.raises(ValidationError) as exc_info:
            await service.resolve_child(db_session, "teach@example.com")
        assert exc_info.value.message == "Account found but is registered as teacher, not student."

    @pytest.mark.asyncio
    async def test_failed_provisioning_reports_incomplete_profile(self, fake_gateway, db_session):
        fake_gateway.add_identity("ghost@example.com")
        profiles = ProfileService()
        profiles.provision_profile = AsyncMock(side_effect=DatabaseError("boom"))
        service = CaregiverService(gateway=fake_gateway, profiles=profiles)

        with pytest.raises(NotFoundError) as exc_info:
            await service.resolve_child(db_session, "ghost@example.com")
        assert exc_info.value.message == INCOMPLETE_PROFILE_MESSAGE


# ══════════════════════════════════════════════════════════════════════════
# 2. Linking
# ══════════════════════════════════════════════════════════════════════════

class TestLinkChild:

    @pytest.mark.asyncio
    async def test_link_existing_student(self, service, db_session, make_user):
        caregiver = await make_user("parent@example.com", role="caregiver")
        child = await make_user("kid@example.com", full_name="Kid")

        link = await service.link_child(db_session, caregiver.id, "kid@example.com")

        assert link.caregiver_id == caregiver.id
        assert link.child_id == child.id
        assert link.child.full_name == "Kid"
        assert await _link_count(db_session, caregiver.id) == 1

    @pytest.mark.asyncio
    async def test_link_auth_only_child(self, service, db_session, make_user, fake_gateway):
        caregiver = await make_user("parent@example.com", role="caregiver")
        identity = fake_gateway.add_identity("kid@example.com")

        link = await service.link_child(db_session, caregiver.id, "kid@example.com")

        assert link.child_id == identity.id
        assert await db_session.get(User, identity.id) is not None

    @pytest.mark.asyncio
    async def test_repeated_link_is_rejected(self, service, db_session, make_user):
        caregiver = await make_user("parent@example.com", role="caregiver")
        await make_user("kid@example.com")
        await service.link_child(db_session, caregiver.id, "kid@example.com")

        with pytest.raises(ConflictError) as exc_info:
            await service.link_child(db_session, caregiver.id, "KID@example.com")

        assert exc_info.value.status_code == 400
        assert "already linked" in exc_info.value.message
        assert await _link_count(db_session, caregiver.id) == 1

    @pytest.mark.asyncio
    async def test_racing_links_create_exactly_one_row(
        self, service, db_session, make_user, fake_gateway, monkeypatch
    ):
        """
        Two calls pass the pre-check before either inserts; the loser hits the
        unique constraint and reports "already linked" instead of a 500.
        """
        caregiver = await make_user("parent@example.com", role="caregiver")
        fake_gateway.add_identity("kid@example.com")

        first = await service.link_child(db_session, caregiver.id, "kid@example.com")

        real_get_link = service._get_link
        calls = {"n": 0}

        async def blind_precheck(db, caregiver_id, child_id):
            calls["n"] += 1
            if calls["n"] == 1:
                return None  # the pre-check ran before the other call committed
            return await real_get_link(db, caregiver_id, child_id)

        monkeypatch.setattr(service, "_get_link", blind_precheck)

        with pytest.raises(ConflictError):
            await service.link_child(db_session, caregiver.id, "kid@example.com")

        assert await _link_count(db_session, caregiver.id) == 1
        link = await db_session.scalar(select(CaregiverChild))
        assert link.id == first.id

    @pytest.mark.asyncio
    async def test_link_rejects_teacher_account(self, service, db_session, make_user, fake_gateway):
        caregiver = await make_user("parent@example.com", role="caregiver")
        teacher = await make_user("teach@example.com", role="teacher")
        fake_gateway.identities["teach@example.com"] = AuthIdentity(id=teacher.id, email="teach@example.com")

        with pytest.raises(ValidationError):
            await service.link_child(db_session, caregiver.id, "teach@example.com")
        assert await _link_count(db_session, caregiver.id) == 0


# ══════════════════════════════════════════════════════════════════════════
# 3. Listing and unlinking
# ══════════════════════════════════════════════════════════════════════════

class TestLinkedChildren:

    @pytest.mark.asyncio
    async def test_list_newest_first(self, service, db_session, make_user, timestamps):
        caregiver = await make_user("parent@example.com", role="caregiver")
        older = await make_user("a@example.com")
        newer = await make_user("b@example.com")
        db_session.add_all([
            CaregiverChild(caregiver_id=caregiver.id, child_id=older.id, created_at=timestamps(0)),
            CaregiverChild(caregiver_id=caregiver.id, child_id=newer.id, created_at=timestamps(5)),
        ])
        await db_session.flush()

        children = await service.get_linked_children(db_session, caregiver.id)

        assert [c.child_id for c in children] == [newer.id, older.id]
        assert children[0].child.email == "b@example.com"

    @pytest.mark.asyncio
    async def test_unlink_then_list_excludes_child(self, service, db_session, make_user):
        caregiver = await make_user("parent@example.com", role="caregiver")
        child = await make_user("kid@example.com")
        other = await make_user("sibling@example.com")
        await service.link_child(db_session, caregiver.id, "kid@example.com")
        await service.link_child(db_session, caregiver.id, "sibling@example.com")

        await service.unlink_child(db_session, caregiver.id, child.id)

        children = await service.get_linked_children(db_session, caregiver.id)
        assert [c.child_id for c in children] == [other.id]

    @pytest.mark.asyncio
    async def test_unlink_missing_link_is_silent(self, service, db_session, make_user):
        caregiver = await make_user("parent@example.com", role="caregiver")
        await service.unlink_child(db_session, caregiver.id, uuid.uuid4())
        assert await service.get_linked_children(db_session, caregiver.id) == []


# ══════════════════════════════════════════════════════════════════════════
# 4. Activity
# ══════════════════════════════════════════════════════════════════════════

class TestChildActivity:

    @pytest.mark.asyncio
    async def test_unlinked_existing_child_is_forbidden(self, service, db_session, make_user):
        caregiver = await make_user("parent@example.com", role="caregiver")
        child = await make_user("kid@example.com")

        with pytest.raises(AuthorizationError) as exc_info:
            await service.get_child_activity(db_session, caregiver.id, child.id)
        assert exc_info.value.message == "Child not linked to this caregiver"

    @pytest.mark.asyncio
    async def test_unlinked_missing_child_is_forbidden_not_404(self, service, db_session, make_user):
        caregiver = await make_user("parent@example.com", role="caregiver")

        with pytest.raises(AuthorizationError):
            await service.get_child_activity(db_session, caregiver.id, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_linked_child_without_profile_is_not_found(self, service, db_session, make_user):
        caregiver = await make_user("parent@example.com", role="caregiver")
        ghost_id = uuid.uuid4()
        db_session.add(CaregiverChild(caregiver_id=caregiver.id, child_id=ghost_id))
        await db_session.flush()

        with pytest.raises(NotFoundError) as exc_info:
            await service.get_child_activity(db_session, caregiver.id, ghost_id)
        assert exc_info.value.message == "Child not found"

    @pytest.mark.asyncio
    async def test_counts_and_timeline(self, service, db_session, make_user, timestamps):
        """6 notes + 7 sessions → notes_count=6, chat_sessions_count=7, 10 entries newest-first."""
        caregiver = await make_user("parent@example.com", role="caregiver")
        child = await make_user("kid@example.com", full_name="Kid")
        teacher = await make_user("teach@example.com", role="teacher")
        await service.link_child(db_session, caregiver.id, "kid@example.com")

        classroom = Classroom(teacher_id=teacher.id, name="Algebra", class_code="ABC123")
        db_session.add(classroom)
        await db_session.flush()
        db_session.add(ClassStudent(class_id=classroom.id, student_id=child.id))

        for i in range(6):
            db_session.add(Note(user_id=child.id, title=f"Note {i}", content="...", created_at=timestamps(2 * i)))
        for i in range(7):
            db_session.add(
                StudySession(
                    user_id=child.id,
                    session_type="chat" if i % 2 else "image",
                    subject="math" if i == 6 else None,
                    created_at=timestamps(2 * i + 1),
                )
            )
        await db_session.flush()

        activity = await service.get_child_activity(db_session, caregiver.id, child.id)

        assert activity.child_name == "Kid"
        assert activity.classes_count == 1
        assert activity.notes_count == 6
        assert activity.chat_sessions_count == 7
        assert len(activity.recent_activity) == 10

        times = [entry.created_at for entry in activity.recent_activity]
        assert times == sorted(times, reverse=True)

        newest = activity.recent_activity[0]
        assert newest.type == "image"
        assert newest.description == "image session - math"
        assert activity.recent_activity[1].description == "chat session"
        assert activity.recent_activity[2].description == "Created note: Note 5"
        assert activity.last_active.replace(tzinfo=None) == timestamps(13).replace(tzinfo=None)

    @pytest.mark.asyncio
    async def test_idle_child(self, service, db_session, make_user):
        caregiver = await make_user("parent@example.com", role="caregiver")
        child = await make_user("kid@example.com")
        await service.link_child(db_session, caregiver.id, "kid@example.com")

        activity = await service.get_child_activity(db_session, caregiver.id, child.id)

        assert activity.notes_count == 0
        assert activity.chat_sessions_count == 0
        assert activity.last_active is None
        assert activity.recent_activity == []


# ══════════════════════════════════════════════════════════════════════════
# 5. Timeline merge
# ══════════════════════════════════════════════════════════════════════════

class TestMergeRecentActivity:

    def _at(self, minute):
        return datetime(2026, 3, 1, tzinfo=timezone.utc) + timedelta(minutes=minute)

    def test_interleaves_newest_first(self):
        notes = [SimpleNamespace(title="B", created_at=self._at(3)), SimpleNamespace(title="A", created_at=self._at(1))]
        sessions = [SimpleNamespace(session_type="voice", subject=None, created_at=self._at(2))]

        entries = merge_recent_activity(notes, sessions)

        assert [e.description for e in entries] == ["Created note: B", "voice session", "Created note: A"]
        assert [e.type for e in entries] == ["note", "voice", "note"]

    def test_caps_at_limit(self):
        notes = [SimpleNamespace(title=str(i), created_at=self._at(i)) for i in range(8)]
        sessions = [SimpleNamespace(session_type="chat", subject="science", created_at=self._at(100 + i)) for i in range(8)]

        entries = merge_recent_activity(notes, sessions, limit=10)

        assert len(entries) == 10
        assert all(e.type == "chat" for e in entries[:8])
        assert entries[0].description == "chat session - science"

    def test_empty(self):
        assert merge_recent_activity([], []) == []
