"""
StudyCare Backend — Study Pod Service Tests
=============================================

Membership rules, message feed, AI guidance (inline and background),
invitations and classmate suggestions, on the SQLite schema.
"""

import uuid

import pytest
import pytest_asyncio
from fastapi import BackgroundTasks
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from studycare.database import Base
from studycare.exceptions import (
    AuthorizationError,
    ConflictError,
    LLMServiceError,
    NotFoundError,
    ValidationError,
)
from studycare.models import (
    ClassStudent,
    Classroom,
    PodInvitation,
    PodMessage,
    StudyPod,
    StudyPodMember,
    User,
)
from studycare.schemas.pod import PodCreate
from studycare.services.pod_service import AI_AUTHOR, PodService, mentions_ai


@pytest.fixture
def service(fake_llm, session_factory):
    return PodService(llm=fake_llm, session_factory=session_factory)


@pytest_asyncio.fixture
async def pod_setup(service, db_session, make_user):
    """An open pod created by `owner`, with `member` joined."""
    owner = await make_user("owner@example.com", full_name="Olive Owner")
    member = await make_user("member@example.com", full_name="Max Member")
    pod = await service.create_pod(db_session, owner, PodCreate(name="  Algebra crew  ", subject="math"))
    await service.join_pod(db_session, member.id, pod.id)
    return owner, member, pod


async def _members(db, pod_id) -> int:
    return await db.scalar(
        select(func.count(StudyPodMember.id)).where(StudyPodMember.pod_id == pod_id)
    )


# ══════════════════════════════════════════════════════════════════════════
# Pods & membership
# ══════════════════════════════════════════════════════════════════════════

class TestPods:

    @pytest.mark.asyncio
    async def test_create_pod_makes_creator_admin(self, service, db_session, make_user):
        owner = await make_user("owner@example.com")

        pod = await service.create_pod(db_session, owner, PodCreate(name="Chem", isPrivate=True))

        assert pod.name == "Chem"
        assert pod.is_private is True
        assert pod.member_count == 1
        assert pod.is_member is True
        membership = await db_session.scalar(select(StudyPodMember).where(StudyPodMember.pod_id == pod.id))
        assert membership.user_id == owner.id
        assert membership.role == "admin"

    @pytest.mark.asyncio
    async def test_name_is_trimmed(self, pod_setup):
        _, _, pod = pod_setup
        assert pod.name == "Algebra crew"

    @pytest.mark.asyncio
    async def test_get_pods_lists_only_memberships(self, service, db_session, pod_setup, make_user):
        owner, member, pod = pod_setup
        outsider = await make_user("out@example.com")

        pods = await service.get_pods(db_session, member.id)

        assert [p.id for p in pods] == [pod.id]
        assert pods[0].member_count == 2
        assert pods[0].creator.email == "owner@example.com"
        assert await service.get_pods(db_session, outsider.id) == []

    @pytest.mark.asyncio
    async def test_get_pod_includes_members_for_members(self, service, db_session, pod_setup):
        owner, member, pod = pod_setup

        detail = await service.get_pod(db_session, member.id, pod.id)

        assert detail.member_count == 2
        assert {m.user_id for m in detail.members} == {owner.id, member.id}
        assert {m.user.full_name for m in detail.members} == {"Olive Owner", "Max Member"}

    @pytest.mark.asyncio
    async def test_get_pod_forbidden_for_outsider(self, service, db_session, pod_setup, make_user):
        _, _, pod = pod_setup
        outsider = await make_user("out@example.com")

        with pytest.raises(AuthorizationError) as exc_info:
            await service.get_pod(db_session, outsider.id, pod.id)
        assert exc_info.value.message == "You do not have access to this pod"

    @pytest.mark.asyncio
    async def test_unknown_pod_is_not_found(self, service, db_session, make_user):
        user = await make_user("u@example.com")
        with pytest.raises(NotFoundError) as exc_info:
            await service.join_pod(db_session, user.id, uuid.uuid4())
        assert exc_info.value.message == "Pod not found"

    @pytest.mark.asyncio
    async def test_join_twice_is_conflict(self, service, db_session, pod_setup):
        _, member, pod = pod_setup
        with pytest.raises(ConflictError) as exc_info:
            await service.join_pod(db_session, member.id, pod.id)
        assert exc_info.value.status_code == 400
        assert await _members(db_session, pod.id) == 2

    @pytest.mark.asyncio
    async def test_private_pod_requires_invitation(self, service, db_session, make_user):
        owner = await make_user("owner@example.com")
        student = await make_user("kid@example.com")
        pod = await service.create_pod(db_session, owner, PodCreate(name="Secret", isPrivate=True))

        with pytest.raises(AuthorizationError) as exc_info:
            await service.join_pod(db_session, student.id, pod.id)
        assert "invitation is required" in exc_info.value.message

        invitation = await service.send_invitation(db_session, owner.id, pod.id, student.id)
        member = await service.join_pod(db_session, student.id, pod.id)

        assert member.role == "member"
        stored = await db_session.get(PodInvitation, invitation.id)
        assert stored.status == "accepted"
        assert stored.responded_at is not None


class TestLeaveAndDelete:

    @pytest.mark.asyncio
    async def test_sole_admin_cannot_leave(self, service, db_session, pod_setup):
        owner, _, pod = pod_setup

        with pytest.raises(ValidationError) as exc_info:
            await service.leave_pod(db_session, owner.id, pod.id)

        assert "only admin" in exc_info.value.message
        assert await _members(db_session, pod.id) == 2

    @pytest.mark.asyncio
    async def test_member_leaves_removing_one_row(self, service, db_session, pod_setup):
        owner, member, pod = pod_setup

        await service.leave_pod(db_session, member.id, pod.id)

        assert await _members(db_session, pod.id) == 1
        assert await service._membership(db_session, pod.id, owner.id) is not None

    @pytest.mark.asyncio
    async def test_admin_leaves_when_another_admin_remains(self, service, db_session, pod_setup):
        owner, member, pod = pod_setup
        membership = await service._membership(db_session, pod.id, member.id)
        membership.role = "admin"
        await db_session.flush()

        await service.leave_pod(db_session, owner.id, pod.id)

        assert await _members(db_session, pod.id) == 1

    @pytest.mark.asyncio
    async def test_leave_without_membership_is_not_found(self, service, db_session, pod_setup, make_user):
        _, _, pod = pod_setup
        outsider = await make_user("out@example.com")
        with pytest.raises(NotFoundError):
            await service.leave_pod(db_session, outsider.id, pod.id)

    @pytest.mark.asyncio
    async def test_member_cannot_delete(self, service, db_session, pod_setup):
        _, member, pod = pod_setup
        with pytest.raises(AuthorizationError) as exc_info:
            await service.delete_pod(db_session, member.id, pod.id)
        assert exc_info.value.message == "Only pod creator or admins can delete pods"

    @pytest.mark.asyncio
    async def test_creator_deletes_pod_and_its_rows(self, service, db_session, pod_setup):
        owner, member, pod = pod_setup
        await service.send_message(db_session, member, pod.id, "hello")

        await service.delete_pod(db_session, owner.id, pod.id)

        assert await db_session.scalar(select(func.count(StudyPod.id))) == 0
        assert await _members(db_session, pod.id) == 0
        assert await db_session.scalar(select(func.count(PodMessage.id))) == 0


# ══════════════════════════════════════════════════════════════════════════
# Messages & AI guidance
# ══════════════════════════════════════════════════════════════════════════

class TestMessages:

    def test_mentions_ai_is_case_insensitive(self):
        assert mentions_ai("hey @StudyCare what is x?")
        assert not mentions_ai("studycare without the at sign")

    @pytest.mark.asyncio
    async def test_non_member_cannot_post(self, service, db_session, pod_setup, make_user):
        _, _, pod = pod_setup
        outsider = await make_user("out@example.com")
        with pytest.raises(AuthorizationError):
            await service.send_message(db_session, outsider, pod.id, "let me in")

    @pytest.mark.asyncio
    async def test_plain_message_schedules_nothing(self, service, db_session, pod_setup):
        _, member, pod = pod_setup
        tasks = BackgroundTasks()

        out = await service.send_message(db_session, member, pod.id, "just chatting", tasks)

        assert out.user.full_name == "Max Member"
        assert tasks.tasks == []

    @pytest.mark.asyncio
    async def test_mention_schedules_ai_help(self, service, db_session, pod_setup):
        _, member, pod = pod_setup
        tasks = BackgroundTasks()

        out = await service.send_message(db_session, member, pod.id, "@studycare explain slopes", tasks)

        assert len(tasks.tasks) == 1
        task = tasks.tasks[0]
        assert task.func == service.run_ai_help
        assert task.args == (pod.id, member.id, out.id)
        assert task.kwargs == {"message_content": "@studycare explain slopes", "author_name": "Max Member"}

    @pytest.mark.asyncio
    async def test_get_messages_oldest_first_within_limit(
        self, service, db_session, pod_setup, timestamps
    ):
        _, member, pod = pod_setup
        for i in range(5):
            db_session.add(PodMessage(pod_id=pod.id, user_id=member.id, content=f"m{i}", created_at=timestamps(i)))
        await db_session.flush()

        messages = await service.get_messages(db_session, member.id, pod.id, limit=3)

        assert [m.content for m in messages] == ["m2", "m3", "m4"]

    @pytest.mark.asyncio
    async def test_ai_help_stores_guided_message(self, service, db_session, pod_setup, fake_llm):
        _, member, pod = pod_setup
        fake_llm.reply = "Slope is rise over run."
        await service.send_message(db_session, member, pod.id, "what is slope?")

        out = await service.get_ai_help(db_session, member.id, pod.id, question="Explain slope")

        assert out.is_ai_guided is True
        assert out.content == out.ai_guidance == "Slope is rise over run."
        assert out.user == AI_AUTHOR
        prompt = fake_llm.calls[0]["messages"][0].content
        assert "Max Member: what is slope?" in prompt
        assert "The group asks: Explain slope" in prompt

    @pytest.mark.asyncio
    async def test_ai_help_failure_is_reported(self, service, db_session, pod_setup, fake_llm, llm_failure):
        _, member, pod = pod_setup
        fake_llm.error = llm_failure

        with pytest.raises(LLMServiceError) as exc_info:
            await service.get_ai_help(db_session, member.id, pod.id)
        assert exc_info.value.message == "Failed to get AI help"

    @pytest.mark.asyncio
    async def test_message_survives_background_ai_failure(
        self, service, db_session, pod_setup, fake_llm, llm_failure
    ):
        _, member, pod = pod_setup
        out = await service.send_message(db_session, member, pod.id, "@studycare help")
        await db_session.commit()
        fake_llm.error = llm_failure

        await service.run_ai_help(pod.id, member.id, out.id)  # must not raise

        contents = [m.content for m in await service.get_messages(db_session, member.id, pod.id)]
        assert contents == ["@studycare help"]

    @pytest.mark.asyncio
    async def test_background_ai_help_posts_guidance(self, service, db_session, pod_setup, fake_llm):
        _, member, pod = pod_setup
        out = await service.send_message(db_session, member, pod.id, "@studycare help")
        await db_session.commit()
        fake_llm.reply = "Try drawing the graph."

        await service.run_ai_help(pod.id, member.id, out.id)

        messages = await service.get_messages(db_session, member.id, pod.id)
        assert messages[-1].is_ai_guided is True
        assert messages[-1].content == "Try drawing the graph."
        assert "Focus on this message: @studycare help" in fake_llm.calls[0]["messages"][0].content


# ══════════════════════════════════════════════════════════════════════════
# Invitations & classmates
# ══════════════════════════════════════════════════════════════════════════

class TestInvitations:

    @pytest.mark.asyncio
    async def test_invite_accept_flow(self, service, db_session, pod_setup, make_user):
        owner, _, pod = pod_setup
        friend = await make_user("friend@example.com")

        sent = await service.send_invitation(db_session, owner.id, pod.id, friend.id)
        pending = await service.get_invitations(db_session, friend.id)
        assert [inv.id for inv in pending] == [sent.id]
        assert pending[0].pod.name == "Algebra crew"

        member = await service.accept_invitation(db_session, friend.id, sent.id)

        assert member.pod_id == pod.id
        assert await service.get_invitations(db_session, friend.id) == []
        assert await _members(db_session, pod.id) == 3

    @pytest.mark.asyncio
    async def test_decline_then_respond_again(self, service, db_session, pod_setup, make_user):
        owner, _, pod = pod_setup
        friend = await make_user("friend@example.com")
        sent = await service.send_invitation(db_session, owner.id, pod.id, friend.id)

        await service.decline_invitation(db_session, friend.id, sent.id)

        with pytest.raises(ValidationError) as exc_info:
            await service.accept_invitation(db_session, friend.id, sent.id)
        assert exc_info.value.message == "Invitation is no longer pending"

    @pytest.mark.asyncio
    async def test_only_admins_invite(self, service, db_session, pod_setup, make_user):
        _, member, pod = pod_setup
        friend = await make_user("friend@example.com")
        with pytest.raises(AuthorizationError) as exc_info:
            await service.send_invitation(db_session, member.id, pod.id, friend.id)
        assert exc_info.value.message == "Only pod admins can send invitations"

    @pytest.mark.asyncio
    async def test_invite_rejections(self, service, db_session, pod_setup, make_user):
        owner, member, pod = pod_setup
        teacher = await make_user("t@example.com", role="teacher")
        friend = await make_user("friend@example.com")

        with pytest.raises(NotFoundError):
            await service.send_invitation(db_session, owner.id, pod.id, uuid.uuid4())
        with pytest.raises(ValidationError):
            await service.send_invitation(db_session, owner.id, pod.id, teacher.id)
        with pytest.raises(ConflictError) as exc_info:
            await service.send_invitation(db_session, owner.id, pod.id, member.id)
        assert exc_info.value.message == "User is already a member of this pod"

        await service.send_invitation(db_session, owner.id, pod.id, friend.id)
        with pytest.raises(ConflictError) as exc_info:
            await service.send_invitation(db_session, owner.id, pod.id, friend.id)
        assert exc_info.value.message == "Invitation already sent"

    @pytest.mark.asyncio
    async def test_someone_elses_invitation_is_not_found(self, service, db_session, pod_setup, make_user):
        owner, member, pod = pod_setup
        friend = await make_user("friend@example.com")
        sent = await service.send_invitation(db_session, owner.id, pod.id, friend.id)

        with pytest.raises(NotFoundError):
            await service.accept_invitation(db_session, member.id, sent.id)

    @pytest.mark.asyncio
    async def test_sent_invitations_for_admins(self, service, db_session, pod_setup, make_user):
        owner, member, pod = pod_setup
        friend = await make_user("friend@example.com", full_name="Fran")
        await service.send_invitation(db_session, owner.id, pod.id, friend.id)

        sent = await service.get_sent_invitations(db_session, owner.id, pod.id)
        assert [inv.invitee.full_name for inv in sent] == ["Fran"]

        with pytest.raises(AuthorizationError):
            await service.get_sent_invitations(db_session, member.id, pod.id)


class TestClassmates:

    @pytest.mark.asyncio
    async def test_classmates_exclude_members_and_invited(self, service, db_session, pod_setup, make_user):
        owner, member, pod = pod_setup
        teacher = await make_user("t@example.com", role="teacher")
        alice = await make_user("alice@example.com", full_name="Alice")
        bob = await make_user("bob@example.com", full_name="Bob")
        await make_user("stranger@example.com", full_name="Stranger")

        classroom = Classroom(teacher_id=teacher.id, name="Math", class_code="MTH001")
        db_session.add(classroom)
        await db_session.flush()
        for student in (owner, member, alice, bob):
            db_session.add(ClassStudent(class_id=classroom.id, student_id=student.id))
        await db_session.flush()

        everyone = await service.get_classmates(db_session, owner.id)
        assert [u.full_name for u in everyone] == ["Alice", "Bob", "Max Member"]

        await service.send_invitation(db_session, owner.id, pod.id, bob.id)
        candidates = await service.get_classmates(db_session, owner.id, pod_id=pod.id)
        assert [u.id for u in candidates] == [alice.id]

    @pytest.mark.asyncio
    async def test_no_classes_no_classmates(self, service, db_session, make_user):
        loner = await make_user("loner@example.com")
        assert await service.get_classmates(db_session, loner.id) == []


# ══════════════════════════════════════════════════════════════════════════
# Background AI help on separate connections
# ══════════════════════════════════════════════════════════════════════════

class TestBackgroundAiHelpSeparateConnections:
    """
    A file-backed database without pooling: the request session and the
    background task each hold their own connection, as in production.
    """

    @pytest_asyncio.fixture
    async def file_factory(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'pods.db'}", poolclass=NullPool)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        await engine.dispose()

    @pytest.mark.asyncio
    async def test_task_sees_triggering_message(self, file_factory, fake_llm):
        service = PodService(llm=fake_llm, session_factory=file_factory)
        async with file_factory() as setup:
            member = User(id=uuid.uuid4(), email="member@example.com", full_name="Max Member")
            pod = StudyPod(name="Bio", created_by=member.id)
            setup.add_all([member, pod])
            await setup.flush()
            setup.add(StudyPodMember(pod_id=pod.id, user_id=member.id, role="admin"))
            await setup.commit()

        tasks = BackgroundTasks()
        async with file_factory() as request_db:
            out = await service.send_message(
                request_db, member, pod.id, "@studycare what is photosynthesis?", tasks
            )
            # Tasks may run before the request session is closed
            await tasks()

        prompt = fake_llm.calls[0]["messages"][0].content
        assert "Max Member: @studycare what is photosynthesis?" in prompt
        assert prompt.count("what is photosynthesis?") == 2

        async with file_factory() as check:
            stored = (
                await check.scalars(select(PodMessage).where(PodMessage.pod_id == pod.id))
            ).all()
        assert {m.id for m in stored if not m.is_ai_guided} == {out.id}
        assert [m.is_ai_guided for m in stored].count(True) == 1
