"""
StudyCare Backend — Study Pod Service
=======================================

What:  Group study "pods": creation, membership, a shared message feed with
       on-demand AI guidance, and student invitations.
Who:   /api/pods routes (any role).

Membership rules:
    - the creator joins as admin when the pod is created
    - a pod always keeps at least one admin: the sole admin cannot leave
    - private pods are joined through an invitation only
    - posting and reading messages requires membership

AI guidance:
    A message mentioning "@studycare" schedules get_ai_help as a FastAPI
    background task. The task opens its own database session (the request's
    session is closed by then) and logs failures instead of raising them, so
    the member's message is stored whether or not guidance arrives.

        send_message ──▶ commit message ──▶ response
              │
              └─(background)─▶ last 10 non-AI messages ─▶ LLM ─▶ AI message

    The AI message is stored under the requesting member's id with
    is_ai_guided=True and content == ai_guidance; readers see it authored by
    the synthetic "StudyCare AI" user.

Creation is two inserts (pod, admin membership) without a surrounding
transaction of their own: they share the request transaction, so a failure
of the second rolls both back when the request fails.
"""

import logging
import uuid
from typing import Callable, Dict, List, Optional

from fastapi import BackgroundTasks
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from studycare.database import async_session_factory, create_or_fetch
from studycare.exceptions import (
    AuthorizationError,
    ConflictError,
    LLMServiceError,
    NotFoundError,
    StudyCareError,
    ValidationError,
)
from studycare.models import (
    ClassStudent,
    PodInvitation,
    PodMessage,
    StudyPod,
    StudyPodMember,
    User,
)
from studycare.models.common import utcnow
from studycare.schemas.common import UserSummary
from studycare.schemas.pod import (
    InvitationOut,
    MessageAuthor,
    PodBrief,
    PodCreate,
    PodMemberOut,
    PodMessageOut,
    PodOut,
)
from studycare.services.gemini_service import gemini_service
from studycare.services.llm_base import ChatOptions, ChatTurn, LLMService

logger = logging.getLogger(__name__)

AI_MENTION = "@studycare"
AI_AUTHOR = MessageAuthor(id="ai", email="studycare@ai", full_name="StudyCare AI")
AI_CONTEXT_MESSAGES = 10
MESSAGE_LIMIT = 50

AI_HELP_PROMPT = """You are StudyCare AI, an AI study guide helping a study group. The group has been discussing:

{conversation}

{focus}Provide helpful guidance, clarification, or study tips related to their discussion. Keep it concise (2-3 sentences) and educational. Be friendly and supportive."""


def mentions_ai(content: str) -> bool:
    return AI_MENTION in content.lower()


def _summary(user: Optional[User]) -> Optional[UserSummary]:
    return UserSummary.model_validate(user) if user is not None else None


def _message_out(message: PodMessage, author: Optional[User]) -> PodMessageOut:
    if message.is_ai_guided:
        user = AI_AUTHOR
    elif author is not None:
        user = MessageAuthor(id=str(author.id), email=author.email, full_name=author.full_name)
    else:
        user = None
    return PodMessageOut(
        id=message.id,
        pod_id=message.pod_id,
        user_id=message.user_id,
        content=message.content,
        is_ai_guided=message.is_ai_guided,
        ai_guidance=message.ai_guidance,
        created_at=message.created_at,
        user=user,
    )


class PodService:

    def __init__(
        self,
        llm: Optional[LLMService] = None,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
    ):
        self.llm = llm or gemini_service
        self.session_factory = session_factory or async_session_factory

    # ── Lookups ───────────────────────────────────────────────────────────

    async def _get_pod(self, db: AsyncSession, pod_id: uuid.UUID) -> StudyPod:
        pod = await db.get(StudyPod, pod_id)
        if pod is None:
            raise NotFoundError("Pod not found", resource="Pod", resource_id=str(pod_id))
        return pod

    async def _membership(
        self, db: AsyncSession, pod_id: uuid.UUID, user_id: uuid.UUID
    ) -> Optional[StudyPodMember]:
        return await db.scalar(
            select(StudyPodMember).where(
                StudyPodMember.pod_id == pod_id, StudyPodMember.user_id == user_id
            )
        )

    async def _require_member(
        self, db: AsyncSession, pod_id: uuid.UUID, user_id: uuid.UUID
    ) -> StudyPodMember:
        membership = await self._membership(db, pod_id, user_id)
        if membership is None:
            raise AuthorizationError("Not a member of this pod")
        return membership

    async def _require_admin(
        self, db: AsyncSession, pod: StudyPod, user_id: uuid.UUID, message: str
    ) -> None:
        if pod.created_by == user_id:
            return
        membership = await self._membership(db, pod.id, user_id)
        if membership is None or membership.role != "admin":
            raise AuthorizationError(message)

    async def _member_counts(
        self, db: AsyncSession, pod_ids: List[uuid.UUID]
    ) -> Dict[uuid.UUID, int]:
        if not pod_ids:
            return {}
        result = await db.execute(
            select(StudyPodMember.pod_id, func.count(StudyPodMember.id))
            .where(StudyPodMember.pod_id.in_(pod_ids))
            .group_by(StudyPodMember.pod_id)
        )
        return dict(result.all())

    # ══════════════════════════════════════════════════════════════════════
    # Pods & membership
    # ══════════════════════════════════════════════════════════════════════

    async def create_pod(self, db: AsyncSession, user: User, data: PodCreate) -> PodOut:
        pod = StudyPod(
            name=data.name,
            description=data.description,
            subject=data.subject,
            created_by=user.id,
            is_private=data.is_private,
        )
        db.add(pod)
        await db.flush()

        db.add(StudyPodMember(pod_id=pod.id, user_id=user.id, role="admin"))
        await db.flush()

        logger.info("Pod %s created by %s", pod.id, user.id)
        out = PodOut.model_validate(pod)
        out.member_count = 1
        out.is_member = True
        out.creator = _summary(user)
        return out

    async def get_pods(self, db: AsyncSession, user_id: uuid.UUID) -> List[PodOut]:
        """Pods the user belongs to, newest first."""
        result = await db.execute(
            select(StudyPod, User)
            .join(StudyPodMember, StudyPodMember.pod_id == StudyPod.id)
            .outerjoin(User, User.id == StudyPod.created_by)
            .where(StudyPodMember.user_id == user_id)
            .order_by(StudyPod.created_at.desc())
        )
        rows = result.all()
        counts = await self._member_counts(db, [pod.id for pod, _ in rows])

        pods = []
        for pod, creator in rows:
            out = PodOut.model_validate(pod)
            out.member_count = counts.get(pod.id, 0)
            out.is_member = True
            out.creator = _summary(creator)
            pods.append(out)
        return pods

    async def get_pod(self, db: AsyncSession, user_id: uuid.UUID, pod_id: uuid.UUID) -> PodOut:
        pod = await self._get_pod(db, pod_id)
        membership = await self._membership(db, pod_id, user_id)
        if membership is None and pod.created_by != user_id:
            raise AuthorizationError("You do not have access to this pod")

        out = PodOut.model_validate(pod)
        out.member_count = (await self._member_counts(db, [pod.id])).get(pod.id, 0)
        out.is_member = membership is not None
        out.creator = _summary(await db.get(User, pod.created_by))

        if membership is not None:
            result = await db.execute(
                select(StudyPodMember, User)
                .outerjoin(User, User.id == StudyPodMember.user_id)
                .where(StudyPodMember.pod_id == pod_id)
                .order_by(StudyPodMember.joined_at.asc())
            )
            for member, member_user in result.all():
                member_out = PodMemberOut.model_validate(member)
                member_out.user = _summary(member_user)
                out.members.append(member_out)
        return out

    async def _add_member(
        self, db: AsyncSession, pod_id: uuid.UUID, user_id: uuid.UUID, role: str = "member"
    ) -> StudyPodMember:
        async def fetch() -> Optional[StudyPodMember]:
            return await self._membership(db, pod_id, user_id)

        async def via_insert() -> StudyPodMember:
            member = StudyPodMember(pod_id=pod_id, user_id=user_id, role=role)
            db.add(member)
            await db.flush()
            return member

        member, created = await create_or_fetch(db, [via_insert], fetch, description="pod membership")
        if not created:
            raise ConflictError("Already a member of this pod")
        return member

    async def _pending_invitation(
        self, db: AsyncSession, pod_id: uuid.UUID, invitee_id: uuid.UUID
    ) -> Optional[PodInvitation]:
        return await db.scalar(
            select(PodInvitation).where(
                PodInvitation.pod_id == pod_id,
                PodInvitation.invitee_id == invitee_id,
                PodInvitation.status == "pending",
            )
        )

    async def join_pod(self, db: AsyncSession, user_id: uuid.UUID, pod_id: uuid.UUID) -> PodMemberOut:
        pod = await self._get_pod(db, pod_id)
        if await self._membership(db, pod_id, user_id) is not None:
            raise ConflictError("Already a member of this pod")

        invitation = await self._pending_invitation(db, pod_id, user_id)
        if pod.is_private and invitation is None:
            raise AuthorizationError("This pod is private. An invitation is required to join.")

        member = await self._add_member(db, pod_id, user_id)
        if invitation is not None:
            invitation.status = "accepted"
            invitation.responded_at = utcnow()
            await db.flush()

        logger.info("User %s joined pod %s", user_id, pod_id)
        return PodMemberOut.model_validate(member)

    async def leave_pod(self, db: AsyncSession, user_id: uuid.UUID, pod_id: uuid.UUID) -> None:
        membership = await self._membership(db, pod_id, user_id)
        if membership is None:
            raise NotFoundError("Not a member of this pod", resource="Membership")

        if membership.role == "admin":
            admin_count = await db.scalar(
                select(func.count(StudyPodMember.id)).where(
                    StudyPodMember.pod_id == pod_id, StudyPodMember.role == "admin"
                )
            )
            if (admin_count or 0) <= 1:
                raise ValidationError(
                    "Cannot leave pod as the only admin. Transfer admin role first or delete the pod."
                )

        await db.execute(delete(StudyPodMember).where(StudyPodMember.id == membership.id))
        logger.info("User %s left pod %s", user_id, pod_id)

    async def delete_pod(self, db: AsyncSession, user_id: uuid.UUID, pod_id: uuid.UUID) -> None:
        pod = await self._get_pod(db, pod_id)
        await self._require_admin(db, pod, user_id, "Only pod creator or admins can delete pods")

        await db.execute(delete(PodMessage).where(PodMessage.pod_id == pod_id))
        await db.execute(delete(PodInvitation).where(PodInvitation.pod_id == pod_id))
        await db.execute(delete(StudyPodMember).where(StudyPodMember.pod_id == pod_id))
        await db.execute(delete(StudyPod).where(StudyPod.id == pod_id))
        logger.info("Pod %s deleted by %s", pod_id, user_id)

    # ══════════════════════════════════════════════════════════════════════
    # Messages & AI guidance
    # ══════════════════════════════════════════════════════════════════════

    async def send_message(
        self,
        db: AsyncSession,
        user: User,
        pod_id: uuid.UUID,
        content: str,
        background_tasks: Optional[BackgroundTasks] = None,
    ) -> PodMessageOut:
        await self._get_pod(db, pod_id)
        await self._require_member(db, pod_id, user.id)

        message = PodMessage(pod_id=pod_id, user_id=user.id, content=content)
        db.add(message)
        await db.flush()

        if background_tasks is not None and mentions_ai(content):
            # The task reads through its own session and may run before the
            # request session's dependency exits
            await db.commit()
            background_tasks.add_task(
                self.run_ai_help,
                pod_id,
                user.id,
                message.id,
                message_content=content,
                author_name=user.full_name,
            )
            logger.info("AI help scheduled for pod %s (message %s)", pod_id, message.id)

        return _message_out(message, user)

    async def get_messages(
        self, db: AsyncSession, user_id: uuid.UUID, pod_id: uuid.UUID, limit: int = MESSAGE_LIMIT
    ) -> List[PodMessageOut]:
        """The newest `limit` messages, oldest first."""
        await self._require_member(db, pod_id, user_id)
        result = await db.execute(
            select(PodMessage, User)
            .outerjoin(User, User.id == PodMessage.user_id)
            .where(PodMessage.pod_id == pod_id)
            .order_by(PodMessage.created_at.desc())
            .limit(limit)
        )
        return [_message_out(message, author) for message, author in reversed(result.all())]

    async def get_ai_help(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        pod_id: uuid.UUID,
        message_id: Optional[uuid.UUID] = None,
        question: Optional[str] = None,
        message_content: Optional[str] = None,
        author_name: Optional[str] = None,
    ) -> PodMessageOut:
        """
        Ask the LLM for guidance on the recent discussion and store it as an
        AI-guided message.

        `message_content` is the text of `message_id` as the caller saw it;
        it is added to the conversation when the query does not return it.

        Raises:
            AuthorizationError if the requester is not a member.
            LLMServiceError("Failed to get AI help") if the model call fails.
        """
        await self._require_member(db, pod_id, user_id)

        result = await db.execute(
            select(PodMessage, User)
            .outerjoin(User, User.id == PodMessage.user_id)
            .where(PodMessage.pod_id == pod_id, PodMessage.is_ai_guided.is_(False))
            .order_by(PodMessage.created_at.desc())
            .limit(AI_CONTEXT_MESSAGES)
        )
        rows = list(reversed(result.all()))
        lines = [
            f"{(author.full_name if author and author.full_name else 'User')}: {message.content}"
            for message, author in rows
        ]
        if message_content and all(m.id != message_id for m, _ in rows):
            lines.append(f"{author_name or 'User'}: {message_content}")
        conversation = "\n".join(lines)

        focus_text = message_content
        if message_id is not None and focus_text is None:
            target = next((m for m, _ in rows if m.id == message_id), None)
            if target is None:
                target = await db.get(PodMessage, message_id)
            if target is not None and target.pod_id == pod_id:
                focus_text = target.content
        focus = f"Focus on this message: {focus_text}\n\n" if focus_text else ""
        if question:
            focus += f"The group asks: {question}\n\n"

        try:
            guidance = await self.llm.chat_completion(
                [ChatTurn(role="user", content=AI_HELP_PROMPT.format(conversation=conversation, focus=focus))],
                ChatOptions(step_by_step=False),
            )
        except StudyCareError as e:
            logger.error("AI help for pod %s failed: %s", pod_id, e.message)
            raise LLMServiceError(message="Failed to get AI help", context=e.context)

        ai_message = PodMessage(
            pod_id=pod_id,
            user_id=user_id,
            content=guidance,
            is_ai_guided=True,
            ai_guidance=guidance,
        )
        db.add(ai_message)
        await db.flush()
        logger.info("AI guidance %s posted to pod %s", ai_message.id, pod_id)
        return _message_out(ai_message, None)

    async def run_ai_help(
        self,
        pod_id: uuid.UUID,
        user_id: uuid.UUID,
        message_id: Optional[uuid.UUID] = None,
        message_content: Optional[str] = None,
        author_name: Optional[str] = None,
    ) -> None:
        """Background-task entry point: own session, failures logged and dropped."""
        try:
            async with self.session_factory() as db:
                await self.get_ai_help(
                    db,
                    user_id,
                    pod_id,
                    message_id=message_id,
                    message_content=message_content,
                    author_name=author_name,
                )
                await db.commit()
        except Exception as e:
            logger.error(
                "Background AI help for pod %s failed: %s", pod_id, str(e), exc_info=True
            )

    # ══════════════════════════════════════════════════════════════════════
    # Invitations
    # ══════════════════════════════════════════════════════════════════════

    async def send_invitation(
        self, db: AsyncSession, inviter_id: uuid.UUID, pod_id: uuid.UUID, invitee_id: uuid.UUID
    ) -> InvitationOut:
        pod = await self._get_pod(db, pod_id)
        await self._require_admin(db, pod, inviter_id, "Only pod admins can send invitations")

        invitee = await db.get(User, invitee_id)
        if invitee is None:
            raise NotFoundError("User not found", resource="User", resource_id=str(invitee_id))
        if invitee.role != "student":
            raise ValidationError("Can only invite students", field="userId")
        if await self._membership(db, pod_id, invitee_id) is not None:
            raise ConflictError("User is already a member of this pod")
        if await self._pending_invitation(db, pod_id, invitee_id) is not None:
            raise ConflictError("Invitation already sent")

        invitation = PodInvitation(
            pod_id=pod_id, inviter_id=inviter_id, invitee_id=invitee_id, status="pending"
        )
        db.add(invitation)
        await db.flush()
        logger.info("Invitation %s: pod %s → user %s", invitation.id, pod_id, invitee_id)

        return InvitationOut(
            id=invitation.id,
            pod_id=pod_id,
            inviter_id=inviter_id,
            invitee_id=invitee_id,
            status=invitation.status,
            created_at=invitation.created_at,
            pod=PodBrief.model_validate(pod),
            invitee=_summary(invitee),
        )

    async def get_invitations(self, db: AsyncSession, user_id: uuid.UUID) -> List[InvitationOut]:
        """Pending invitations addressed to the user, newest first."""
        result = await db.execute(
            select(PodInvitation, StudyPod, User)
            .join(StudyPod, StudyPod.id == PodInvitation.pod_id)
            .outerjoin(User, User.id == PodInvitation.inviter_id)
            .where(PodInvitation.invitee_id == user_id, PodInvitation.status == "pending")
            .order_by(PodInvitation.created_at.desc())
        )
        return [
            InvitationOut(
                id=inv.id,
                pod_id=inv.pod_id,
                inviter_id=inv.inviter_id,
                invitee_id=inv.invitee_id,
                status=inv.status,
                created_at=inv.created_at,
                responded_at=inv.responded_at,
                pod=PodBrief.model_validate(pod),
                inviter=_summary(inviter),
            )
            for inv, pod, inviter in result.all()
        ]

    async def _respond(
        self, db: AsyncSession, user_id: uuid.UUID, invitation_id: uuid.UUID
    ) -> PodInvitation:
        invitation = await db.scalar(
            select(PodInvitation).where(
                PodInvitation.id == invitation_id, PodInvitation.invitee_id == user_id
            )
        )
        if invitation is None:
            raise NotFoundError("Invitation not found", resource="Invitation")
        if invitation.status != "pending":
            raise ValidationError("Invitation is no longer pending")
        return invitation

    async def accept_invitation(
        self, db: AsyncSession, user_id: uuid.UUID, invitation_id: uuid.UUID
    ) -> PodMemberOut:
        invitation = await self._respond(db, user_id, invitation_id)
        member = await self._add_member(db, invitation.pod_id, user_id)
        invitation.status = "accepted"
        invitation.responded_at = utcnow()
        await db.flush()
        logger.info("User %s accepted invitation %s", user_id, invitation_id)
        return PodMemberOut.model_validate(member)

    async def decline_invitation(
        self, db: AsyncSession, user_id: uuid.UUID, invitation_id: uuid.UUID
    ) -> None:
        invitation = await self._respond(db, user_id, invitation_id)
        invitation.status = "declined"
        invitation.responded_at = utcnow()
        await db.flush()

    async def get_sent_invitations(
        self, db: AsyncSession, user_id: uuid.UUID, pod_id: uuid.UUID
    ) -> List[InvitationOut]:
        pod = await self._get_pod(db, pod_id)
        await self._require_admin(db, pod, user_id, "Only pod admins can view sent invitations")

        result = await db.execute(
            select(PodInvitation, User)
            .outerjoin(User, User.id == PodInvitation.invitee_id)
            .where(PodInvitation.pod_id == pod_id)
            .order_by(PodInvitation.created_at.desc())
        )
        return [
            InvitationOut(
                id=inv.id,
                pod_id=inv.pod_id,
                inviter_id=inv.inviter_id,
                invitee_id=inv.invitee_id,
                status=inv.status,
                created_at=inv.created_at,
                responded_at=inv.responded_at,
                invitee=_summary(invitee),
            )
            for inv, invitee in result.all()
        ]

    async def get_classmates(
        self, db: AsyncSession, user_id: uuid.UUID, pod_id: Optional[uuid.UUID] = None
    ) -> List[UserSummary]:
        """
        Students sharing at least one class with the user. With a pod, existing
        members and students with a pending invitation are left out.
        """
        my_classes = select(ClassStudent.class_id).where(ClassStudent.student_id == user_id)
        query = (
            select(User)
            .join(ClassStudent, ClassStudent.student_id == User.id)
            .where(
                ClassStudent.class_id.in_(my_classes),
                User.id != user_id,
                User.role == "student",
            )
            .distinct()
        )
        if pod_id is not None:
            members = select(StudyPodMember.user_id).where(StudyPodMember.pod_id == pod_id)
            invited = select(PodInvitation.invitee_id).where(
                PodInvitation.pod_id == pod_id, PodInvitation.status == "pending"
            )
            query = query.where(User.id.not_in(members), User.id.not_in(invited))

        users = (await db.execute(query)).scalars().all()
        users = sorted(users, key=lambda u: ((u.full_name or u.email or "").lower(), u.email.lower()))
        return [UserSummary.model_validate(u) for u in users]


pod_service = PodService()
