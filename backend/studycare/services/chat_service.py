"""
StudyCare Backend — Chat Service
==================================

What:  Tutoring chat sessions plus the transcript helpers every AI feature
       shares (create session, save a turn, load recent turns).
How:   Each user message is saved, sent to the LLM together with the last
       turns of the session, and the cleaned reply is saved as an
       assistant turn.

send_message Flow:
    session owned by user? ──no──▶ 404 "Session not found"
        │
        ▼
    load last 10 turns → detect subject (keywords) → persist subject
        │
        ▼
    save user turn → chat_completion(history + message) → save assistant turn
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studycare.exceptions import NotFoundError
from studycare.models import ChatMessage, StudySession, User
from studycare.schemas.chat import (
    ChatMessageOut,
    SendMessageRequest,
    SendMessageResult,
    SessionWithMessages,
    StudySessionOut,
)
from studycare.services.gemini_service import gemini_service
from studycare.services.llm_base import ChatOptions, ChatTurn, LLMService
from studycare.services.prompts import detect_subject

logger = logging.getLogger(__name__)

HISTORY_TURNS = 10
MESSAGE_HISTORY_LIMIT = 50


# ── Transcript helpers ────────────────────────────────────────────────────

async def create_session(
    db: AsyncSession, user_id: uuid.UUID, session_type: str, subject: Optional[str] = None
) -> StudySession:
    session = StudySession(user_id=user_id, session_type=session_type, subject=subject)
    db.add(session)
    await db.flush()
    return session


async def find_session(
    db: AsyncSession,
    user_id: uuid.UUID,
    session_id: uuid.UUID,
    session_type: Optional[str] = None,
) -> Optional[StudySession]:
    query = select(StudySession).where(
        StudySession.id == session_id, StudySession.user_id == user_id
    )
    if session_type:
        query = query.where(StudySession.session_type == session_type)
    return (await db.execute(query)).scalar_one_or_none()


async def add_message(
    db: AsyncSession,
    session_id: uuid.UUID,
    user_id: uuid.UUID,
    message_type: str,
    content: str,
    metadata: Optional[Dict[str, Any]] = None,
) -> ChatMessage:
    message = ChatMessage(
        session_id=session_id,
        user_id=user_id,
        message_type=message_type,
        content=content,
        message_metadata=metadata,
    )
    db.add(message)
    await db.flush()
    return message


async def recent_turns(
    db: AsyncSession, session_id: uuid.UUID, limit: int = HISTORY_TURNS
) -> List[ChatTurn]:
    """The newest `limit` messages of a session as LLM turns, oldest first."""
    result = await db.execute(
        select(ChatMessage.message_type, ChatMessage.content)
        .where(ChatMessage.session_id == session_id)
        .order_by(ChatMessage.created_at.desc())
        .limit(limit)
    )
    rows = list(reversed(result.all()))
    return [
        ChatTurn(role="user" if row.message_type == "user" else "assistant", content=row.content)
        for row in rows
    ]


# ══════════════════════════════════════════════════════════════════════════
# Chat Service
# ══════════════════════════════════════════════════════════════════════════

class ChatService:

    def __init__(self, llm: Optional[LLMService] = None):
        self.llm = llm or gemini_service

    async def create_session(
        self, db: AsyncSession, user_id: uuid.UUID, subject: Optional[str] = None
    ) -> StudySessionOut:
        session = await create_session(db, user_id, "chat", subject)
        logger.info("Chat session %s created for %s", session.id, user_id)
        return StudySessionOut.model_validate(session)

    async def get_session(
        self, db: AsyncSession, user_id: uuid.UUID, session_id: uuid.UUID
    ) -> StudySession:
        session = await find_session(db, user_id, session_id)
        if session is None:
            raise NotFoundError("Session not found", resource="Session", resource_id=str(session_id))
        return session

    async def send_message(
        self, db: AsyncSession, user: User, request: SendMessageRequest
    ) -> SendMessageResult:
        session = await self.get_session(db, user.id, request.session_id)
        history = await recent_turns(db, session.id)

        subject = session.subject or detect_subject(request.message)
        if subject and not session.subject:
            session.subject = subject

        language = request.language or user.language_preference or "en"

        await add_message(db, session.id, user.id, "user", request.message)

        reply = await self.llm.chat_completion(
            history + [ChatTurn(role="user", content=request.message)],
            ChatOptions(
                language=language,
                simplified_mode=user.simplified_mode,
                step_by_step=request.step_by_step,
                subject=subject,
            ),
        )

        assistant = await add_message(
            db,
            session.id,
            user.id,
            "assistant",
            reply,
            metadata={"subject": subject, "language": language},
        )
        return SendMessageResult(response=reply, message=ChatMessageOut.model_validate(assistant))

    async def get_sessions(self, db: AsyncSession, user_id: uuid.UUID) -> List[StudySessionOut]:
        result = await db.execute(
            select(StudySession)
            .where(StudySession.user_id == user_id, StudySession.session_type == "chat")
            .order_by(StudySession.created_at.desc())
        )
        return [StudySessionOut.model_validate(s) for s in result.scalars().all()]

    async def get_message_history(
        self, db: AsyncSession, user_id: uuid.UUID, session_id: uuid.UUID
    ) -> SessionWithMessages:
        session = await self.get_session(db, user_id, session_id)
        result = await db.execute(
            select(ChatMessage)
            .where(ChatMessage.session_id == session.id)
            .order_by(ChatMessage.created_at.asc())
            .limit(MESSAGE_HISTORY_LIMIT)
        )
        return SessionWithMessages(
            session=StudySessionOut.model_validate(session),
            messages=[ChatMessageOut.model_validate(m) for m in result.scalars().all()],
        )


chat_service = ChatService()
