"""
StudyCare Backend — Chat Service Tests
"""

import uuid

import pytest
from sqlalchemy import select

from studycare.exceptions import NotFoundError
from studycare.models import ChatMessage, StudySession
from studycare.schemas.chat import SendMessageRequest
from studycare.services.chat_service import HISTORY_TURNS, ChatService


@pytest.fixture
def service(fake_llm):
    return ChatService(llm=fake_llm)


class TestChatSessions:

    @pytest.mark.asyncio
    async def test_create_and_list_sessions(self, service, db_session, make_user, timestamps):
        user = await make_user("kid@example.com")
        older = StudySession(user_id=user.id, session_type="chat", created_at=timestamps(0))
        newer = StudySession(user_id=user.id, session_type="chat", created_at=timestamps(5))
        db_session.add_all([older, newer])
        db_session.add(StudySession(user_id=user.id, session_type="image", created_at=timestamps(9)))
        await db_session.flush()

        created = await service.create_session(db_session, user.id, subject="math")
        sessions = await service.get_sessions(db_session, user.id)

        assert created.session_type == "chat"
        assert created.subject == "math"
        assert all(s.session_type == "chat" for s in sessions)
        assert len(sessions) == 3
        ids = [s.id for s in sessions]
        assert ids.index(newer.id) < ids.index(older.id)

    @pytest.mark.asyncio
    async def test_foreign_session_is_not_found(self, service, db_session, make_user):
        owner = await make_user("a@example.com")
        other = await make_user("b@example.com")
        session = await service.create_session(db_session, owner.id)

        with pytest.raises(NotFoundError) as exc_info:
            await service.get_message_history(db_session, other.id, session.id)
        assert exc_info.value.message == "Session not found"


class TestSendMessage:

    @pytest.mark.asyncio
    async def test_reply_is_saved_with_metadata(self, service, db_session, make_user, fake_llm):
        user = await make_user("kid@example.com", language_preference="de", simplified_mode=True)
        session = await service.create_session(db_session, user.id)
        fake_llm.reply = "x = 2"

        result = await service.send_message(
            db_session, user, SendMessageRequest(sessionId=session.id, message="Solve 2x = 4")
        )

        assert result.response == "x = 2"
        assert result.message.message_type == "assistant"
        assert result.message.metadata == {"subject": "math", "language": "de"}

        options = fake_llm.calls[0]["options"]
        assert options.language == "de"
        assert options.simplified_mode is True
        assert options.step_by_step is True
        assert options.subject == "math"

        stored = await db_session.get(StudySession, session.id)
        assert stored.subject == "math"

        history = await service.get_message_history(db_session, user.id, session.id)
        assert [m.message_type for m in history.messages] == ["user", "assistant"]

    @pytest.mark.asyncio
    async def test_request_language_overrides_profile(self, service, db_session, make_user, fake_llm):
        user = await make_user("kid@example.com", language_preference="de")
        session = await service.create_session(db_session, user.id)

        await service.send_message(
            db_session, user, SendMessageRequest(sessionId=session.id, message="hi", language="es", stepByStep=False)
        )

        options = fake_llm.calls[0]["options"]
        assert options.language == "es"
        assert options.step_by_step is False
        assert options.subject is None

    @pytest.mark.asyncio
    async def test_existing_subject_is_kept(self, service, db_session, make_user, fake_llm):
        user = await make_user("kid@example.com")
        session = await service.create_session(db_session, user.id, subject="history")

        await service.send_message(db_session, user, SendMessageRequest(sessionId=session.id, message="solve x"))

        assert fake_llm.calls[0]["options"].subject == "history"

    @pytest.mark.asyncio
    async def test_history_is_last_ten_turns(self, service, db_session, make_user, fake_llm, timestamps):
        user = await make_user("kid@example.com")
        session = await service.create_session(db_session, user.id)
        for i in range(12):
            db_session.add(
                ChatMessage(
                    session_id=session.id,
                    user_id=user.id,
                    message_type="user" if i % 2 == 0 else "assistant",
                    content=f"turn {i}",
                    created_at=timestamps(i),
                )
            )
        await db_session.flush()

        await service.send_message(db_session, user, SendMessageRequest(sessionId=session.id, message="next"))

        sent = fake_llm.calls[0]["messages"]
        assert len(sent) == HISTORY_TURNS + 1
        assert sent[0].content == "turn 2"
        assert sent[0].role == "user"
        assert sent[1].role == "assistant"
        assert sent[-2].content == "turn 11"
        assert sent[-1].content == "next"

    @pytest.mark.asyncio
    async def test_llm_failure_propagates(self, service, db_session, make_user, fake_llm, llm_failure):
        user = await make_user("kid@example.com")
        session = await service.create_session(db_session, user.id)
        fake_llm.error = llm_failure

        with pytest.raises(type(llm_failure)):
            await service.send_message(db_session, user, SendMessageRequest(sessionId=session.id, message="hi"))

        replies = await db_session.scalars(
            select(ChatMessage).where(ChatMessage.message_type == "assistant")
        )
        assert replies.all() == []

    @pytest.mark.asyncio
    async def test_unknown_session(self, service, db_session, make_user):
        user = await make_user("kid@example.com")
        with pytest.raises(NotFoundError):
            await service.send_message(db_session, user, SendMessageRequest(sessionId=uuid.uuid4(), message="hi"))
