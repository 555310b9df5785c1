"""
StudyCare Backend — Test Configuration (conftest.py)
======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   A real schema on in-memory SQLite (aiosqlite) for service tests, and
       in-process fakes for every external collaborator (auth provider,
       object storage, Gemini, text-to-speech).

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── engine / db_session / session_factory: fresh SQLite schema per test
    ├── fake_gateway / fake_storage / fake_llm / fake_speech
    ├── make_user: inserts a profile row
    ├── mock_db_session: AsyncMock session for pure unit tests
    └── test_client: HTTPX AsyncClient against create_app() with overrides

SQLite and SAVEPOINTs:
    pysqlite's implicit transaction handling breaks begin_nested(); the
    engine disables it and emits BEGIN itself, which is what the
    duplicate-tolerant create helper relies on.
"""

import os
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

# Override settings for testing BEFORE any studycare imports
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test.db"
os.environ["GEMINI_API_KEY"] = "test-key-not-real"
os.environ["OPENAI_API_KEY"] = "test-key-not-real"
os.environ["SUPABASE_URL"] = "http://supabase.test"
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-service-role"
os.environ["LOG_LEVEL"] = "WARNING"

from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from studycare.database import Base  # noqa: E402
from studycare.exceptions import AuthenticationError, LLMServiceError, ValidationError  # noqa: E402
from studycare.models import User  # noqa: E402
from studycare.services.auth_gateway import AuthIdentity, AuthResult  # noqa: E402
from studycare.services.llm_base import ChatOptions, ChatTurn, LLMService, SpeechService  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Fakes for external collaborators
# ══════════════════════════════════════════════════════════════════════════

class FakeAuthGateway:
    """In-memory identity provider: identities by email, tokens by value."""

    def __init__(self):
        self.identities: Dict[str, AuthIdentity] = {}
        self.passwords: Dict[str, str] = {}
        self.tokens: Dict[str, AuthIdentity] = {}
        self.deleted: List[uuid.UUID] = []
        self.confirmed: List[uuid.UUID] = []
        self.issue_session_on_sign_up = True

    def add_identity(self, email: str, password: str = "secret123", **metadata) -> AuthIdentity:
        identity = AuthIdentity(id=uuid.uuid4(), email=email.lower(), user_metadata=metadata)
        self.identities[identity.email] = identity
        self.passwords[identity.email] = password
        return identity

    def issue_token(self, identity: AuthIdentity) -> str:
        token = f"token-{identity.id}"
        self.tokens[token] = identity
        return token

    async def get_user(self, access_token: str) -> Optional[AuthIdentity]:
        return self.tokens.get(access_token)

    async def sign_up(self, email: str, password: str, metadata: Dict[str, Any]) -> AuthResult:
        if email.lower() in self.identities:
            raise ValidationError("User already registered")
        identity = self.add_identity(email, password, **metadata)
        token = self.issue_token(identity) if self.issue_session_on_sign_up else None
        return AuthResult(identity=identity, access_token=token)

    async def sign_in(self, email: str, password: str) -> AuthResult:
        identity = self.identities.get(email.lower())
        if identity is None or self.passwords.get(identity.email) != password:
            raise AuthenticationError("Invalid email or password")
        return AuthResult(identity=identity, access_token=self.issue_token(identity))

    async def find_user_by_email(self, email: str) -> Optional[AuthIdentity]:
        return self.identities.get(email.lower())

    async def confirm_email(self, user_id: uuid.UUID) -> None:
        self.confirmed.append(user_id)

    async def delete_user(self, user_id: uuid.UUID) -> None:
        self.deleted.append(user_id)
        self.identities = {e: i for e, i in self.identities.items() if i.id != user_id}


class FakeStorage:
    """Object storage keeping bytes in a dict keyed by path."""

    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.deleted: List[str] = []

    async def upload_file(self, content: bytes, filename: str, folder: str, content_type=None):
        path = f"{folder}/{len(self.objects)}-{filename}"
        self.objects[path] = content
        return f"https://storage.test/{path}", path

    async def get_public_url(self, path: str) -> str:
        return f"https://storage.test/{path}"

    async def download_file(self, path: str) -> bytes:
        return self.objects[path]

    async def delete_file(self, path: str) -> None:
        self.deleted.append(path)
        self.objects.pop(path, None)


class FakeLLM(LLMService):
    """
    Scripted LLM: returns `reply` (or the next item of `replies`) and records
    every call. Set `error` to make every call raise it.
    """

    def __init__(self, reply: str = "Here is a helpful explanation."):
        self.reply = reply
        self.replies: List[str] = []
        self.error: Optional[Exception] = None
        self.calls: List[Dict[str, Any]] = []

    def _next(self) -> str:
        if self.error is not None:
            raise self.error
        return self.replies.pop(0) if self.replies else self.reply

    async def chat_completion(
        self, messages: List[ChatTurn], options: Optional[ChatOptions] = None
    ) -> str:
        self.calls.append({"op": "chat", "messages": list(messages), "options": options})
        return self._next()

    async def analyze_image(self, image, mime_type, question=None, options=None) -> str:
        self.calls.append({"op": "image", "image": image, "mime_type": mime_type, "question": question})
        return self._next()

    async def transcribe_audio(self, audio: bytes, mime_type: str) -> str:
        self.calls.append({"op": "transcribe", "mime_type": mime_type})
        return self._next()

    async def health_check(self) -> bool:
        return self.error is None


class FakeSpeech(SpeechService):

    def __init__(self):
        self.calls: List[Dict[str, str]] = []

    async def synthesize(self, text: str, language: str = "en") -> bytes:
        self.calls.append({"text": text, "language": language})
        return b"ID3-fake-mp3"


# ══════════════════════════════════════════════════════════════════════════
# Database Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_implicit_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(db_session):
    """
    Inserts a profile row.

    Usage:
        student = await make_user("kid@example.com")
        teacher = await make_user("t@example.com", role="teacher")
    """

    async def _make(email: str, role: str = "student", full_name: Optional[str] = None, **fields) -> User:
        user = User(
            id=fields.pop("id", uuid.uuid4()),
            email=email,
            full_name=full_name,
            role=role,
            language_preference=fields.pop("language_preference", "en"),
            simplified_mode=fields.pop("simplified_mode", False),
        )
        db_session.add(user)
        await db_session.flush()
        return user

    return _make


@pytest.fixture
def mock_db_session():
    """AsyncMock session for tests that never reach SQL."""
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


# ══════════════════════════════════════════════════════════════════════════
# Collaborator Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def fake_gateway():
    return FakeAuthGateway()


@pytest.fixture
def fake_storage():
    return FakeStorage()


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def fake_speech():
    return FakeSpeech()


@pytest.fixture
def llm_failure():
    return LLMServiceError("AI service is temporarily unavailable")


@pytest.fixture
def timestamps():
    """Strictly increasing aware datetimes: timestamps(0) < timestamps(1) < ..."""
    base = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
    return lambda minutes: base + timedelta(minutes=minutes)


@pytest.fixture
def sample_image_bytes():
    """Minimal JPEG: SOI marker + JFIF header + EOI marker."""
    return (
        b'\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00'
        b'\xff\xd9'
    )


# ══════════════════════════════════════════════════════════════════════════
# API Client
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def test_client(session_factory, fake_gateway, monkeypatch):
    """
    HTTPX AsyncClient against a fresh app.

    - get_db_session is overridden with the SQLite session factory
      (commit on success, rollback on error, like production)
    - the auth gateway used by the auth dependency is the fake

    Usage:
        identity = fake_gateway.add_identity("kid@example.com", role="student")
        headers = {"Authorization": f"Bearer {fake_gateway.issue_token(identity)}"}
        response = await test_client.get("/api/auth/profile", headers=headers)
    """
    from studycare import dependencies
    from studycare.database import get_db_session
    from studycare.main import create_app

    monkeypatch.setattr(dependencies, "auth_gateway", fake_gateway)

    app = create_app()

    async def override_db_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_db_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        client.app = app
        yield client
