"""
StudyCare Backend — Note Service
==================================

What:  Study notes CRUD plus three AI actions on a note: summarize, explain
       and organize.
Why:   Encapsulates the business rules (class enrollment, ownership, partial
       updates) independent of HTTP concerns.
Who:   Called by the /api/notes route handlers.

AI Actions:
    summarize → {summary, keyPoints, suggestedTags}; summary stored in ai_summary
    explain   → {explanation, concepts};             stored in ai_explanation
    organize  → {title, content, tags};              applied through update_note

    The model is asked for JSON; ``` fences are stripped before decoding.
    Any AI or decoding failure surfaces as 500 "Failed to <action>: <reason>".
    An open circuit breaker stays a 503.

Ownership:
    Every query filters on user_id, so another user's note is
    indistinguishable from a missing one (404 "Note not found").
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from studycare.exceptions import AuthorizationError, LLMServiceError, NotFoundError
from studycare.models import ClassStudent, Classroom, Note, User
from studycare.models.common import utcnow
from studycare.schemas.note import (
    NoteClass,
    NoteCreate,
    NoteExplanation,
    NoteOut,
    NoteSummary,
    NoteUpdate,
)
from studycare.services.gemini_service import gemini_service
from studycare.services.llm_base import ChatOptions, ChatTurn, LLMService
from studycare.services.prompts import parse_json_response

logger = logging.getLogger(__name__)


SUMMARY_PROMPT = """Analyze this note and provide:
1. A concise summary (2-3 sentences)
2. Key points (bullet list of 3-5 main ideas)
3. Suggested tags (3-5 relevant tags)

Note Title: {title}
Note Content: {content}

Format your response as JSON:
{{
  "summary": "summary text",
  "keyPoints": ["point1", "point2"],
  "suggestedTags": ["tag1", "tag2"]
}}"""

EXPLAIN_PROMPT = """Explain this note in detail, breaking down complex concepts and providing clear explanations.

Note Title: {title}
Note Content: {content}

Provide:
1. A detailed explanation of the content
2. Key concepts covered (list of 3-7 concepts)

Format your response as JSON:
{{
  "explanation": "detailed explanation text",
  "concepts": ["concept1", "concept2"]
}}"""

ORGANIZE_PROMPT = """Review this note and suggest improvements for better organization and clarity.

Current Note:
Title: {title}
Content: {content}

Provide:
1. An improved title (if needed)
2. Better organized content with clear sections
3. Suggested tags

Format your response as JSON:
{{
  "title": "improved title or original if good",
  "content": "reorganized content with clear structure",
  "tags": ["tag1", "tag2"]
}}"""


def _as_list(value: Any) -> List[str]:
    """Model output for a list field; a bare string is one item, not characters."""
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None]
    return [str(value)]


def _note_out(note: Note, classroom: Optional[Classroom]) -> NoteOut:
    out = NoteOut.model_validate(note)
    if classroom is not None:
        out.class_ = NoteClass.model_validate(classroom)
    return out


class NoteService:

    def __init__(self, llm: Optional[LLMService] = None):
        self.llm = llm or gemini_service

    # ══════════════════════════════════════════════════════════════════════
    # CRUD
    # ══════════════════════════════════════════════════════════════════════

    async def _ensure_enrolled(
        self, db: AsyncSession, user_id: uuid.UUID, class_id: uuid.UUID
    ) -> None:
        enrollment = await db.scalar(
            select(ClassStudent.id).where(
                ClassStudent.class_id == class_id, ClassStudent.student_id == user_id
            )
        )
        if enrollment is None:
            raise AuthorizationError("You are not enrolled in this class")

    async def _load(self, db: AsyncSession, user_id: uuid.UUID, note_id: uuid.UUID):
        result = await db.execute(
            select(Note, Classroom)
            .outerjoin(Classroom, Classroom.id == Note.class_id)
            .where(Note.id == note_id, Note.user_id == user_id)
        )
        row = result.first()
        if row is None:
            raise NotFoundError("Note not found", resource="Note", resource_id=str(note_id))
        return row[0], row[1]

    async def create_note(self, db: AsyncSession, user_id: uuid.UUID, data: NoteCreate) -> NoteOut:
        if data.class_id:
            await self._ensure_enrolled(db, user_id, data.class_id)

        note = Note(
            user_id=user_id,
            title=data.title,
            content=data.content,
            tags=data.tags or [],
            class_id=data.class_id,
        )
        db.add(note)
        await db.flush()
        logger.info("Note %s created by %s", note.id, user_id)

        _, classroom = await self._load(db, user_id, note.id)
        return _note_out(note, classroom)

    async def get_notes(
        self, db: AsyncSession, user_id: uuid.UUID, class_id: Optional[uuid.UUID] = None
    ) -> List[NoteOut]:
        query = (
            select(Note, Classroom)
            .outerjoin(Classroom, Classroom.id == Note.class_id)
            .where(Note.user_id == user_id)
            .order_by(Note.updated_at.desc())
        )
        if class_id:
            query = query.where(Note.class_id == class_id)
        result = await db.execute(query)
        return [_note_out(note, classroom) for note, classroom in result.all()]

    async def get_note(self, db: AsyncSession, user_id: uuid.UUID, note_id: uuid.UUID) -> NoteOut:
        note, classroom = await self._load(db, user_id, note_id)
        return _note_out(note, classroom)

    async def update_note(
        self, db: AsyncSession, user_id: uuid.UUID, note_id: uuid.UUID, data: NoteUpdate
    ) -> NoteOut:
        changes: Dict[str, Any] = data.model_dump(exclude_unset=True)
        if changes.get("class_id") is not None:
            await self._ensure_enrolled(db, user_id, changes["class_id"])

        note, _ = await self._load(db, user_id, note_id)
        for field, value in changes.items():
            if value is None and field in ("title", "content", "tags"):
                continue
            setattr(note, field, value)
        note.updated_at = utcnow()
        await db.flush()

        note, classroom = await self._load(db, user_id, note_id)
        return _note_out(note, classroom)

    async def delete_note(self, db: AsyncSession, user_id: uuid.UUID, note_id: uuid.UUID) -> None:
        result = await db.execute(
            delete(Note).where(Note.id == note_id, Note.user_id == user_id)
        )
        logger.info("Note %s deleted by %s (%d rows)", note_id, user_id, result.rowcount)

    # ══════════════════════════════════════════════════════════════════════
    # AI actions
    # ══════════════════════════════════════════════════════════════════════

    async def _ask_json(
        self, prompt: str, options: ChatOptions, action: str
    ) -> Dict[str, Any]:
        try:
            reply = await self.llm.chat_completion([ChatTurn(role="user", content=prompt)], options)
            return parse_json_response(reply, what=action)
        except LLMServiceError as e:
            logger.error("Note %s failed: %s", action, e.message)
            raise LLMServiceError(
                message=f"Failed to {action}: {e.message}",
                context=e.context,
            )

    async def summarize_note(
        self, db: AsyncSession, user: User, note_id: uuid.UUID
    ) -> NoteSummary:
        note, _ = await self._load(db, user.id, note_id)
        data = await self._ask_json(
            SUMMARY_PROMPT.format(title=note.title, content=note.content),
            ChatOptions(language=user.language_preference, step_by_step=False),
            "generate summary",
        )
        summary = NoteSummary(
            summary=str(data.get("summary", "")),
            key_points=_as_list(data.get("keyPoints")),
            suggested_tags=_as_list(data.get("suggestedTags")),
        )
        note.ai_summary = summary.summary
        await db.flush()
        return summary

    async def explain_note(
        self, db: AsyncSession, user: User, note_id: uuid.UUID
    ) -> NoteExplanation:
        note, _ = await self._load(db, user.id, note_id)
        data = await self._ask_json(
            EXPLAIN_PROMPT.format(title=note.title, content=note.content),
            ChatOptions(
                language=user.language_preference,
                step_by_step=True,
                simplified_mode=user.simplified_mode,
            ),
            "generate explanation",
        )
        explanation = NoteExplanation(
            explanation=str(data.get("explanation", "")),
            concepts=_as_list(data.get("concepts")),
        )
        note.ai_explanation = explanation.explanation
        await db.flush()
        return explanation

    async def organize_note(self, db: AsyncSession, user: User, note_id: uuid.UUID) -> NoteOut:
        note, _ = await self._load(db, user.id, note_id)
        data = await self._ask_json(
            ORGANIZE_PROMPT.format(title=note.title, content=note.content),
            ChatOptions(
                language=user.language_preference,
                step_by_step=False,
                simplified_mode=user.simplified_mode,
            ),
            "organize note",
        )
        update = NoteUpdate(
            title=str(data.get("title") or note.title)[:255],
            content=str(data.get("content") or note.content),
            tags=_as_list(data.get("tags")) or list(note.tags or []),
        )
        return await self.update_note(db, user.id, note_id, update)


note_service = NoteService()
