"""
StudyCare Backend — Symptom Guidance Service
==============================================

What:  Educational (never diagnostic) guidance about symptoms a student
       describes, with a severity level and when-to-seek-help advice.
How:   One chat completion with a strict system prompt asking for JSON;
       list-like fields are normalized to plain "1. ..." lines; each check
       is kept as a `symptom` session with a user and an assistant turn.
"""

import logging
import uuid
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studycare.exceptions import LLMServiceError
from studycare.models import ChatMessage, StudySession, User
from studycare.schemas.symptom import (
    SymptomCheckRequest,
    SymptomGuidance,
    SymptomHistoryEntry,
)
from studycare.services.chat_service import add_message, create_session
from studycare.services.gemini_service import gemini_service
from studycare.services.llm_base import ChatOptions, ChatTurn, LLMService
from studycare.services.prompts import normalize_numbered_list, parse_json_response

logger = logging.getLogger(__name__)

SEVERITY_LEVELS = ("mild", "moderate", "severe", "emergency")
HISTORY_LIMIT = 50

DEFAULT_DISCLAIMER = (
    "This is educational information only and not a substitute for professional medical "
    "advice, diagnosis, or treatment. Always seek the advice of your physician or other "
    "qualified health provider with any questions you may have regarding a medical condition."
)

SYMPTOM_SYSTEM_PROMPT = f"""You are a health information assistant providing EDUCATIONAL GUIDANCE ONLY. You must NEVER:
- Diagnose any medical condition
- Prescribe treatments or medications
- Provide medical advice
- Suggest specific diseases or conditions

You MUST:
- Provide general educational information about symptoms
- Explain when to seek professional medical help
- Assess severity level (mild, moderate, severe, emergency)
- Always recommend consulting healthcare professionals
- Include clear disclaimers that this is not medical advice

FORMATTING: every text field is a plain numbered list (1., 2., 3.). No markdown,
headings, bullets, bold or italics.

Respond with JSON only:
{{
  "guidance": "1. ...\\n2. ...",
  "educationalInfo": "1. ...\\n2. ...",
  "whenToSeekHelp": "1. ...\\n2. ...",
  "severityLevel": "mild" | "moderate" | "severe" | "emergency",
  "disclaimer": "{DEFAULT_DISCLAIMER}"
}}"""


class SymptomService:

    def __init__(self, llm: Optional[LLMService] = None):
        self.llm = llm or gemini_service

    async def check(
        self, db: AsyncSession, user: User, request: SymptomCheckRequest
    ) -> SymptomGuidance:
        prompt = f"User reported symptoms: {request.symptoms}\n"
        if request.additional_info:
            prompt += f"Additional information: {request.additional_info}\n"
        prompt += "\nProvide safe, non-diagnostic educational guidance following the system instructions."

        try:
            reply = await self.llm.chat_completion(
                [
                    ChatTurn(role="system", content=SYMPTOM_SYSTEM_PROMPT),
                    ChatTurn(role="user", content=prompt),
                ],
                ChatOptions(
                    language=user.language_preference,
                    simplified_mode=user.simplified_mode,
                    step_by_step=False,
                ),
            )
            data = parse_json_response(reply, what="symptom guidance")
        except LLMServiceError as e:
            logger.error("Symptom check failed for %s: %s", user.id, e.message)
            raise LLMServiceError(
                message=f"Failed to generate symptom guidance: {e.message}",
                context=e.context,
            )

        severity = str(data.get("severityLevel", "mild")).lower()
        guidance = SymptomGuidance(
            guidance=normalize_numbered_list(str(data.get("guidance") or "")),
            educational_info=normalize_numbered_list(str(data.get("educationalInfo") or "")),
            when_to_seek_help=normalize_numbered_list(str(data.get("whenToSeekHelp") or "")),
            severity_level=severity if severity in SEVERITY_LEVELS else "mild",
            disclaimer=normalize_numbered_list(str(data.get("disclaimer") or DEFAULT_DISCLAIMER)),
        )

        session = await create_session(db, user.id, "symptom")
        await add_message(
            db,
            session.id,
            user.id,
            "user",
            request.symptoms,
            metadata={"source": "symptom_check", "additional_info": request.additional_info},
        )
        await add_message(
            db,
            session.id,
            user.id,
            "assistant",
            guidance.guidance,
            metadata={"source": "symptom_check", "severity_level": guidance.severity_level},
        )
        logger.info("Symptom check %s stored (severity=%s)", session.id, guidance.severity_level)
        return guidance

    async def history(self, db: AsyncSession, user_id: uuid.UUID) -> List[SymptomHistoryEntry]:
        """Each of the last 50 symptom sessions as one {symptoms, guidance} pair, newest first."""
        session_ids = (
            await db.execute(
                select(StudySession.id)
                .where(StudySession.user_id == user_id, StudySession.session_type == "symptom")
                .order_by(StudySession.created_at.desc())
                .limit(HISTORY_LIMIT)
            )
        ).scalars().all()
        if not session_ids:
            return []

        messages = (
            await db.execute(
                select(ChatMessage)
                .where(ChatMessage.session_id.in_(session_ids))
                .order_by(ChatMessage.created_at.asc())
            )
        ).scalars().all()

        asked: Dict[uuid.UUID, ChatMessage] = {}
        answered: Dict[uuid.UUID, ChatMessage] = {}
        for message in messages:
            bucket = asked if message.message_type == "user" else answered
            bucket.setdefault(message.session_id, message)

        entries = []
        for session_id, question in asked.items():
            answer = answered.get(session_id)
            if answer is None:
                continue
            severity = (answer.message_metadata or {}).get("severity_level")
            entries.append(
                SymptomHistoryEntry(
                    id=question.id,
                    session_id=session_id,
                    symptoms=question.content,
                    guidance=answer.content,
                    severity_level=severity if severity in SEVERITY_LEVELS else None,
                    created_at=question.created_at,
                )
            )

        entries.sort(key=lambda entry: entry.created_at, reverse=True)
        return entries


symptom_service = SymptomService()
