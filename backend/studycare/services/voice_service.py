"""
StudyCare Backend — Voice Service
===================================

What:  Speech in (transcription), speech out (synthesis) and a spoken
       tutoring loop combining both.
How:   Gemini transcribes audio; OpenAI speech synthesizes the reply; the
       synthesized MP3 is uploaded to storage under audio/.

voice_chat Flow:
    session (given and owned, else a new `voice` session)
        → transcribe → load last turns → save user turn
        → chat_completion → save assistant turn
        → synthesize → upload → {transcription, ai_response, audio_url, session_id}
"""

import logging
import time
import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from studycare.models import StudySession, User
from studycare.schemas.voice import SynthesisResult, TranscriptionResult, VoiceChatResult
from studycare.services.chat_service import add_message, create_session, find_session, recent_turns
from studycare.services.gemini_service import gemini_service
from studycare.services.llm_base import ChatOptions, ChatTurn, LLMService, SpeechService
from studycare.services.speech_service import speech_service
from studycare.services.storage_service import (
    AUDIO_UPLOAD,
    StorageService,
    storage_service,
    validate_upload,
)

logger = logging.getLogger(__name__)


class VoiceService:

    def __init__(
        self,
        llm: Optional[LLMService] = None,
        speech: Optional[SpeechService] = None,
        storage: Optional[StorageService] = None,
    ):
        self.llm = llm or gemini_service
        self.speech = speech or speech_service
        self.storage = storage or storage_service

    async def _store_speech(self, audio: bytes) -> str:
        filename = f"tts-{int(time.time() * 1000)}.mp3"
        audio_url, _ = await self.storage.upload_file(
            audio, filename, AUDIO_UPLOAD.folder, content_type="audio/mpeg"
        )
        return audio_url

    async def transcribe(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        filename: Optional[str],
        content_type: Optional[str],
        audio: bytes,
        session_id: Optional[uuid.UUID] = None,
    ) -> TranscriptionResult:
        mime_type = validate_upload(AUDIO_UPLOAD, filename, content_type, len(audio))
        text = await self.llm.transcribe_audio(audio, mime_type)

        # Unknown or foreign session ids are ignored, not rejected
        if session_id and await find_session(db, user_id, session_id) is not None:
            await add_message(db, session_id, user_id, "user", text, metadata={"source": "voice"})

        return TranscriptionResult(text=text, session_id=session_id)

    async def synthesize(
        self,
        db: AsyncSession,
        user: User,
        text: str,
        language: Optional[str] = None,
        session_id: Optional[uuid.UUID] = None,
    ) -> SynthesisResult:
        audio = await self.speech.synthesize(text, language or user.language_preference)
        audio_url = await self._store_speech(audio)

        if session_id and await find_session(db, user.id, session_id) is not None:
            await add_message(
                db,
                session_id,
                user.id,
                "assistant",
                text,
                metadata={"source": "tts", "audio_url": audio_url},
            )

        return SynthesisResult(audio_url=audio_url, session_id=session_id)

    async def voice_chat(
        self,
        db: AsyncSession,
        user: User,
        filename: Optional[str],
        content_type: Optional[str],
        audio: bytes,
        session_id: Optional[uuid.UUID] = None,
        language: Optional[str] = None,
    ) -> VoiceChatResult:
        mime_type = validate_upload(AUDIO_UPLOAD, filename, content_type, len(audio))
        language = language or user.language_preference or "en"

        session: Optional[StudySession] = None
        if session_id:
            session = await find_session(db, user.id, session_id)
        if session is None:
            session = await create_session(db, user.id, "voice")

        transcription = await self.llm.transcribe_audio(audio, mime_type)
        history = await recent_turns(db, session.id)
        await add_message(db, session.id, user.id, "user", transcription, metadata={"source": "voice"})

        reply = await self.llm.chat_completion(
            history + [ChatTurn(role="user", content=transcription)],
            ChatOptions(language=language, simplified_mode=user.simplified_mode, step_by_step=True),
        )
        await add_message(db, session.id, user.id, "assistant", reply, metadata={"source": "voice"})

        audio_url = await self._store_speech(await self.speech.synthesize(reply, language))
        logger.info("Voice chat turn in session %s for %s", session.id, user.id)

        return VoiceChatResult(
            transcription=transcription,
            ai_response=reply,
            audio_url=audio_url,
            session_id=session.id,
        )


voice_service = VoiceService()
