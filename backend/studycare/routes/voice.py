"""
StudyCare Backend — Voice Route Handlers
==========================================

What:  Speech-to-text, text-to-speech, and a spoken tutoring turn.
How:   Audio arrives as multipart field `audio` (mp3, wav, webm, ogg, m4a;
       ≤25 MB by default). Synthesized speech is returned as a storage URL.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from studycare.database import get_db_session
from studycare.dependencies import get_current_user
from studycare.models import User
from studycare.schemas.common import ApiResponse, ErrorResponse
from studycare.schemas.voice import (
    SynthesisResult,
    SynthesizeRequest,
    TranscriptionResult,
    VoiceChatResult,
)
from studycare.services.voice_service import voice_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/voice", tags=["Voice"])


def _audio_parts(audio: Optional[UploadFile]):
    if audio is None:
        return None, None
    return audio.filename, audio.content_type


@router.post(
    "/transcribe",
    response_model=ApiResponse[TranscriptionResult],
    responses={400: {"description": "Missing or unsupported audio", "model": ErrorResponse}},
    summary="Transcribe speech",
)
async def transcribe(
    audio: Optional[UploadFile] = File(default=None),
    session_id: Optional[UUID] = Form(default=None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[TranscriptionResult]:
    """With a session id owned by the caller, the text is also saved as a user turn."""
    content = await audio.read() if audio is not None else b""
    filename, content_type = _audio_parts(audio)
    result = await voice_service.transcribe(
        db, user.id, filename, content_type, content, session_id=session_id
    )
    return ApiResponse(data=result)


@router.post("/synthesize", response_model=ApiResponse[SynthesisResult], summary="Text to speech")
async def synthesize(
    body: SynthesizeRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[SynthesisResult]:
    result = await voice_service.synthesize(
        db, user, body.text, language=body.language, session_id=body.session_id
    )
    return ApiResponse(data=result)


@router.post(
    "/chat",
    response_model=ApiResponse[VoiceChatResult],
    responses={400: {"description": "Missing or unsupported audio", "model": ErrorResponse}},
    summary="Spoken tutoring turn",
)
async def voice_chat(
    audio: Optional[UploadFile] = File(default=None),
    session_id: Optional[UUID] = Form(default=None),
    language: Optional[str] = Form(default=None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[VoiceChatResult]:
    content = await audio.read() if audio is not None else b""
    filename, content_type = _audio_parts(audio)
    result = await voice_service.voice_chat(
        db, user, filename, content_type, content, session_id=session_id, language=language
    )
    return ApiResponse(data=result)
