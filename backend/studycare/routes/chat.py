"""
StudyCare Backend — Chat Route Handlers
=========================================

What:  Tutoring chat sessions: create, send a message, read a transcript,
       list sessions.
"""

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from studycare.database import get_db_session
from studycare.dependencies import get_current_user
from studycare.models import User
from studycare.schemas.chat import (
    CreateSessionRequest,
    SendMessageRequest,
    SendMessageResult,
    SessionWithMessages,
    StudySessionOut,
)
from studycare.schemas.common import ApiResponse, ErrorResponse
from studycare.services.chat_service import chat_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["Chat"])


@router.post(
    "/session",
    response_model=ApiResponse[StudySessionOut],
    status_code=status.HTTP_201_CREATED,
    summary="Start a chat session",
)
async def create_session(
    body: CreateSessionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[StudySessionOut]:
    return ApiResponse(data=await chat_service.create_session(db, user.id, body.subject))


@router.post(
    "/message",
    response_model=ApiResponse[SendMessageResult],
    responses={
        404: {"description": "Session not found", "model": ErrorResponse},
        503: {"description": "AI circuit breaker open", "model": ErrorResponse},
    },
    summary="Ask the tutor",
)
async def send_message(
    body: SendMessageRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[SendMessageResult]:
    """
    Sends the message with the last turns of the session as context and
    returns the tutor's reply. Both turns are saved to the transcript.
    """
    return ApiResponse(data=await chat_service.send_message(db, user, body))


@router.get(
    "/session/{session_id}",
    response_model=ApiResponse[SessionWithMessages],
    responses={404: {"description": "Session not found", "model": ErrorResponse}},
    summary="Session transcript",
)
async def get_session(
    session_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[SessionWithMessages]:
    return ApiResponse(data=await chat_service.get_message_history(db, user.id, session_id))


@router.get("/sessions", response_model=ApiResponse[List[StudySessionOut]], summary="My chat sessions")
async def get_sessions(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[List[StudySessionOut]]:
    return ApiResponse(data=await chat_service.get_sessions(db, user.id))
