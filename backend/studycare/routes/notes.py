"""
StudyCare Backend — Notes Route Handlers
==========================================

What:  CRUD for a user's study notes plus three AI actions (summarize,
       explain, organize).
Who:   Notes page of the frontend.

Notes may be filed under a class the author is enrolled in
(`class_id`); GET /api/notes?class_id=... filters by it.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from studycare.database import get_db_session
from studycare.dependencies import get_current_user
from studycare.models import User
from studycare.schemas.common import ApiResponse, ErrorResponse, MessageResult
from studycare.schemas.note import (
    NoteCreate,
    NoteExplanation,
    NoteOut,
    NoteSummary,
    NoteUpdate,
)
from studycare.services.note_service import note_service

logger = logging.getLogger(__name__)

# ── Router Configuration ──────────────────────────────────────────────────
router = APIRouter(prefix="/api/notes", tags=["Notes"])

NOT_FOUND = {404: {"description": "Note not found", "model": ErrorResponse}}


@router.post(
    "",
    response_model=ApiResponse[NoteOut],
    status_code=status.HTTP_201_CREATED,
    responses={403: {"description": "Not enrolled in the class", "model": ErrorResponse}},
    summary="Create a note",
)
async def create_note(
    body: NoteCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[NoteOut]:
    return ApiResponse(data=await note_service.create_note(db, user.id, body))


@router.get(
    "",
    response_model=ApiResponse[List[NoteOut]],
    summary="List my notes",
    description="Most recently updated first. Optionally limited to one class.",
)
async def list_notes(
    class_id: Optional[UUID] = Query(default=None, description="Only notes filed under this class"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[List[NoteOut]]:
    return ApiResponse(data=await note_service.get_notes(db, user.id, class_id))


@router.get("/{note_id}", response_model=ApiResponse[NoteOut], responses=NOT_FOUND, summary="Get a note")
async def get_note(
    note_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[NoteOut]:
    return ApiResponse(data=await note_service.get_note(db, user.id, note_id))


@router.put("/{note_id}", response_model=ApiResponse[NoteOut], responses=NOT_FOUND, summary="Update a note")
async def update_note(
    note_id: UUID,
    body: NoteUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[NoteOut]:
    return ApiResponse(data=await note_service.update_note(db, user.id, note_id, body))


@router.delete("/{note_id}", response_model=ApiResponse[MessageResult], summary="Delete a note")
async def delete_note(
    note_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[MessageResult]:
    await note_service.delete_note(db, user.id, note_id)
    return ApiResponse(data=MessageResult(message="Note deleted successfully"))


# ── AI actions ────────────────────────────────────────────────────────────

@router.post(
    "/{note_id}/summarize",
    response_model=ApiResponse[NoteSummary],
    responses=NOT_FOUND,
    summary="AI summary, key points and tag suggestions",
)
async def summarize_note(
    note_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[NoteSummary]:
    """The summary is also saved on the note (`ai_summary`)."""
    return ApiResponse(data=await note_service.summarize_note(db, user, note_id))


@router.post(
    "/{note_id}/explain",
    response_model=ApiResponse[NoteExplanation],
    responses=NOT_FOUND,
    summary="AI explanation of the note's concepts",
)
async def explain_note(
    note_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[NoteExplanation]:
    return ApiResponse(data=await note_service.explain_note(db, user, note_id))


@router.post(
    "/{note_id}/organize",
    response_model=ApiResponse[NoteOut],
    responses=NOT_FOUND,
    summary="Let the AI restructure the note",
)
async def organize_note(
    note_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[NoteOut]:
    """Applies the suggested title, content and tags and returns the updated note."""
    return ApiResponse(data=await note_service.organize_note(db, user, note_id))
