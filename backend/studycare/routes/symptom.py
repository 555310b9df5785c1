"""
StudyCare Backend — Symptom Guidance Route Handlers
=====================================================

Educational, non-diagnostic guidance. Every response carries a disclaimer.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from studycare.database import get_db_session
from studycare.dependencies import get_current_user
from studycare.models import User
from studycare.schemas.common import ApiResponse, ErrorResponse
from studycare.schemas.symptom import SymptomCheckRequest, SymptomGuidance, SymptomHistoryEntry
from studycare.services.symptom_service import symptom_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/symptom", tags=["Symptom"])


@router.post(
    "/check",
    response_model=ApiResponse[SymptomGuidance],
    responses={500: {"description": "AI guidance could not be generated", "model": ErrorResponse}},
    summary="Get educational guidance about symptoms",
)
async def check_symptoms(
    body: SymptomCheckRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[SymptomGuidance]:
    return ApiResponse(data=await symptom_service.check(db, user, body))


@router.get("/history", response_model=ApiResponse[List[SymptomHistoryEntry]], summary="Past symptom checks")
async def get_history(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[List[SymptomHistoryEntry]]:
    return ApiResponse(data=await symptom_service.history(db, user.id))
