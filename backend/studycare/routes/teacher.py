"""
StudyCare Backend — Teacher Route Handlers
============================================

What:  Create classes, list them, view a class roster and per-student
       activity stats. Role `teacher` only.
"""

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from studycare.database import get_db_session
from studycare.dependencies import require_roles
from studycare.models import User
from studycare.schemas.classroom import (
    ClassOut,
    ClassStudentOut,
    CreateClassRequest,
    StudentActivityStats,
)
from studycare.schemas.common import ApiResponse, ErrorResponse
from studycare.services.cache import TTLCache, get_cache
from studycare.services.teacher_service import teacher_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/teacher", tags=["Teacher"])

require_teacher = require_roles("teacher")
NOT_OWNED = {404: {"description": "Class not found or access denied", "model": ErrorResponse}}


@router.post(
    "/classes",
    response_model=ApiResponse[ClassOut],
    status_code=status.HTTP_201_CREATED,
    summary="Create a class with a join code",
)
async def create_class(
    body: CreateClassRequest,
    user: User = Depends(require_teacher),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[ClassOut]:
    return ApiResponse(data=await teacher_service.create_class(db, user.id, body.name, body.subject))


@router.get("/classes", response_model=ApiResponse[List[ClassOut]], summary="My classes")
async def get_classes(
    user: User = Depends(require_teacher),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[List[ClassOut]]:
    return ApiResponse(data=await teacher_service.get_classes(db, user.id))


@router.get(
    "/classes/{class_id}/students",
    response_model=ApiResponse[List[ClassStudentOut]],
    responses=NOT_OWNED,
    summary="Class roster",
)
async def get_class_students(
    class_id: UUID,
    user: User = Depends(require_teacher),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[List[ClassStudentOut]]:
    return ApiResponse(data=await teacher_service.get_class_students(db, user.id, class_id))


@router.get(
    "/classes/{class_id}/stats",
    response_model=ApiResponse[List[StudentActivityStats]],
    responses=NOT_OWNED,
    summary="Per-student activity in a class",
)
async def get_class_stats(
    class_id: UUID,
    user: User = Depends(require_teacher),
    db: AsyncSession = Depends(get_db_session),
    cache: TTLCache = Depends(get_cache),
) -> ApiResponse[List[StudentActivityStats]]:
    """Stats are cached briefly per class; a fresh roster shows up within a minute."""
    return ApiResponse(data=await teacher_service.get_class_stats(db, user.id, class_id, cache=cache))
