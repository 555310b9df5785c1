"""
StudyCare Backend — Student Route Handlers
============================================

Join a class with the code a teacher shares; list joined classes.
Role `student` only.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from studycare.database import get_db_session
from studycare.dependencies import require_roles
from studycare.models import User
from studycare.schemas.classroom import Enrollment, JoinClassRequest
from studycare.schemas.common import ApiResponse, ErrorResponse
from studycare.services.student_service import student_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/student", tags=["Student"])

require_student = require_roles("student")


@router.post(
    "/join-class",
    response_model=ApiResponse[Enrollment],
    responses={
        400: {"description": "Already joined this class", "model": ErrorResponse},
        404: {"description": "Invalid class code", "model": ErrorResponse},
    },
    summary="Join a class by code",
)
async def join_class(
    body: JoinClassRequest,
    user: User = Depends(require_student),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[Enrollment]:
    return ApiResponse(data=await student_service.join_class(db, user.id, body.class_code))


@router.get("/classes", response_model=ApiResponse[List[Enrollment]], summary="My classes")
async def get_classes(
    user: User = Depends(require_student),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[List[Enrollment]]:
    return ApiResponse(data=await student_service.get_classes(db, user.id))
