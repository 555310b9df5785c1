"""
StudyCare Backend — Caregiver Route Handlers
==============================================

What:  Link a child by email, list and unlink linked children, and view a
       linked child's study activity.
Who:   Caregiver dashboard. Every route requires role `caregiver`.
"""

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from studycare.database import get_db_session
from studycare.dependencies import require_roles
from studycare.models import User
from studycare.schemas.caregiver import CaregiverLink, ChildActivity, LinkChildRequest
from studycare.schemas.common import ApiResponse, ErrorResponse, MessageResult
from studycare.services.caregiver_service import caregiver_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/caregiver", tags=["Caregiver"])

require_caregiver = require_roles("caregiver")


@router.post(
    "/link-child",
    response_model=ApiResponse[CaregiverLink],
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Already linked, or the account is not a student", "model": ErrorResponse},
        404: {"description": "No account with this email", "model": ErrorResponse},
    },
    summary="Link a student account by email",
)
async def link_child(
    body: LinkChildRequest,
    user: User = Depends(require_caregiver),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[CaregiverLink]:
    """
    The email is matched case-insensitively against profiles first and the
    auth provider second; a student who signed up but never got a profile
    row is provisioned on the spot.
    """
    return ApiResponse(data=await caregiver_service.link_child(db, user.id, body.child_email))


@router.get("/children", response_model=ApiResponse[List[CaregiverLink]], summary="Linked children")
async def get_children(
    user: User = Depends(require_caregiver),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[List[CaregiverLink]]:
    return ApiResponse(data=await caregiver_service.get_linked_children(db, user.id))


@router.get(
    "/child/{child_id}/activity",
    response_model=ApiResponse[ChildActivity],
    responses={
        403: {"description": "Child not linked to this caregiver", "model": ErrorResponse},
        404: {"description": "Child not found", "model": ErrorResponse},
    },
    summary="Study activity of a linked child",
)
async def get_child_activity(
    child_id: UUID,
    user: User = Depends(require_caregiver),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[ChildActivity]:
    return ApiResponse(data=await caregiver_service.get_child_activity(db, user.id, child_id))


@router.delete("/unlink/{child_id}", response_model=ApiResponse[MessageResult], summary="Unlink a child")
async def unlink_child(
    child_id: UUID,
    user: User = Depends(require_caregiver),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[MessageResult]:
    await caregiver_service.unlink_child(db, user.id, child_id)
    return ApiResponse(data=MessageResult(message="Child unlinked successfully"))
