"""
StudyCare Backend — Study Pod Route Handlers
==============================================

What:  Study pods: create/list/join/leave/delete, the pod message feed
       with AI guidance, invitations and the classmate picker.

Route order: the fixed paths (/classmates, /invitations) are declared
before /{pod_id} so they are never parsed as a pod id.

AI mention flow:
    POST /api/pods/{id}/messages with "@studycare" in the text returns the
    stored message immediately (201); the AI reply is generated by a
    background task after the response and appears in the next GET of the
    feed.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from studycare.database import get_db_session
from studycare.dependencies import get_current_user
from studycare.models import User
from studycare.schemas.common import ApiResponse, ErrorResponse, MessageResult, UserSummary
from studycare.schemas.pod import (
    AIHelpRequest,
    InvitationCreate,
    InvitationOut,
    PodCreate,
    PodMemberOut,
    PodMessageOut,
    PodOut,
    SendPodMessageRequest,
)
from studycare.services.pod_service import pod_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/pods", tags=["Pods"])

POD_ERRORS = {
    403: {"description": "Not a member of this pod", "model": ErrorResponse},
    404: {"description": "Pod not found", "model": ErrorResponse},
}


# ── Pods ──────────────────────────────────────────────────────────────────

@router.post("", response_model=ApiResponse[PodOut], status_code=status.HTTP_201_CREATED, summary="Create a pod")
async def create_pod(
    body: PodCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[PodOut]:
    """The creator becomes the pod's first admin."""
    return ApiResponse(data=await pod_service.create_pod(db, user, body))


@router.get("", response_model=ApiResponse[List[PodOut]], summary="Pods I belong to")
async def get_pods(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[List[PodOut]]:
    return ApiResponse(data=await pod_service.get_pods(db, user.id))


@router.get("/classmates", response_model=ApiResponse[List[UserSummary]], summary="Invitable classmates")
async def get_classmates(
    pod_id: Optional[UUID] = Query(default=None, alias="podId", description="Exclude members and pending invitees"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[List[UserSummary]]:
    return ApiResponse(data=await pod_service.get_classmates(db, user.id, pod_id))


# ── Invitations (invitee side) ────────────────────────────────────────────

@router.get("/invitations", response_model=ApiResponse[List[InvitationOut]], summary="My pending invitations")
async def get_invitations(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[List[InvitationOut]]:
    return ApiResponse(data=await pod_service.get_invitations(db, user.id))


@router.post(
    "/invitations/{invitation_id}/accept",
    response_model=ApiResponse[PodMemberOut],
    responses={
        400: {"description": "Invitation is no longer pending", "model": ErrorResponse},
        404: {"description": "Invitation not found", "model": ErrorResponse},
    },
    summary="Accept an invitation",
)
async def accept_invitation(
    invitation_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[PodMemberOut]:
    return ApiResponse(data=await pod_service.accept_invitation(db, user.id, invitation_id))


@router.post(
    "/invitations/{invitation_id}/decline",
    response_model=ApiResponse[MessageResult],
    summary="Decline an invitation",
)
async def decline_invitation(
    invitation_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[MessageResult]:
    await pod_service.decline_invitation(db, user.id, invitation_id)
    return ApiResponse(data=MessageResult(message="Invitation declined"))


# ── Single pod ────────────────────────────────────────────────────────────

@router.get("/{pod_id}", response_model=ApiResponse[PodOut], responses=POD_ERRORS, summary="Pod details")
async def get_pod(
    pod_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[PodOut]:
    return ApiResponse(data=await pod_service.get_pod(db, user.id, pod_id))


@router.post("/{pod_id}/join", response_model=ApiResponse[PodMemberOut], responses=POD_ERRORS, summary="Join a pod")
async def join_pod(
    pod_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[PodMemberOut]:
    return ApiResponse(data=await pod_service.join_pod(db, user.id, pod_id))


@router.post(
    "/{pod_id}/leave",
    response_model=ApiResponse[MessageResult],
    responses={
        400: {"description": "The only admin cannot leave", "model": ErrorResponse},
        404: {"description": "Not a member of this pod", "model": ErrorResponse},
    },
    summary="Leave a pod",
)
async def leave_pod(
    pod_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[MessageResult]:
    await pod_service.leave_pod(db, user.id, pod_id)
    return ApiResponse(data=MessageResult(message="Left pod successfully"))


@router.delete("/{pod_id}", response_model=ApiResponse[MessageResult], responses=POD_ERRORS, summary="Delete a pod")
async def delete_pod(
    pod_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[MessageResult]:
    await pod_service.delete_pod(db, user.id, pod_id)
    return ApiResponse(data=MessageResult(message="Pod deleted successfully"))


# ── Messages ──────────────────────────────────────────────────────────────

@router.post(
    "/{pod_id}/messages",
    response_model=ApiResponse[PodMessageOut],
    status_code=status.HTTP_201_CREATED,
    responses=POD_ERRORS,
    summary="Post to the pod feed",
)
async def send_message(
    pod_id: UUID,
    body: SendPodMessageRequest,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[PodMessageOut]:
    message = await pod_service.send_message(db, user, pod_id, body.content, background_tasks)
    return ApiResponse(data=message)


@router.get(
    "/{pod_id}/messages",
    response_model=ApiResponse[List[PodMessageOut]],
    responses=POD_ERRORS,
    summary="Recent pod messages",
)
async def get_messages(
    pod_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[List[PodMessageOut]]:
    return ApiResponse(data=await pod_service.get_messages(db, user.id, pod_id))


@router.post(
    "/{pod_id}/ai-help",
    response_model=ApiResponse[PodMessageOut],
    responses={**POD_ERRORS, 500: {"description": "Failed to get AI help", "model": ErrorResponse}},
    summary="Ask StudyCare AI about the discussion",
)
async def get_ai_help(
    pod_id: UUID,
    body: AIHelpRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[PodMessageOut]:
    message = await pod_service.get_ai_help(
        db, user.id, pod_id, message_id=body.message_id, question=body.question
    )
    return ApiResponse(data=message)


# ── Invitations (admin side) ──────────────────────────────────────────────

@router.post(
    "/{pod_id}/invitations",
    response_model=ApiResponse[InvitationOut],
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Not a student, already a member, or already invited", "model": ErrorResponse},
        403: {"description": "Only pod admins can send invitations", "model": ErrorResponse},
        404: {"description": "Pod or user not found", "model": ErrorResponse},
    },
    summary="Invite a classmate",
)
async def send_invitation(
    pod_id: UUID,
    body: InvitationCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[InvitationOut]:
    return ApiResponse(data=await pod_service.send_invitation(db, user.id, pod_id, body.invitee_id))


@router.get(
    "/{pod_id}/invitations",
    response_model=ApiResponse[List[InvitationOut]],
    responses=POD_ERRORS,
    summary="Invitations sent for a pod",
)
async def get_sent_invitations(
    pod_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[List[InvitationOut]]:
    return ApiResponse(data=await pod_service.get_sent_invitations(db, user.id, pod_id))
