"""
StudyCare Backend — Auth Route Handlers
=========================================

What:  Registration, login and the caller's own profile.
Who:   Frontend sign-up/sign-in screens and settings page.

Register and login are the only /api routes without a bearer token; they
sit behind the stricter "auth" rate limit policy (failed attempts count,
successful ones do not).
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from studycare.database import get_db_session
from studycare.dependencies import get_current_user
from studycare.models import User
from studycare.schemas.common import ApiResponse, ErrorResponse
from studycare.schemas.user import (
    AuthPayload,
    LoginRequest,
    RegisterRequest,
    UpdateProfileRequest,
    UserProfile,
)
from studycare.services.auth_service import auth_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post(
    "/register",
    response_model=ApiResponse[AuthPayload],
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Invalid input or sign-up rejected", "model": ErrorResponse},
        500: {"description": "Profile could not be created", "model": ErrorResponse},
    },
    summary="Create an account",
)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[AuthPayload]:
    """
    Creates the auth identity and the profile row, then returns a session
    token. When the provider requires email confirmation, the account is
    confirmed through the admin API so the user can start immediately.
    """
    return ApiResponse(data=await auth_service.register(db, body))


@router.post(
    "/login",
    response_model=ApiResponse[AuthPayload],
    responses={
        401: {"description": "Invalid email or password", "model": ErrorResponse},
        404: {"description": "Identity exists but has no profile", "model": ErrorResponse},
    },
    summary="Sign in with email and password",
)
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[AuthPayload]:
    return ApiResponse(data=await auth_service.login(db, body.email, body.password))


@router.get("/profile", response_model=ApiResponse[UserProfile], summary="Current user's profile")
async def get_profile(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[UserProfile]:
    return ApiResponse(data=await auth_service.get_profile(db, user.id))


@router.put("/profile", response_model=ApiResponse[UserProfile], summary="Update profile settings")
async def update_profile(
    body: UpdateProfileRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[UserProfile]:
    """Only the fields present in the body are changed."""
    return ApiResponse(data=await auth_service.update_profile(db, user.id, body))
