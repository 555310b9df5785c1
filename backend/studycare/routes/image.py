"""
StudyCare Backend — Image Route Handlers
==========================================

What:  Upload a photo of homework/notes for AI analysis, ask follow-up
       questions about it, list and delete past analyses.
How:   Multipart upload (field `image`); the file is read into memory
       (≤10 MB by default), validated, stored, then analyzed.

Path naming: GET/POST on /{session_id} address an analysis by its image
session; DELETE /{image_id} addresses the upload row itself.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from studycare.database import get_db_session
from studycare.dependencies import get_current_user
from studycare.models import User
from studycare.schemas.common import ApiResponse, ErrorResponse, MessageResult
from studycare.schemas.image import ImageAnalysis, ImageAnswer, ImageQuestionRequest
from studycare.services.image_service import image_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/image", tags=["Image"])


@router.post(
    "/upload",
    response_model=ApiResponse[ImageAnalysis],
    responses={
        400: {"description": "Missing, empty, oversized or unsupported file", "model": ErrorResponse},
        500: {"description": "Storage or AI failure", "model": ErrorResponse},
    },
    summary="Upload and analyze an image",
)
async def upload_image(
    image: Optional[UploadFile] = File(default=None, description="JPEG, PNG, GIF or WebP"),
    question: Optional[str] = Form(default=None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[ImageAnalysis]:
    content = await image.read() if image is not None else b""
    filename = image.filename if image is not None else None
    content_type = image.content_type if image is not None else None
    logger.info("Image upload from %s: %s (%d bytes)", user.id, filename, len(content))

    analysis = await image_service.upload_and_analyze(
        db, user, filename, content_type, content, question=question or None
    )
    return ApiResponse(data=analysis)


@router.get("/history", response_model=ApiResponse[List[ImageAnalysis]], summary="My image analyses")
async def get_history(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[List[ImageAnalysis]]:
    return ApiResponse(data=await image_service.get_history(db, user.id))


@router.get(
    "/{session_id}",
    response_model=ApiResponse[ImageAnalysis],
    responses={404: {"description": "Image analysis not found", "model": ErrorResponse}},
    summary="One image analysis",
)
async def get_analysis(
    session_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[ImageAnalysis]:
    return ApiResponse(data=await image_service.get_image_analysis(db, user.id, session_id))


@router.post(
    "/{session_id}/question",
    response_model=ApiResponse[ImageAnswer],
    responses={404: {"description": "Image analysis not found", "model": ErrorResponse}},
    summary="Ask a follow-up question about an image",
)
async def ask_question(
    session_id: UUID,
    body: ImageQuestionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[ImageAnswer]:
    return ApiResponse(data=await image_service.ask_question(db, user, session_id, body.question))


@router.delete(
    "/{image_id}",
    response_model=ApiResponse[MessageResult],
    responses={404: {"description": "Image analysis not found or access denied", "model": ErrorResponse}},
    summary="Delete an image analysis",
)
async def delete_analysis(
    image_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[MessageResult]:
    await image_service.delete_image_analysis(db, user.id, image_id)
    return ApiResponse(data=MessageResult(message="Image analysis deleted successfully"))
