"""
StudyCare Backend — Image Analysis Service
============================================

What:  Upload a photo of homework/notes, get OCR text and an explanation,
       ask follow-up questions about it later.
How:   validate → upload to storage → create an `image` session → vision
       analysis → persist `image_uploads` row and the two transcript turns.

Orchestration Flow (upload_and_analyze):
    ┌──────────┐    ┌─────────────┐    ┌──────────────┐    ┌──────────┐
    │ Validate │───▶│   Storage   │───▶│ Gemini vision│───▶│  Store   │
    │ (type,   │    │  images/... │    │  analysis    │    │  (DB)    │
    │  size)   │    └─────────────┘    └──────────────┘    └──────────┘

    On an AI or database failure the stored object is removed again (best
    effort) and the error propagates.

OCR excerpt:
    The analysis prompt asks for the extracted text first, so the first
    paragraph of the reply is stored as ocr_text; the whole reply is the
    explanation.
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from studycare.exceptions import NotFoundError, StorageError, StudyCareError
from studycare.models import ChatMessage, ImageUpload, StudySession, User
from studycare.schemas.image import ImageAnalysis, ImageAnswer
from studycare.services.chat_service import add_message, create_session
from studycare.services.gemini_service import gemini_service
from studycare.services.llm_base import ChatOptions, LLMService
from studycare.services.prompts import first_paragraph
from studycare.services.storage_service import (
    IMAGE_UPLOAD,
    StorageService,
    storage_service,
    validate_upload,
)

logger = logging.getLogger(__name__)

OCR_PLACEHOLDER = "Text extraction in progress..."


class ImageService:

    def __init__(
        self,
        llm: Optional[LLMService] = None,
        storage: Optional[StorageService] = None,
    ):
        self.llm = llm or gemini_service
        self.storage = storage or storage_service

    @staticmethod
    def _options(user: User) -> ChatOptions:
        return ChatOptions(
            language=user.language_preference,
            simplified_mode=user.simplified_mode,
            step_by_step=True,
        )

    async def _remove_object(self, path: str) -> None:
        try:
            await self.storage.delete_file(path)
        except StorageError as e:
            logger.warning("Stored image %s left behind: %s", path, e.message)

    async def upload_and_analyze(
        self,
        db: AsyncSession,
        user: User,
        filename: Optional[str],
        content_type: Optional[str],
        content: bytes,
        question: Optional[str] = None,
    ) -> ImageAnalysis:
        mime_type = validate_upload(IMAGE_UPLOAD, filename, content_type, len(content))
        image_url, path = await self.storage.upload_file(
            content, filename, IMAGE_UPLOAD.folder, content_type=mime_type
        )

        try:
            analysis = await self.llm.analyze_image(content, mime_type, question, self._options(user))
        except StudyCareError:
            await self._remove_object(path)
            raise

        try:
            session = await create_session(db, user.id, "image")
            upload = ImageUpload(
                user_id=user.id,
                session_id=session.id,
                file_url=image_url,
                storage_path=path,
                mime_type=mime_type,
                ocr_text=first_paragraph(analysis) or OCR_PLACEHOLDER,
                ai_explanation=analysis,
            )
            db.add(upload)

            await add_message(
                db,
                session.id,
                user.id,
                "user",
                question or f"Uploaded image: {filename}",
                metadata={"source": "image_upload", "image_url": image_url},
            )
            await add_message(
                db, session.id, user.id, "assistant", analysis, metadata={"source": "image_analysis"}
            )
            await db.flush()
        except Exception:
            # No row will reference the object once the request rolls back
            await self._remove_object(path)
            raise

        logger.info("Image %s analyzed for %s (%d chars)", upload.id, user.id, len(analysis))
        return ImageAnalysis.model_validate(upload)

    async def _get_upload(
        self, db: AsyncSession, user_id: uuid.UUID, session_id: uuid.UUID
    ) -> ImageUpload:
        upload = await db.scalar(
            select(ImageUpload).where(
                ImageUpload.session_id == session_id, ImageUpload.user_id == user_id
            )
        )
        if upload is None:
            raise NotFoundError("Image analysis not found", resource="Image", resource_id=str(session_id))
        return upload

    async def get_image_analysis(
        self, db: AsyncSession, user_id: uuid.UUID, session_id: uuid.UUID
    ) -> ImageAnalysis:
        return ImageAnalysis.model_validate(await self._get_upload(db, user_id, session_id))

    async def get_history(self, db: AsyncSession, user_id: uuid.UUID) -> List[ImageAnalysis]:
        result = await db.execute(
            select(ImageUpload)
            .where(ImageUpload.user_id == user_id)
            .order_by(ImageUpload.created_at.desc())
        )
        return [ImageAnalysis.model_validate(u) for u in result.scalars().all()]

    async def ask_question(
        self, db: AsyncSession, user: User, session_id: uuid.UUID, question: str
    ) -> ImageAnswer:
        """Re-runs vision on the stored image with the follow-up question."""
        upload = await self._get_upload(db, user.id, session_id)
        image = await self.storage.download_file(upload.storage_path)

        answer = await self.llm.analyze_image(image, upload.mime_type, question, self._options(user))

        await add_message(db, session_id, user.id, "user", question, metadata={"source": "image_question"})
        await add_message(db, session_id, user.id, "assistant", answer, metadata={"source": "image_analysis"})
        return ImageAnswer(session_id=session_id, question=question, answer=answer)

    async def delete_image_analysis(
        self, db: AsyncSession, user_id: uuid.UUID, image_id: uuid.UUID
    ) -> None:
        upload = await db.scalar(
            select(ImageUpload).where(ImageUpload.id == image_id, ImageUpload.user_id == user_id)
        )
        if upload is None:
            raise NotFoundError("Image analysis not found or access denied", resource="Image")

        session_id, path = upload.session_id, upload.storage_path
        await db.execute(delete(ImageUpload).where(ImageUpload.id == image_id))
        await db.execute(delete(ChatMessage).where(ChatMessage.session_id == session_id))
        await db.execute(
            delete(StudySession).where(StudySession.id == session_id, StudySession.user_id == user_id)
        )
        await self._remove_object(path)
        logger.info("Image analysis %s deleted by %s", image_id, user_id)


image_service = ImageService()
