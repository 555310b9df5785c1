"""
StudyCare Backend — Object Storage Service
============================================

What:  Validates uploaded images/audio and stores them in the Supabase
       Storage bucket; resolves public URLs and removes objects.
Why:   The image and voice features both upload user files; validation rules
       (extension, declared content type, size) live in one place.
How:   Validation is pure (no I/O); storage calls go through the service-role
       Supabase client owned by the auth gateway.

Object layout:
    <bucket>/
    ├── images/<unix-ms>-<filename>
    └── audio/<unix-ms>-<filename>

Security Model:
    1. Extension check:      fast rejection of obviously wrong files
    2. Content type check:   the multipart part's declared type must match the kind
    3. Size check:           bounded by settings.max_image_size / max_audio_size
    4. Filename sanitizing:  only the basename is kept; unsafe characters replaced
"""

import inspect
import logging
import re
import time
from dataclasses import dataclass
from pathlib import PurePath
from typing import Awaitable, Callable, FrozenSet, Optional, Tuple

from supabase import AsyncClient

from studycare.config import settings
from studycare.exceptions import StorageError, ValidationError

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".webm": "audio/webm",
    ".ogg": "audio/ogg",
    ".m4a": "audio/mp4",
}


@dataclass(frozen=True)
class UploadKind:
    name: str
    folder: str
    extensions: FrozenSet[str]
    mime_types: FrozenSet[str]
    max_size: int


IMAGE_UPLOAD = UploadKind(
    name="image",
    folder="images",
    extensions=frozenset({".jpg", ".jpeg", ".png", ".gif", ".webp"}),
    mime_types=frozenset({"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"}),
    max_size=settings.max_image_size,
)

AUDIO_UPLOAD = UploadKind(
    name="audio",
    folder="audio",
    extensions=frozenset({".mp3", ".wav", ".webm", ".ogg", ".m4a"}),
    mime_types=frozenset({
        "audio/mpeg", "audio/mp3", "audio/wav", "audio/x-wav", "audio/wave",
        "audio/webm", "video/webm", "audio/ogg", "audio/mp4", "audio/x-m4a",
    }),
    max_size=settings.max_audio_size,
)


def content_type_for(filename: str) -> str:
    return CONTENT_TYPES.get(PurePath(filename).suffix.lower(), "application/octet-stream")


def sanitize_filename(filename: str) -> str:
    """Basename only, with anything outside [A-Za-z0-9._-] replaced by '_'."""
    name = PurePath(filename.replace("\\", "/")).name or "upload"
    return re.sub(r"[^A-Za-z0-9._-]", "_", name)


def build_storage_path(folder: str, filename: str, now_ms: Optional[int] = None) -> str:
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{folder}/{timestamp}-{sanitize_filename(filename)}"


def validate_upload(
    kind: UploadKind,
    filename: Optional[str],
    content_type: Optional[str],
    size: int,
) -> str:
    """
    Check an uploaded part against an UploadKind.

    Returns:
        The content type to store the object with.

    Raises:
        ValidationError naming the first rule that failed.
    """
    if not filename:
        raise ValidationError(message=f"No {kind.name} file provided", field=kind.name)

    ext = PurePath(filename).suffix.lower()
    if ext not in kind.extensions:
        raise ValidationError(
            message=(
                f"File type '{ext or filename}' is not supported. "
                f"Allowed types: {', '.join(sorted(kind.extensions))}"
            ),
            field=kind.name,
            context={"extension": ext},
        )

    declared = (content_type or "").split(";")[0].strip().lower()
    if declared and declared != "application/octet-stream" and declared not in kind.mime_types:
        raise ValidationError(
            message=f"Invalid file type. Only {kind.name} files are allowed.",
            field=kind.name,
            context={"content_type": declared},
        )

    if size == 0:
        raise ValidationError(message=f"Uploaded {kind.name} file is empty", field=kind.name)

    if size > kind.max_size:
        max_mb = kind.max_size / (1024 * 1024)
        raise ValidationError(
            message=f"File size ({size / (1024 * 1024):.1f}MB) exceeds maximum of {max_mb:.0f}MB.",
            field=kind.name,
            context={"max_size": kind.max_size, "actual_size": size},
        )

    return content_type_for(filename)


async def _resolve(value):
    # storage3 returns plain values from some async bucket methods
    if inspect.isawaitable(value):
        return await value
    return value


class StorageService:

    def __init__(
        self,
        client_provider: Optional[Callable[[], Awaitable[AsyncClient]]] = None,
        bucket: Optional[str] = None,
    ):
        self._client_provider = client_provider
        self.bucket = bucket or settings.storage_bucket

    async def _bucket(self):
        if self._client_provider is None:
            from studycare.services.auth_gateway import auth_gateway

            self._client_provider = auth_gateway.admin_client
        client = await self._client_provider()
        return client.storage.from_(self.bucket)

    async def upload_file(
        self, content: bytes, filename: str, folder: str, content_type: Optional[str] = None
    ) -> Tuple[str, str]:
        """
        Upload bytes and return (public_url, storage_path).

        Raises:
            StorageError if the upload or URL lookup fails.
        """
        path = build_storage_path(folder, filename)
        content_type = content_type or content_type_for(filename)
        try:
            bucket = await self._bucket()
            await _resolve(bucket.upload(path, content, {"content-type": content_type}))
            public_url = await _resolve(bucket.get_public_url(path))
        except Exception as e:
            logger.error("Upload to %s/%s failed: %s", self.bucket, path, str(e))
            raise StorageError(
                message="Failed to upload file. Please try again.",
                context={"path": path, "error": str(e)},
            )

        logger.info("Stored %s (%d bytes, %s)", path, len(content), content_type)
        return public_url, path

    async def get_public_url(self, path: str) -> str:
        try:
            bucket = await self._bucket()
            return await _resolve(bucket.get_public_url(path))
        except Exception as e:
            raise StorageError(context={"path": path, "error": str(e)})

    async def download_file(self, path: str) -> bytes:
        try:
            bucket = await self._bucket()
            return await _resolve(bucket.download(path))
        except Exception as e:
            logger.error("Download of %s/%s failed: %s", self.bucket, path, str(e))
            raise StorageError(
                message="Failed to read stored file",
                context={"path": path, "error": str(e)},
            )

    async def delete_file(self, path: str) -> None:
        """Remove one object. Raises StorageError; callers doing cleanup catch it."""
        try:
            bucket = await self._bucket()
            await _resolve(bucket.remove([path]))
        except Exception as e:
            logger.warning("Failed to delete %s/%s: %s", self.bucket, path, str(e))
            raise StorageError(
                message="Failed to delete stored file",
                context={"path": path, "error": str(e)},
            )
        logger.info("Deleted stored object %s", path)


storage_service = StorageService()
