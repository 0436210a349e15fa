from __future__ import annotations

from datetime import datetime
from pathlib import PurePosixPath
from uuid import uuid4

from loguru import logger

from ai_chat_backend.errors import InvalidInputError
from ai_chat_backend.persistence.blobs import LocalBlobStorage
from ai_chat_backend.persistence.models import Attachment, MediaKind
from ai_chat_backend.persistence.repository import ChatRepository

MAX_UPLOAD_BYTES = 50 * 1024 * 1024

SUPPORTED_IMAGE_TYPES = frozenset({
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/bmp",
})


def media_kind_for_mime(mime_type: str | None) -> MediaKind:
    mime = (mime_type or "").strip().lower()
    if mime.startswith("image/"):
        return MediaKind.IMAGE
    if mime.startswith("audio/"):
        return MediaKind.AUDIO
    if mime.startswith("video/"):
        return MediaKind.VIDEO
    if "pdf" in mime or "document" in mime or mime.startswith("text/"):
        return MediaKind.DOCUMENT
    return MediaKind.OTHER


def generate_storage_key(original_name: str | None, *, now: datetime | None = None) -> str:
    """Server-side file name: ``YYYYmmdd_HHMMSS_<8 hex><ext>`` keeping the client's extension."""
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    suffix = PurePosixPath((original_name or "").replace("\\", "/")).suffix.lower()
    return f"{stamp}_{uuid4().hex[:8]}{suffix}"


def register_upload(
    repository: ChatRepository,
    blobs: LocalBlobStorage,
    data: bytes,
    original_name: str | None,
    mime_type: str,
    *,
    width: int | None = None,
    height: int | None = None,
) -> Attachment:
    """Store uploaded bytes and record them as an unbound attachment."""
    if not data:
        raise InvalidInputError("Uploaded file is empty")
    if len(data) > MAX_UPLOAD_BYTES:
        raise InvalidInputError(f"Uploaded file exceeds {MAX_UPLOAD_BYTES // (1024 * 1024)} MB limit")

    mime = (mime_type or "application/octet-stream").strip().lower()
    media_kind = media_kind_for_mime(mime)
    if media_kind is MediaKind.IMAGE and mime not in SUPPORTED_IMAGE_TYPES:
        raise InvalidInputError(f"Unsupported image type: {mime}")

    storage_key = generate_storage_key(original_name)
    blobs.write_file(storage_key, data)
    attachment = repository.create_attachment(
        storage_key=storage_key,
        original_name=(original_name or "").strip() or None,
        mime_type=mime,
        byte_size=len(data),
        media_kind=media_kind,
        width=width,
        height=height,
    )
    logger.info(
        f"Upload registered: key={storage_key}, original={attachment.original_name}, "
        f"kind={media_kind.value}, bytes={len(data)}"
    )
    return attachment
