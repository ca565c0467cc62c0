"""
Attachment pipeline: validate, store with fallback, describe.

Validation always runs before any storage attempt. Storage tries each backend in order
(Supabase first, local disk second); the caller only ever sees the resulting descriptor.
"""

import os
import secrets
import string
import time
from typing import Dict, List, Optional, Sequence
import structlog

from community_chat.core.config import settings
from community_chat.core.exceptions import StorageUnavailable, TooLarge, UnsupportedType
from community_chat.schemas.chat import Attachment
from community_chat.services.storage_service import LocalStorage, StorageError, SupabaseStorage

logger = structlog.get_logger()

IMAGE = "image"
VIDEO = "video"
PDF = "pdf"
DOCUMENT = "document"

# Closed set: anything not listed here is rejected on upload
MIME_CATEGORIES: Dict[str, str] = {
    "image/jpeg": IMAGE,
    "image/png": IMAGE,
    "image/gif": IMAGE,
    "image/webp": IMAGE,
    "video/mp4": VIDEO,
    "video/webm": VIDEO,
    "video/quicktime": VIDEO,
    "application/pdf": PDF,
    "application/msword": DOCUMENT,
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": DOCUMENT,
    "text/plain": DOCUMENT,
}

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "video/mp4": ".mp4",
    "video/webm": ".webm",
    "video/quicktime": ".mov",
    "application/pdf": ".pdf",
    "application/msword": ".doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "text/plain": ".txt",
}

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def normalize_mime(mime_type: Optional[str]) -> str:
    """`Text/Plain; charset=utf-8` -> `text/plain`"""
    return (mime_type or "").split(";", 1)[0].strip().lower()


def classify(mime_type: Optional[str]) -> str:
    """Rendering category for a MIME type; unknown types are documents."""
    return MIME_CATEGORIES.get(normalize_mime(mime_type), DOCUMENT)


def is_supported(mime_type: Optional[str]) -> bool:
    return normalize_mime(mime_type) in MIME_CATEGORIES


def format_file_size(size_bytes: int) -> str:
    if size_bytes <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size_bytes)
    i = 0
    while value >= 1024 and i < len(units) - 1:
        value /= 1024
        i += 1
    return f"{round(value, 2):g} {units[i]}"


def object_path(original_name: str, mime_type: str) -> str:
    """
    Storage key for a new chat file: chat-files/chat-<epoch ms>-<6 random chars><ext>.
    The original name only contributes its extension.
    """
    ext = os.path.splitext(original_name or "")[1].lower()
    if not ext or len(ext) > 10 or not ext[1:].isalnum():
        ext = _EXTENSIONS.get(normalize_mime(mime_type), "")
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(6))
    return f"chat-files/chat-{int(time.time() * 1000)}-{suffix}{ext}"


class AttachmentPipeline:

    def __init__(self, backends: Optional[Sequence] = None, max_bytes: Optional[int] = None):
        self.backends: List = list(backends) if backends is not None else [SupabaseStorage(), LocalStorage()]
        self.max_bytes = max_bytes or settings.MAX_ATTACHMENT_BYTES

    def validate(self, mime_type: str, size_bytes: int) -> str:
        mime = normalize_mime(mime_type)
        if mime not in MIME_CATEGORIES:
            raise UnsupportedType(
                f"File type '{mime or 'unknown'}' is not supported for chat",
                mime_type=mime,
            )
        if size_bytes > self.max_bytes:
            raise TooLarge(
                f"File is {format_file_size(size_bytes)}; the limit is {format_file_size(self.max_bytes)}",
                size_bytes=size_bytes,
            )
        return mime

    async def upload(
        self,
        data: bytes,
        mime_type: str,
        original_name: str,
        size_bytes: Optional[int] = None,
    ) -> Attachment:
        """
        Validate and store one attachment.
        Raises UnsupportedType / TooLarge before touching storage, StorageUnavailable once every backend failed.
        """
        effective_size = max(size_bytes or 0, len(data))
        mime = self.validate(mime_type, effective_size)
        path = object_path(original_name, mime)

        for backend in self.backends:
            if getattr(backend, "configured", True) is False:
                continue
            try:
                stored = await backend.save(data, path, mime)
            except StorageError as e:
                logger.warning("storage_backend_failed", backend=backend.name, path=path, error=str(e))
                continue

            logger.info("attachment_stored", backend=backend.name, path=stored.path, size_bytes=len(data))
            return Attachment(
                category=classify(mime),
                path=stored.path,
                public_url=stored.public_url,
                original_name=original_name or os.path.basename(path),
                size_bytes=len(data),
                mime_type=mime,
            )

        logger.error("attachment_storage_exhausted", path=path, backends=[b.name for b in self.backends])
        raise StorageUnavailable("Could not store the attachment right now. Please try again later.")


def guess_mime(file_name: str) -> str:
    """MIME type for a stored chat file, from its extension."""
    ext = os.path.splitext(file_name)[1].lower()
    return next((mime for mime, known in _EXTENSIONS.items() if known == ext), "application/octet-stream")
