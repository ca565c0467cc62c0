import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import aiofiles
import httpx
import structlog

from community_chat.core.config import settings

logger = structlog.get_logger()


@dataclass
class StoredObject:
    path: str
    public_url: Optional[str] = None


class StorageError(Exception):
    """A single storage backend could not take the file."""


class SupabaseStorage:
    """
    Supabase Storage over its REST API.
    Objects are written with upsert disabled, so a name collision fails instead of overwriting.
    """
    name = "supabase"

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        bucket: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url if base_url is not None else settings.SUPABASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.SUPABASE_KEY
        self.bucket = bucket or settings.SUPABASE_BUCKET
        self.timeout = timeout or settings.STORAGE_TIMEOUT

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"

    async def save(self, content: bytes, path: str, mime_type: str) -> StoredObject:
        if not self.configured:
            raise StorageError("Supabase storage is not configured")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "apikey": self.api_key,
            "Content-Type": mime_type,
            "cache-control": "3600",
            "x-upsert": "false",
        }
        url = f"{self.base_url}/storage/v1/object/{self.bucket}/{path}"

        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(url, headers=headers, content=content, timeout=self.timeout)
            except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
                # ValueError covers headers that cannot be encoded, e.g. a non-ASCII key
                raise StorageError(f"Supabase request failed: {e}") from e

        if response.status_code not in (200, 201):
            raise StorageError(f"Supabase rejected upload: {response.status_code} {response.text[:200]}")

        return StoredObject(path=path, public_url=self.public_url(path))


class LocalStorage:
    """
    Files under UPLOAD_DIR on this server's disk, served back by the files endpoint.
    """
    name = "local"

    def __init__(self, root: Optional[str] = None, public_base_url: Optional[str] = None):
        self.root = Path(root or settings.UPLOAD_DIR)
        base = public_base_url if public_base_url is not None else settings.PUBLIC_BASE_URL
        self.public_base_url = base.rstrip("/")

    def public_url(self, path: str) -> str:
        file_name = os.path.basename(path)
        return f"{self.public_base_url}{settings.API_V1_STR}/chat/files/{file_name}"

    def resolve(self, file_name: str) -> Path:
        """
        Absolute path of a stored chat file. Rejects names that would escape the upload directory.
        """
        base = (self.root / "chat-files").resolve()
        candidate = (base / file_name).resolve()
        if candidate.parent != base:
            raise ValueError("Invalid file path")
        return candidate

    async def save(self, content: bytes, path: str, mime_type: str) -> StoredObject:
        target = self.root / path
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(target, "wb") as f:
                await f.write(content)
        except OSError as e:
            raise StorageError(f"Local write failed: {e}") from e

        return StoredObject(path=path, public_url=self.public_url(path))
