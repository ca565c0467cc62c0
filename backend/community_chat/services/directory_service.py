"""
Resident/staff directory clients.

The community group's membership is always recomputed from one of these right before reconciliation.
"""

from typing import Any, Iterable, List, Optional, Protocol
import httpx
import structlog

from community_chat.core.config import settings
from community_chat.core.exceptions import NotFound, TransientFailure
from community_chat.models.room import canonical_members

logger = structlog.get_logger()


class Directory(Protocol):
    async def fetch_member_ids(self, community_id: str) -> List[str]:
        ...


class StaticDirectory:
    """Fixed roster, e.g. from COMMUNITY_MEMBER_IDS."""

    def __init__(self, member_ids: Iterable[str]):
        self.member_ids = canonical_members(member_ids)

    async def fetch_member_ids(self, community_id: str) -> List[str]:
        return list(self.member_ids)


class HttpDirectory:
    """
    Directory service reached over HTTP.

    GET {base_url}/communities/{community_id}/members returns either
    {"participant_ids": [...]} or {"residents": [...], "staff": [...]} where each entry is an id
    or an object carrying `authUserId` / `id`.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        self.base_url = (base_url or settings.DIRECTORY_URL).rstrip("/")
        self.timeout = timeout or settings.DIRECTORY_TIMEOUT

    async def fetch_member_ids(self, community_id: str) -> List[str]:
        url = f"{self.base_url}/communities/{community_id}/members"
        async with httpx.AsyncClient() as client:
            try:
                response = await client.get(url, timeout=self.timeout)
            except httpx.HTTPError as e:
                logger.error("directory_unreachable", url=url, error=str(e))
                raise TransientFailure("Directory service unreachable") from e

        if response.status_code >= 500:
            logger.error("directory_error", status=response.status_code, body=response.text[:500])
            raise TransientFailure("Directory service error")
        if response.status_code == 404:
            raise NotFound("Community not found in directory", community_id=community_id)
        response.raise_for_status()
        return extract_member_ids(response.json())


def _member_id(entry: Any) -> Optional[str]:
    if isinstance(entry, dict):
        value = entry.get("authUserId") or entry.get("auth_user_id") or entry.get("id")
        return str(value) if value else None
    if entry is None:
        return None
    return str(entry)


def extract_member_ids(payload: Any) -> List[str]:
    if isinstance(payload, list):
        entries = payload
    else:
        entries = list(payload.get("participant_ids") or [])
        entries += list(payload.get("residents") or [])
        entries += list(payload.get("staff") or [])
    return canonical_members(m for m in (_member_id(e) for e in entries) if m)


def default_directory() -> Directory:
    if settings.DIRECTORY_URL:
        return HttpDirectory()
    return StaticDirectory(settings.community_member_ids)
