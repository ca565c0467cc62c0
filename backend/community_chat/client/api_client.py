"""
HTTP client for the chat API, one method per endpoint.
Error responses are turned back into the ChatError classes the server raised.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
import httpx
import structlog

from community_chat.core.exceptions import ChatError, TransientFailure, error_from_payload
from community_chat.core.time_utils import format_utc
from community_chat.schemas.chat import Attachment, MessageOut, RoomOut

logger = structlog.get_logger()


class ChatClient:

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8000/api/v1/chat",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        retries: int = 2,
        retry_delay: float = 0.5,
    ):
        self._owns_client = client is None
        self.http = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self.retries = retries
        self.retry_delay = retry_delay

    async def __aenter__(self) -> "ChatClient":
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def aclose(self):
        if self._owns_client:
            await self.http.aclose()

    # Rooms

    async def resolve_direct(self, member_a: str, member_b: str) -> RoomOut:
        data = await self._request("POST", "/rooms/direct", json={"participant_ids": [member_a, member_b]})
        return RoomOut.model_validate(data["room"])

    async def resolve_group(self, name: str, member_ids: Sequence[str]) -> RoomOut:
        data = await self._request("POST", "/rooms/group", json={"name": name, "participant_ids": list(member_ids)})
        return RoomOut.model_validate(data["room"])

    async def sync_community(self, community_id: Optional[str] = None) -> RoomOut:
        data = await self._request("POST", "/rooms/community/sync", json={"community_id": community_id})
        return RoomOut.model_validate(data["room"])

    async def list_rooms(self, viewer_id: str) -> List[RoomOut]:
        data = await self._request("GET", "/rooms", params={"viewer_id": viewer_id})
        return [RoomOut.model_validate(r) for r in data["rooms"]]

    # Messages

    async def list_messages(
        self,
        room_id: str,
        before: Optional[datetime] = None,
        limit: int = 30,
    ) -> List[MessageOut]:
        params: Dict[str, Any] = {"room_id": room_id, "limit": limit}
        if before is not None:
            params["before"] = format_utc(before)
        data = await self._request("GET", "/messages", params=params)
        return [MessageOut.model_validate(m) for m in data["messages"]]

    async def send_message(
        self,
        room_id: str,
        sender_id: str,
        sender_display_name: str = "",
        text: Optional[str] = None,
        media: Optional[Attachment] = None,
    ) -> MessageOut:
        payload = {
            "room_id": room_id,
            "sender_id": sender_id,
            "sender_display_name": sender_display_name,
            "text": text,
            "media": media.model_dump() if media else None,
        }
        # No idempotency key: a retried send after a lost response can post twice
        data = await self._request("POST", "/messages", json=payload)
        return MessageOut.model_validate(data["message"])

    async def send_file_message(
        self,
        room_id: str,
        sender_id: str,
        sender_display_name: str,
        content: bytes,
        file_name: str,
        mime_type: str,
        text: str = "",
    ) -> MessageOut:
        """Upload first; the message is only sent once the attachment is stored."""
        attachment = await self.upload_attachment(content, file_name, mime_type)
        return await self.send_message(room_id, sender_id, sender_display_name, text=text or None, media=attachment)

    async def edit_message(self, message_id: str, text: Optional[str] = None, deleted: Optional[bool] = None) -> MessageOut:
        data = await self._request("PUT", f"/messages/{message_id}", json={"text": text, "deleted": deleted})
        return MessageOut.model_validate(data["message"])

    async def delete_message(self, message_id: str) -> MessageOut:
        data = await self._request("DELETE", f"/messages/{message_id}")
        return MessageOut.model_validate(data["message"])

    # Attachments

    async def upload_attachment(self, content: bytes, file_name: str, mime_type: str) -> Attachment:
        files = {"file": (file_name, content, mime_type)}
        data = await self._request("POST", "/attachments", files=files)
        return Attachment.model_validate(data["attachment"])

    async def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        """
        Send one request, retrying transient failures (network errors, 503) a bounded number of times.
        Validation errors and not-found are raised immediately.
        """
        attempt = 0
        while True:
            try:
                response = await self.http.request(method, url, **kwargs)
            except httpx.TransportError as e:
                error: ChatError = TransientFailure(f"Network error: {e}")
            else:
                if response.is_success:
                    return response.json()
                try:
                    payload = response.json()
                except ValueError:
                    payload = None
                error = error_from_payload(response.status_code, payload)

            if not error.retryable or attempt >= self.retries:
                raise error
            attempt += 1
            logger.info("chat_request_retry", method=method, url=url, attempt=attempt, error=error.code)
            await asyncio.sleep(self.retry_delay * attempt)
