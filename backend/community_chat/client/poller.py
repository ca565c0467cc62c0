"""
Polling chat session for one viewer.

There is no push channel: the room list and the open room are re-fetched on a fixed interval
and whenever the user asks for a refresh. Unread badges are recomputed locally after every refresh.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence
import structlog

from community_chat.client.api_client import ChatClient
from community_chat.core.exceptions import ChatError
from community_chat.core.time_utils import get_utc_now, to_naive_utc
from community_chat.models.room import RoomKind
from community_chat.schemas.chat import MessageOut, RoomOut
from community_chat.services.unread_tracker import UnreadLedger

logger = structlog.get_logger()


@dataclass
class RoomView:
    """Messages currently loaded for the open room, oldest first."""
    room_id: str
    messages: List[MessageOut] = field(default_factory=list)
    has_more: bool = True


class ChatPoller:

    def __init__(
        self,
        client: ChatClient,
        viewer_id: str,
        ledger: Optional[UnreadLedger] = None,
        community_group_name: str = "Community",
        page_size: int = 30,
    ):
        self.client = client
        self.viewer_id = viewer_id
        self.ledger = ledger or UnreadLedger()
        self.community_group_name = community_group_name
        self.page_size = page_size

        self.rooms: List[RoomOut] = []
        self.unread: Dict[str, int] = {}
        self.open_room: Optional[RoomView] = None
        self._stopped = asyncio.Event()

    def has_community_group(self, rooms: Sequence[RoomOut]) -> bool:
        return any(r.kind == RoomKind.GROUP and r.name == self.community_group_name for r in rooms)

    async def refresh(self) -> List[RoomOut]:
        """
        Reload the room list and unread badges.
        If the community group is missing from the listing, ask the server to rebuild it first.
        """
        rooms = await self.client.list_rooms(self.viewer_id)
        if not self.has_community_group(rooms):
            logger.info("community_group_missing", viewer_id=self.viewer_id)
            await self.client.sync_community()
            rooms = await self.client.list_rooms(self.viewer_id)

        self.rooms = rooms
        self.unread = self.ledger.unread_counts(rooms)
        if self.open_room is not None:
            await self._refresh_open_room()
        return rooms

    async def open(self, room_id: str) -> RoomView:
        """Load the newest page of a room and mark it seen."""
        messages = await self.client.list_messages(room_id, limit=self.page_size)
        self.open_room = RoomView(room_id=room_id, messages=messages, has_more=len(messages) == self.page_size)
        self.mark_seen(room_id)
        return self.open_room

    async def load_older(self) -> List[MessageOut]:
        """Prepend the next older page, using the oldest loaded message as the cursor."""
        view = self.open_room
        if view is None or not view.has_more or not view.messages:
            return []
        older = await self.client.list_messages(view.room_id, before=view.messages[0].created_at, limit=self.page_size)
        view.messages = older + view.messages
        view.has_more = len(older) == self.page_size
        return older

    def mark_seen(self, room_id: str):
        at = get_utc_now()
        room = next((r for r in self.rooms if r.id == room_id), None)
        if room is not None and room.last_message_at and to_naive_utc(room.last_message_at) > at:
            # Server clock is ahead of ours
            at = to_naive_utc(room.last_message_at)
        self.ledger.mark_seen(room_id, at)
        self.unread[room_id] = 0

    async def run(self, interval: float = 10.0):
        """Poll until `stop()` is called. Failed rounds are logged and retried on the next tick."""
        self._stopped.clear()
        while not self._stopped.is_set():
            try:
                await self.refresh()
            except ChatError as e:
                logger.warning("chat_poll_failed", viewer_id=self.viewer_id, error=e.code, message=e.message)
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    def stop(self):
        self._stopped.set()

    async def _refresh_open_room(self):
        view = self.open_room
        newest = await self.client.list_messages(view.room_id, limit=self.page_size)
        known = {m.id for m in view.messages}
        if len(newest) == self.page_size and not known.intersection(m.id for m in newest):
            # More arrived than one page holds; start over from the newest page
            view.messages = newest
            view.has_more = True
            self.mark_seen(view.room_id)
            return
        # Edits and deletes replace loaded copies; new messages go at the bottom
        by_id = {m.id: m for m in newest}
        view.messages = [by_id.get(m.id, m) for m in view.messages] + [m for m in newest if m.id not in known]
        if newest and newest[-1].id not in known:
            self.mark_seen(view.room_id)
