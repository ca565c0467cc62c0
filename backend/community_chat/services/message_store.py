from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from community_chat.core.config import settings
from community_chat.core.exceptions import InvalidRequest, NotFound
from community_chat.core.time_utils import get_utc_now, next_after, to_naive_utc
from community_chat.models.message import Message
from community_chat.models.room import Room

logger = structlog.get_logger()


@dataclass
class MessagePage:
    """
    One page of history, oldest first.
    A short page (fewer than `limit` rows) means there is nothing older.
    """
    messages: List[Message]
    limit: int

    @property
    def has_more(self) -> bool:
        return len(self.messages) == self.limit

    @property
    def cursor(self) -> Optional[datetime]:
        """`before` value for fetching the next older page."""
        return self.messages[0].created_at if self.messages else None


class MessageStore:
    """
    Append-only, per-room ordered message log.
    """

    @classmethod
    async def append(
        cls,
        session: AsyncSession,
        room_id: str,
        sender_id: str,
        sender_display_name: str = "",
        text: Optional[str] = None,
        media: Optional[Dict[str, Any]] = None,
    ) -> Message:
        """
        Store a message and bump the room's `last_message_at` in the same commit.

        `created_at` is strictly later than the room's previous message, which keeps
        the timestamp cursor used by `list_page` a total order within the room.
        """
        text = text.strip() if text else None
        if not text and not media:
            raise InvalidRequest("A message needs text or an attachment")

        room = await session.get(Room, room_id, populate_existing=True)
        if room is None:
            raise NotFound("Room not found", room_id=room_id)

        created_at = next_after(room.last_message_at)
        message = Message(
            room_id=room_id,
            sender_id=sender_id,
            sender_display_name=sender_display_name or "",
            text=text,
            media=media,
            created_at=created_at,
        )
        session.add(message)
        # Last writer wins; this only drives list order and unread badges
        room.last_message_at = created_at
        await session.commit()

        logger.info(
            "message_appended",
            room_id=room_id,
            message_id=message.id,
            sender_id=sender_id,
            has_media=bool(media),
        )
        return message

    @classmethod
    async def list_page(
        cls,
        session: AsyncSession,
        room_id: str,
        before: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> MessagePage:
        """
        Newest `limit` messages strictly older than `before` (or the newest overall),
        returned in ascending order.
        Paging by timestamp instead of offset means appends arriving mid-walk never
        shift or duplicate rows in older pages.
        """
        limit = cls.clamp_limit(limit)
        if await session.get(Room, room_id) is None:
            raise NotFound("Room not found", room_id=room_id)

        stmt = select(Message).where(Message.room_id == room_id)
        before = to_naive_utc(before)
        if before is not None:
            stmt = stmt.where(Message.created_at < before)
        stmt = stmt.order_by(Message.created_at.desc()).limit(limit)

        result = await session.execute(stmt)
        newest_first = result.scalars().all()
        return MessagePage(messages=list(reversed(newest_first)), limit=limit)

    @classmethod
    async def get(cls, session: AsyncSession, message_id: str) -> Message:
        message = await session.get(Message, message_id)
        if message is None:
            raise NotFound("Message not found", message_id=message_id)
        return message

    @classmethod
    async def edit(
        cls,
        session: AsyncSession,
        message_id: str,
        text: Optional[str] = None,
        deleted: Optional[bool] = None,
    ) -> Message:
        """
        Apply an edit and/or soft delete. Sender, room and creation time never change.
        Deleting is one-way; a deleted message can no longer be edited.
        """
        message = await cls.get(session, message_id)
        if message.is_deleted:
            if deleted and text is None:
                # Repeated delete, e.g. a client retry
                return message
            raise NotFound("Message has been deleted", message_id=message_id)

        now = get_utc_now()
        if text is not None:
            text = text.strip()
            if not text and not message.media:
                raise InvalidRequest("A message needs text or an attachment")
            message.text = text or None
            message.edited_at = now
        if deleted:
            message.deleted_at = now

        await session.commit()
        logger.info(
            "message_updated",
            message_id=message_id,
            room_id=message.room_id,
            edited=text is not None,
            deleted=bool(deleted),
        )
        return message

    @classmethod
    async def soft_delete(cls, session: AsyncSession, message_id: str) -> Message:
        return await cls.edit(session, message_id, deleted=True)

    @staticmethod
    def clamp_limit(limit: Optional[int]) -> int:
        if limit is None:
            return settings.DEFAULT_PAGE_SIZE
        return max(1, min(int(limit), settings.MAX_PAGE_SIZE))
