"""
Chat Message Model - append-only log per room.
"""

import uuid
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, JSON, Index

from community_chat.core.time_utils import get_utc_now
from community_chat.db.base import Base


class Message(Base):
    """
    One message in a room. Only `text`, `edited_at` and `deleted_at` ever change after insert.
    """
    __tablename__ = "chat_messages"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    room_id = Column(String(36), ForeignKey("chat_rooms.id"), nullable=False)

    sender_id = Column(String(255), nullable=False)
    sender_display_name = Column(String(255), nullable=False, default="")
    text = Column(Text, nullable=True)

    # Attachment descriptor: {category, path, public_url, original_name, size_bytes, mime_type}
    media = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=get_utc_now, nullable=False)
    edited_at = Column(DateTime, nullable=True)
    deleted_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_chat_messages_room_created", "room_id", "created_at"),
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
