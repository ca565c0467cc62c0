from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime

from community_chat.models.room import RoomKind


class Attachment(BaseModel):
    """Backend-agnostic descriptor of a stored attachment."""
    category: str
    path: str
    public_url: Optional[str] = None
    original_name: str
    size_bytes: int
    mime_type: str


# Rooms

class ResolveDirectRequest(BaseModel):
    participant_ids: List[str] = Field(..., min_length=2, max_length=2)


class ResolveGroupRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    participant_ids: List[str] = Field(default_factory=list)


class SyncCommunityRequest(BaseModel):
    community_id: Optional[str] = None


class RoomOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    kind: RoomKind
    name: Optional[str] = None
    member_ids: List[str]
    last_message_at: Optional[datetime] = None
    created_at: datetime


class RoomResponse(BaseModel):
    room: RoomOut


class RoomListResponse(BaseModel):
    rooms: List[RoomOut]


# Messages

class MessageCreate(BaseModel):
    room_id: str
    sender_id: str = Field(..., min_length=1)
    sender_display_name: str = ""
    text: Optional[str] = Field(None, max_length=5000)
    media: Optional[Attachment] = None


class MessagePatch(BaseModel):
    text: Optional[str] = Field(None, max_length=5000)
    deleted: Optional[bool] = None


class MessageOut(BaseModel):
    id: str
    room_id: str
    sender_id: str
    sender_display_name: str
    text: Optional[str] = None
    media: Optional[Attachment] = None
    created_at: datetime
    edited_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    @classmethod
    def from_message(cls, message) -> "MessageOut":
        # Soft-deleted messages keep their place in history but not their content
        deleted = message.deleted_at is not None
        return cls(
            id=message.id,
            room_id=message.room_id,
            sender_id=message.sender_id,
            sender_display_name=message.sender_display_name or "",
            text=None if deleted else message.text,
            media=None if deleted or not message.media else Attachment(**message.media),
            created_at=message.created_at,
            edited_at=message.edited_at,
            deleted_at=message.deleted_at,
        )


class MessageResponse(BaseModel):
    message: MessageOut


class MessageListResponse(BaseModel):
    messages: List[MessageOut]
    has_more: bool


class AttachmentResponse(BaseModel):
    attachment: Attachment
