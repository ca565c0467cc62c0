from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from community_chat.db.session import get_db
from community_chat.schemas.chat import (
    MessageCreate,
    MessageListResponse,
    MessageOut,
    MessagePatch,
    MessageResponse,
)
from community_chat.services.message_store import MessageStore

router = APIRouter()


@router.get("", response_model=MessageListResponse)
async def list_messages(
    room_id: str = Query(..., min_length=1),
    before: Optional[datetime] = Query(None, description="created_at of the oldest message already loaded"),
    limit: Optional[int] = Query(None, ge=1),
    db: AsyncSession = Depends(get_db),
):
    """
    One page of room history, oldest first. `has_more` is false once the start of the room is reached.
    """
    page = await MessageStore.list_page(db, room_id, before=before, limit=limit)
    return MessageListResponse(
        messages=[MessageOut.from_message(m) for m in page.messages],
        has_more=page.has_more,
    )


@router.post("", response_model=MessageResponse)
async def send_message(
    request: MessageCreate,
    db: AsyncSession = Depends(get_db),
):
    message = await MessageStore.append(
        db,
        room_id=request.room_id,
        sender_id=request.sender_id,
        sender_display_name=request.sender_display_name,
        text=request.text,
        media=request.media.model_dump() if request.media else None,
    )
    return MessageResponse(message=MessageOut.from_message(message))


@router.put("/{message_id}", response_model=MessageResponse)
async def edit_message(
    message_id: str,
    request: MessagePatch,
    db: AsyncSession = Depends(get_db),
):
    """
    Edit the text and/or soft-delete a message.
    """
    message = await MessageStore.edit(db, message_id, text=request.text, deleted=request.deleted)
    return MessageResponse(message=MessageOut.from_message(message))


@router.delete("/{message_id}", response_model=MessageResponse)
async def delete_message(
    message_id: str,
    db: AsyncSession = Depends(get_db),
):
    message = await MessageStore.soft_delete(db, message_id)
    return MessageResponse(message=MessageOut.from_message(message))
