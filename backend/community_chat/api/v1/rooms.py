from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from community_chat.api import deps
from community_chat.db.session import get_db
from community_chat.schemas.chat import (
    ResolveDirectRequest,
    ResolveGroupRequest,
    RoomListResponse,
    RoomOut,
    RoomResponse,
    SyncCommunityRequest,
)
from community_chat.services.directory_service import Directory
from community_chat.services.room_directory import RoomDirectory

router = APIRouter()


@router.post("/direct", response_model=RoomResponse)
async def resolve_direct_room(
    request: ResolveDirectRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Get or create the direct room for a pair of participants. Order of the ids does not matter.
    """
    member_a, member_b = request.participant_ids
    room = await RoomDirectory.resolve_direct(db, member_a, member_b)
    return RoomResponse(room=RoomOut.model_validate(room))


@router.post("/group", response_model=RoomResponse)
async def resolve_group_room(
    request: ResolveGroupRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Get or create a named group and replace its membership with the supplied ids.
    """
    room = await RoomDirectory.reconcile_group(db, request.name, request.participant_ids)
    return RoomResponse(room=RoomOut.model_validate(room))


@router.post("/community/sync", response_model=RoomResponse)
async def sync_community_room(
    request: SyncCommunityRequest,
    db: AsyncSession = Depends(get_db),
    directory: Directory = Depends(deps.get_directory),
):
    """
    Rebuild the all-members community group from the current directory roster.
    """
    room = await RoomDirectory.sync_community_group(db, directory, request.community_id)
    return RoomResponse(room=RoomOut.model_validate(room))


@router.get("", response_model=RoomListResponse)
async def list_rooms(
    viewer_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
):
    """
    Rooms the viewer belongs to, most recent activity first.
    """
    rooms = await RoomDirectory.list_rooms(db, viewer_id)
    return RoomListResponse(rooms=[RoomOut.model_validate(r) for r in rooms])


@router.get("/{room_id}", response_model=RoomResponse)
async def get_room(
    room_id: str,
    db: AsyncSession = Depends(get_db),
):
    room = await RoomDirectory.get_room(db, room_id)
    return RoomResponse(room=RoomOut.model_validate(room))
