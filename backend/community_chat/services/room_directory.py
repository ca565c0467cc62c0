import uuid
from typing import Iterable, List, Optional
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from community_chat.core.config import settings
from community_chat.core.exceptions import InvalidRequest, NotFound
from community_chat.models.room import Room, RoomKind, RoomMember, canonical_members

logger = structlog.get_logger()


class RoomDirectory:
    """
    Owns room identity: direct-room de-duplication and group membership reconciliation.

    Every create goes through `_get_or_create`, which relies on the unique `room_key`:
    when two callers race to create the same room, the loser's INSERT fails, is rolled back,
    and the winner's row is returned instead.
    """

    @classmethod
    async def resolve_direct(cls, session: AsyncSession, member_a: str, member_b: str) -> Room:
        """
        Find or create the single direct room for an unordered pair of participants.
        (A, B) and (B, A) always resolve to the same room.
        """
        member_a = (member_a or "").strip()
        member_b = (member_b or "").strip()
        if not member_a or not member_b:
            raise InvalidRequest("A direct room needs two participant ids")
        if member_a == member_b:
            raise InvalidRequest("A direct room needs two distinct participants")

        room_key = Room.direct_key(member_a, member_b)
        return await cls._get_or_create(
            session,
            room_key=room_key,
            kind=RoomKind.DIRECT,
            name=None,
            member_ids=[member_a, member_b],
        )

    @classmethod
    async def reconcile_group(
        cls,
        session: AsyncSession,
        name: str,
        member_ids: Iterable[str],
        retries: int = 1,
    ) -> Room:
        """
        Find or create the named group and replace its membership with `member_ids`.

        This is a full-set replacement, not a merge: members missing from the input are removed.
        The same input always produces the same membership, so repeated or concurrent calls
        converge on whichever roster was written last.
        """
        name = (name or "").strip()
        if not name:
            raise InvalidRequest("A group room needs a name")
        desired = canonical_members(member_ids)

        room = await cls._get_or_create(
            session,
            room_key=Room.group_key(name),
            kind=RoomKind.GROUP,
            name=name,
            member_ids=desired,
        )

        room_id = room.id
        current = set(room.member_ids)
        stale = current - set(desired)
        missing = [m for m in desired if m not in current]
        if not stale and not missing:
            return room

        # delete-orphan cascade removes the dropped members on flush
        room.members = [m for m in room.members if m.member_id not in stale] + [
            RoomMember(member_id=member_id) for member_id in missing
        ]

        try:
            await session.commit()
        except IntegrityError:
            # Another reconciliation added some of the same members first; recompute the diff
            await session.rollback()
            logger.info("group_reconcile_conflict", room_id=room_id, name=name, retries=retries)
            if retries <= 0:
                raise
            return await cls.reconcile_group(session, name, desired, retries=retries - 1)

        logger.info(
            "group_reconciled",
            room_id=room_id,
            name=name,
            added=len(missing),
            removed=len(stale),
            members=len(desired),
        )
        return await cls._load(session, room_id)

    @classmethod
    async def list_rooms(cls, session: AsyncSession, user_id: str) -> List[Room]:
        """
        Rooms `user_id` belongs to, most recently active first.
        Rooms without messages come last, oldest first.
        """
        stmt = (
            select(Room)
            .join(RoomMember, RoomMember.room_id == Room.id)
            .where(RoomMember.member_id == user_id)
            .order_by(
                Room.last_message_at.is_(None),
                Room.last_message_at.desc(),
                Room.created_at.asc(),
            )
        )
        result = await session.execute(stmt)
        return list(result.scalars().unique().all())

    @classmethod
    async def get_room(cls, session: AsyncSession, room_id: str) -> Room:
        room = await session.get(Room, room_id)
        if room is None:
            raise NotFound("Room not found", room_id=room_id)
        return room

    @classmethod
    async def sync_community_group(
        cls,
        session: AsyncSession,
        directory,
        community_id: Optional[str] = None,
    ) -> Room:
        """
        Rebuild the distinguished all-members group from a fresh directory roster.
        Clients call this whenever the group is missing from their room listing.
        """
        community_id = community_id or settings.COMMUNITY_ID
        member_ids = await directory.fetch_member_ids(community_id)
        logger.info("community_roster_fetched", community_id=community_id, members=len(member_ids))
        return await cls.reconcile_group(session, settings.COMMUNITY_GROUP_NAME, member_ids)

    @classmethod
    async def find_by_key(cls, session: AsyncSession, room_key: str) -> Optional[Room]:
        stmt = (
            select(Room)
            .where(Room.room_key == room_key)
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @classmethod
    async def _get_or_create(
        cls,
        session: AsyncSession,
        room_key: str,
        kind: RoomKind,
        name: Optional[str],
        member_ids: List[str],
    ) -> Room:
        existing = await cls.find_by_key(session, room_key)
        if existing is not None:
            return existing

        room_id = str(uuid.uuid4())
        room = Room(id=room_id, room_key=room_key, kind=kind, name=name)
        room.members = [RoomMember(member_id=m) for m in canonical_members(member_ids)]
        session.add(room)
        try:
            await session.commit()
        except IntegrityError:
            # Lost the race: a concurrent caller created the same room key first
            await session.rollback()
            logger.info("room_create_collapsed", room_key=room_key)
            existing = await cls.find_by_key(session, room_key)
            if existing is None:
                raise
            return existing

        logger.info("room_created", room_id=room_id, kind=kind.value, members=len(member_ids))
        return await cls._load(session, room_id)

    @classmethod
    async def _load(cls, session: AsyncSession, room_id: str) -> Room:
        stmt = (
            select(Room)
            .where(Room.id == room_id)
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one()
