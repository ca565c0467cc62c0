"""
Chat rooms and their membership.

A room's identity is its `room_key`:
- direct rooms: "dm:<low>:<high>" built from the sorted member pair
- group rooms:  "group:<name>"
The unique constraint on `room_key` is what collapses concurrent creates of the same room into one row.
"""

import enum
import uuid
from typing import Iterable, List
from sqlalchemy import Column, String, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship

from community_chat.core.time_utils import get_utc_now
from community_chat.db.base import Base


class RoomKind(str, enum.Enum):
    DIRECT = "direct"
    GROUP = "group"


class Room(Base):
    __tablename__ = "chat_rooms"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    kind = Column(Enum(RoomKind, values_callable=lambda e: [m.value for m in e]), nullable=False)
    name = Column(String(255), nullable=True)
    room_key = Column(String(600), unique=True, nullable=False, index=True)

    last_message_at = Column(DateTime, nullable=True, index=True)
    created_at = Column(DateTime, default=get_utc_now, nullable=False)
    updated_at = Column(DateTime, default=get_utc_now, onupdate=get_utc_now, nullable=False)

    members = relationship(
        "RoomMember",
        back_populates="room",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def member_ids(self) -> List[str]:
        return sorted(m.member_id for m in self.members)

    @staticmethod
    def direct_key(member_a: str, member_b: str) -> str:
        low, high = sorted((member_a, member_b))
        return f"dm:{low}:{high}"

    @staticmethod
    def group_key(name: str) -> str:
        return f"group:{name}"

    def has_member(self, member_id: str) -> bool:
        return any(m.member_id == member_id for m in self.members)


class RoomMember(Base):
    __tablename__ = "chat_room_members"

    room_id = Column(String(36), ForeignKey("chat_rooms.id", ondelete="CASCADE"), primary_key=True)
    member_id = Column(String(255), primary_key=True, index=True)
    added_at = Column(DateTime, default=get_utc_now, nullable=False)

    room = relationship("Room", back_populates="members")


def canonical_members(member_ids: Iterable[str]) -> List[str]:
    """Trimmed, de-duplicated, sorted member ids. Blank ids are dropped."""
    return sorted({str(m).strip() for m in member_ids if m is not None and str(m).strip()})
