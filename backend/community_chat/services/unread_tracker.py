"""
Client-local unread state.

Nothing here is authoritative: there are no server-side read receipts. Each viewer keeps a
`room_id -> last_seen_at` ledger and derives "has unseen activity" badges from the rooms'
`last_message_at`. Losing the ledger only makes every active room look unread again.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Union
import structlog

from community_chat.core.time_utils import format_utc, get_utc_now, parse_utc, to_naive_utc

logger = structlog.get_logger()


def _room_field(room: Any, name: str):
    if isinstance(room, Mapping):
        return room.get(name)
    return getattr(room, name, None)


def _as_datetime(value: Union[datetime, str, None]) -> Optional[datetime]:
    if isinstance(value, str):
        return parse_utc(value)
    return to_naive_utc(value)


def compute_unread(rooms: Iterable[Any], last_seen: Mapping[str, Union[datetime, str]]) -> Dict[str, int]:
    """
    Unread badge per room: 1 when the room has a message newer than the viewer's
    last visit (or was never visited), 0 otherwise.

    The count is "has unseen activity", not a number of unseen messages.
    """
    unread: Dict[str, int] = {}
    for room in rooms:
        room_id = str(_room_field(room, "id"))
        last_message_at = _as_datetime(_room_field(room, "last_message_at"))
        seen = _as_datetime(last_seen.get(room_id))
        unread[room_id] = int(last_message_at is not None and (seen is None or last_message_at > seen))
    return unread


class UnreadLedger:
    """
    Per-viewer last-seen map, optionally persisted to a JSON file.

    Entries are created lazily, only ever move forward in time and are never removed.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path else None
        self._last_seen: Dict[str, datetime] = {}
        if self.path is not None:
            self._load()

    @property
    def last_seen(self) -> Dict[str, datetime]:
        return dict(self._last_seen)

    def get(self, room_id: str) -> Optional[datetime]:
        return self._last_seen.get(room_id)

    def mark_seen(self, room_id: str, at: Optional[datetime] = None) -> datetime:
        """Record that the viewer has seen `room_id` up to `at` (default: now)."""
        at = to_naive_utc(at) or get_utc_now()
        previous = self._last_seen.get(room_id)
        if previous is None or at > previous:
            self._last_seen[room_id] = at
            self._save()
        return self._last_seen[room_id]

    def unread_counts(self, rooms: Iterable[Any]) -> Dict[str, int]:
        return compute_unread(rooms, self._last_seen)

    def total_unread(self, rooms: Iterable[Any]) -> int:
        return sum(self.unread_counts(rooms).values())

    def _load(self):
        if not self.path.exists():
            return
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            self._last_seen = {
                str(room_id): parsed
                for room_id, value in raw.items()
                if (parsed := parse_utc(value)) is not None
            }
        except (OSError, ValueError, AttributeError) as e:
            # Start over: everything shows as unread until rooms are visited again
            logger.warning("unread_ledger_unreadable", path=str(self.path), error=str(e))
            self._last_seen = {}

    def _save(self):
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = {room_id: format_utc(at) for room_id, at in self._last_seen.items()}
            self.path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
        except OSError as e:
            logger.warning("unread_ledger_not_saved", path=str(self.path), error=str(e))
