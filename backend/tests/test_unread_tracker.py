import json
import tempfile
import unittest
from datetime import datetime, timedelta
from pathlib import Path

from community_chat.core.time_utils import next_after, parse_utc, TICK
from community_chat.services.unread_tracker import UnreadLedger, compute_unread

T0 = datetime(2026, 3, 1, 9, 0, 0)


class TestComputeUnread(unittest.TestCase):

    def test_badges(self):
        rooms = [
            {"id": "quiet", "last_message_at": None},
            {"id": "never-opened", "last_message_at": T0},
            {"id": "new-activity", "last_message_at": T0 + timedelta(minutes=5)},
            {"id": "caught-up", "last_message_at": T0},
        ]
        last_seen = {"new-activity": T0, "caught-up": T0, "quiet": T0}

        self.assertEqual(
            compute_unread(rooms, last_seen),
            {"quiet": 0, "never-opened": 1, "new-activity": 1, "caught-up": 0},
        )

    def test_accepts_iso_strings(self):
        rooms = [{"id": "r1", "last_message_at": "2026-03-01T09:00:01Z"}]
        self.assertEqual(compute_unread(rooms, {"r1": "2026-03-01T09:00:00"}), {"r1": 1})
        self.assertEqual(compute_unread(rooms, {"r1": "2026-03-01T10:00:01+01:00"}), {"r1": 0})


class TestUnreadLedger(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = Path(self.tmp.name) / "unread-u1.json"

    def tearDown(self):
        self.tmp.cleanup()

    def test_mark_seen_only_moves_forward(self):
        ledger = UnreadLedger()
        ledger.mark_seen("r1", T0 + timedelta(minutes=1))
        ledger.mark_seen("r1", T0)

        self.assertEqual(ledger.get("r1"), T0 + timedelta(minutes=1))

    def test_opening_a_room_clears_its_badge(self):
        ledger = UnreadLedger()
        rooms = [{"id": "r1", "last_message_at": T0}, {"id": "r2", "last_message_at": T0}]
        self.assertEqual(ledger.total_unread(rooms), 2)

        ledger.mark_seen("r1", T0)

        self.assertEqual(ledger.unread_counts(rooms), {"r1": 0, "r2": 1})
        self.assertEqual(ledger.total_unread(rooms), 1)

    def test_survives_restart(self):
        UnreadLedger(self.path).mark_seen("r1", T0)

        reloaded = UnreadLedger(self.path)

        self.assertEqual(reloaded.last_seen, {"r1": T0})
        self.assertEqual(json.loads(self.path.read_text()), {"r1": "2026-03-01T09:00:00"})

    def test_corrupt_file_starts_over(self):
        self.path.write_text("{not json", encoding="utf-8")
        ledger = UnreadLedger(self.path)
        self.assertEqual(ledger.last_seen, {})

        self.path.write_text("[1, 2]", encoding="utf-8")
        self.assertEqual(UnreadLedger(self.path).last_seen, {})

        ledger.mark_seen("r1", T0)
        self.assertEqual(UnreadLedger(self.path).get("r1"), T0)


class TestTimeUtils(unittest.TestCase):

    def test_next_after(self):
        self.assertEqual(next_after(None, now=T0), T0)
        self.assertEqual(next_after(T0 - TICK, now=T0), T0)
        self.assertEqual(next_after(T0, now=T0), T0 + TICK)
        # Clock went backwards
        self.assertEqual(next_after(T0, now=T0 - timedelta(seconds=3)), T0 + TICK)

    def test_parse_utc(self):
        self.assertEqual(parse_utc("2026-03-01T09:00:00Z"), T0)
        self.assertEqual(parse_utc("2026-03-01T14:30:00+05:30"), T0)
        self.assertIsNone(parse_utc(""))


if __name__ == '__main__':
    unittest.main()
