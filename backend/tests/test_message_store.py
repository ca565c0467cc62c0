import unittest
from datetime import datetime
from unittest.mock import patch

from community_chat.core.config import settings
from community_chat.core.exceptions import InvalidRequest, NotFound
from community_chat.core.time_utils import TICK, UTC
from community_chat.schemas.chat import MessageOut
from community_chat.services.message_store import MessageStore
from community_chat.services.room_directory import RoomDirectory
from tests.helpers import ChatDatabaseTestCase


class TestAppend(ChatDatabaseTestCase):

    async def asyncSetUp(self):
        await super().asyncSetUp()
        room = await RoomDirectory.resolve_direct(self.session, "u1", "u2")
        self.room_id = room.id

    async def test_append_bumps_room_activity(self):
        message = await MessageStore.append(self.session, self.room_id, "u1", "Asha", text="  hi  ")
        room = await RoomDirectory.get_room(self.session, self.room_id)

        self.assertEqual(message.text, "hi")
        self.assertEqual(message.sender_display_name, "Asha")
        self.assertEqual(room.last_message_at, message.created_at)

    async def test_timestamps_strictly_increase_when_clock_stalls(self):
        frozen = datetime(2026, 1, 1, 12, 0, 0)
        with patch("community_chat.core.time_utils.get_utc_now", return_value=frozen):
            first = await MessageStore.append(self.session, self.room_id, "u1", text="a")
            second = await MessageStore.append(self.session, self.room_id, "u2", text="b")
            third = await MessageStore.append(self.session, self.room_id, "u1", text="c")

        self.assertEqual(first.created_at, frozen)
        self.assertEqual(second.created_at, frozen + TICK)
        self.assertEqual(third.created_at, frozen + 2 * TICK)

    async def test_media_only_message_is_allowed(self):
        media = {
            "category": "image",
            "path": "chat-files/chat-1-abcdef.png",
            "public_url": "http://files/chat-1-abcdef.png",
            "original_name": "cat.png",
            "size_bytes": 10,
            "mime_type": "image/png",
        }
        message = await MessageStore.append(self.session, self.room_id, "u1", media=media)

        self.assertIsNone(message.text)
        self.assertEqual(MessageOut.from_message(message).media.original_name, "cat.png")

    async def test_empty_message_is_rejected(self):
        with self.assertRaises(InvalidRequest):
            await MessageStore.append(self.session, self.room_id, "u1", text="   ")

        page = await MessageStore.list_page(self.session, self.room_id)
        self.assertEqual(page.messages, [])

    async def test_unknown_room(self):
        with self.assertRaises(NotFound):
            await MessageStore.append(self.session, "missing", "u1", text="hi")


class TestListPage(ChatDatabaseTestCase):

    async def asyncSetUp(self):
        await super().asyncSetUp()
        room = await RoomDirectory.resolve_direct(self.session, "u1", "u2")
        self.room_id = room.id

    async def post(self, count, prefix="m"):
        messages = []
        for i in range(count):
            messages.append(await MessageStore.append(self.session, self.room_id, "u1", text=f"{prefix}{i}"))
        return messages

    async def test_walk_backwards_while_new_messages_arrive(self):
        original = await self.post(7)

        page = await MessageStore.list_page(self.session, self.room_id, limit=3)
        self.assertEqual([m.text for m in page.messages], ["m4", "m5", "m6"])
        self.assertTrue(page.has_more)
        seen = list(page.messages)

        # Newer messages must not shift the older pages
        await self.post(2, prefix="late")

        while page.has_more:
            page = await MessageStore.list_page(self.session, self.room_id, before=page.cursor, limit=3)
            seen = page.messages + seen

        self.assertEqual([m.id for m in seen], [m.id for m in original])
        self.assertEqual(len({m.id for m in seen}), len(seen))

    async def test_exact_multiple_ends_with_empty_page(self):
        await self.post(4)

        first = await MessageStore.list_page(self.session, self.room_id, limit=2)
        second = await MessageStore.list_page(self.session, self.room_id, before=first.cursor, limit=2)
        third = await MessageStore.list_page(self.session, self.room_id, before=second.cursor, limit=2)

        self.assertEqual([m.text for m in second.messages], ["m0", "m1"])
        self.assertTrue(second.has_more)
        self.assertEqual(third.messages, [])
        self.assertFalse(third.has_more)
        self.assertIsNone(third.cursor)

    async def test_empty_room(self):
        page = await MessageStore.list_page(self.session, self.room_id)
        self.assertEqual(page.messages, [])
        self.assertFalse(page.has_more)

    async def test_before_accepts_aware_datetimes(self):
        messages = await self.post(2)

        aware = UTC.localize(messages[1].created_at)
        page = await MessageStore.list_page(self.session, self.room_id, before=aware)

        self.assertEqual([m.id for m in page.messages], [messages[0].id])

    async def test_unknown_room(self):
        with self.assertRaises(NotFound):
            await MessageStore.list_page(self.session, "missing")

    def test_clamp_limit(self):
        self.assertEqual(MessageStore.clamp_limit(None), settings.DEFAULT_PAGE_SIZE)
        self.assertEqual(MessageStore.clamp_limit(0), 1)
        self.assertEqual(MessageStore.clamp_limit(10_000), settings.MAX_PAGE_SIZE)


class TestEditAndDelete(ChatDatabaseTestCase):

    async def asyncSetUp(self):
        await super().asyncSetUp()
        room = await RoomDirectory.resolve_direct(self.session, "u1", "u2")
        self.message = await MessageStore.append(self.session, room.id, "u1", text="helo")

    async def test_edit_keeps_identity_and_order(self):
        created_at = self.message.created_at
        edited = await MessageStore.edit(self.session, self.message.id, text="hello")

        self.assertEqual(edited.text, "hello")
        self.assertIsNotNone(edited.edited_at)
        self.assertEqual(edited.created_at, created_at)
        self.assertEqual(edited.sender_id, "u1")

    async def test_edit_to_nothing_is_rejected(self):
        with self.assertRaises(InvalidRequest):
            await MessageStore.edit(self.session, self.message.id, text="  ")

    async def test_delete_blanks_content_but_keeps_the_slot(self):
        deleted = await MessageStore.soft_delete(self.session, self.message.id)
        out = MessageOut.from_message(deleted)

        self.assertIsNotNone(out.deleted_at)
        self.assertIsNone(out.text)
        self.assertIsNone(out.media)

        page = await MessageStore.list_page(self.session, self.message.room_id)
        self.assertEqual([m.id for m in page.messages], [self.message.id])

    async def test_repeated_delete_is_a_no_op(self):
        first = await MessageStore.soft_delete(self.session, self.message.id)
        deleted_at = first.deleted_at
        second = await MessageStore.soft_delete(self.session, self.message.id)

        self.assertEqual(second.deleted_at, deleted_at)

    async def test_deleted_message_cannot_be_edited(self):
        await MessageStore.soft_delete(self.session, self.message.id)
        with self.assertRaises(NotFound):
            await MessageStore.edit(self.session, self.message.id, text="back")

    async def test_unknown_message(self):
        with self.assertRaises(NotFound):
            await MessageStore.edit(self.session, "missing", text="x")


if __name__ == '__main__':
    unittest.main()
