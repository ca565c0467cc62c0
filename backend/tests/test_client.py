import unittest

import httpx

from community_chat.api import deps
from community_chat.client.api_client import ChatClient
from community_chat.client.poller import ChatPoller
from community_chat.core.exceptions import InvalidRequest, NotFound, TransientFailure
from community_chat.db.session import get_db
from community_chat.main import app
from community_chat.models.room import RoomKind
from community_chat.schemas.chat import Attachment
from community_chat.services.directory_service import StaticDirectory
from community_chat.services.unread_tracker import UnreadLedger
from tests.helpers import ChatDatabaseTestCase

BASE_URL = "http://test/api/v1/chat"


class TestChatClientRetries(unittest.IsolatedAsyncioTestCase):

    def make_client(self, handler, retries=2):
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=BASE_URL)
        return ChatClient(client=http, retries=retries, retry_delay=0)

    async def test_transient_failures_are_retried(self):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            if len(calls) == 1:
                return httpx.Response(503, json={"detail": "busy", "error": "transient_failure", "retryable": True})
            return httpx.Response(200, json={"rooms": []})

        client = self.make_client(handler)
        self.assertEqual(await client.list_rooms("U1"), [])
        self.assertEqual(calls, ["/api/v1/chat/rooms", "/api/v1/chat/rooms"])

    async def test_client_errors_are_not_retried(self):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(404, json={"detail": "Room not found", "error": "not_found"})

        client = self.make_client(handler)
        with self.assertRaises(NotFound) as ctx:
            await client.list_messages("missing")
        self.assertEqual(ctx.exception.message, "Room not found")
        self.assertEqual(len(calls), 1)

    async def test_network_errors_give_up_after_retries(self):
        calls = []

        def handler(request):
            calls.append(1)
            raise httpx.ConnectError("refused", request=request)

        client = self.make_client(handler, retries=2)
        with self.assertRaises(TransientFailure):
            await client.list_rooms("U1")
        self.assertEqual(len(calls), 3)

    async def test_unknown_error_body(self):
        client = self.make_client(lambda request: httpx.Response(502, text="<html>bad gateway</html>"), retries=0)
        with self.assertRaises(TransientFailure):
            await client.list_rooms("U1")


class TestChatPoller(ChatDatabaseTestCase):
    """
    Poller and client against the real app.
    """

    async def asyncSetUp(self):
        await super().asyncSetUp()

        async def override_get_db():
            async with self.Session() as session:
                yield session

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[deps.get_directory] = lambda: StaticDirectory(["U1", "U2", "U3"])

        http = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url=BASE_URL)
        self.client = ChatClient(client=http, retry_delay=0)
        self.http = http

    async def asyncTearDown(self):
        await self.http.aclose()
        app.dependency_overrides.clear()
        await super().asyncTearDown()

    async def test_missing_community_group_is_rebuilt(self):
        poller = ChatPoller(self.client, "U1", ledger=UnreadLedger())

        rooms = await poller.refresh()

        self.assertTrue(poller.has_community_group(rooms))
        [group] = rooms
        self.assertEqual(group.kind, RoomKind.GROUP)
        self.assertEqual(group.member_ids, ["U1", "U2", "U3"])

        # Already present: no second sync
        again = await poller.refresh()
        self.assertEqual([r.id for r in again], [group.id])

    async def test_unread_badge_clears_when_room_is_opened(self):
        room = await self.client.resolve_direct("U2", "U1")
        poller = ChatPoller(self.client, "U1", ledger=UnreadLedger())
        await self.client.send_message(room.id, "U2", "Ravi", text="hello")

        await poller.refresh()
        self.assertEqual(poller.unread[room.id], 1)

        view = await poller.open(room.id)
        self.assertEqual([m.text for m in view.messages], ["hello"])
        self.assertEqual(poller.unread[room.id], 0)

        await poller.refresh()
        self.assertEqual(poller.unread[room.id], 0)

    async def test_open_room_picks_up_new_messages_and_edits(self):
        room = await self.client.resolve_direct("U1", "U2")
        first = await self.client.send_message(room.id, "U1", text="one")
        poller = ChatPoller(self.client, "U1", ledger=UnreadLedger())
        await poller.refresh()
        await poller.open(room.id)

        await self.client.edit_message(first.id, text="one!")
        await self.client.send_message(room.id, "U2", text="two")
        await poller.refresh()

        self.assertEqual([m.text for m in poller.open_room.messages], ["one!", "two"])
        self.assertEqual(poller.unread[room.id], 0)

    async def test_load_older_pages_back_to_the_start(self):
        room = await self.client.resolve_direct("U1", "U2")
        for i in range(5):
            await self.client.send_message(room.id, "U1", text=f"m{i}")
        poller = ChatPoller(self.client, "U1", ledger=UnreadLedger(), page_size=2)

        view = await poller.open(room.id)
        self.assertEqual([m.text for m in view.messages], ["m3", "m4"])

        await poller.load_older()
        await poller.load_older()

        self.assertEqual([m.text for m in view.messages], ["m0", "m1", "m2", "m3", "m4"])
        self.assertFalse(view.has_more)
        self.assertEqual(await poller.load_older(), [])

    async def test_file_message(self):
        room = await self.client.resolve_direct("U1", "U2")
        with self.assertRaises(InvalidRequest):
            await self.client.send_message(room.id, "U1", text="")

        uploads = []

        async def fake_upload(content, file_name, mime_type):
            uploads.append(file_name)
            return Attachment(
                category="pdf",
                path="chat-files/chat-1-abcdef.pdf",
                public_url="http://cdn/chat-1-abcdef.pdf",
                original_name=file_name,
                size_bytes=len(content),
                mime_type=mime_type,
            )

        self.client.upload_attachment = fake_upload
        message = await self.client.send_file_message(room.id, "U1", "Asha", b"%PDF", "lease.pdf", "application/pdf")

        self.assertEqual(uploads, ["lease.pdf"])
        self.assertIsNone(message.text)
        self.assertEqual(message.media.original_name, "lease.pdf")


if __name__ == '__main__':
    unittest.main()
