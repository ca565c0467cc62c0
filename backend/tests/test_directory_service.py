import unittest
from unittest.mock import AsyncMock, patch

import httpx

from community_chat.core.exceptions import NotFound, TransientFailure
from community_chat.services.directory_service import HttpDirectory, StaticDirectory, extract_member_ids

URL = "http://directory.local/communities/c1/members"


def response(status_code, **kwargs):
    return httpx.Response(status_code, request=httpx.Request("GET", URL), **kwargs)


class TestExtractMemberIds(unittest.TestCase):

    def test_plain_list(self):
        self.assertEqual(extract_member_ids(["b", "a", "b"]), ["a", "b"])

    def test_residents_and_staff(self):
        payload = {
            "residents": [{"authUserId": "r1"}, {"auth_user_id": "r2"}, {"name": "no account"}],
            "staff": [{"id": "s1"}, "s2"],
        }
        self.assertEqual(extract_member_ids(payload), ["r1", "r2", "s1", "s2"])

    def test_participant_ids(self):
        self.assertEqual(extract_member_ids({"participant_ids": ["x", " y "]}), ["x", "y"])


class TestDirectories(unittest.IsolatedAsyncioTestCase):

    async def test_static_directory(self):
        directory = StaticDirectory(["u2", "u1", "u1"])
        self.assertEqual(await directory.fetch_member_ids("any"), ["u1", "u2"])

    async def test_http_directory(self):
        directory = HttpDirectory("http://directory.local/", timeout=2)
        body = {"residents": [{"authUserId": "r1"}], "staff": [{"authUserId": "s1"}]}
        with patch.object(httpx.AsyncClient, "get", new=AsyncMock(return_value=response(200, json=body))) as get:
            member_ids = await directory.fetch_member_ids("c1")

        self.assertEqual(member_ids, ["r1", "s1"])
        self.assertEqual(get.await_args.args[0], URL)

    async def test_http_directory_failures(self):
        directory = HttpDirectory("http://directory.local", timeout=2)
        cases = [
            (AsyncMock(return_value=response(502, text="bad gateway")), TransientFailure),
            (AsyncMock(return_value=response(404, json={})), NotFound),
            (AsyncMock(side_effect=httpx.ConnectTimeout("slow")), TransientFailure),
        ]
        for mock_get, expected in cases:
            with self.subTest(expected=expected.__name__):
                with patch.object(httpx.AsyncClient, "get", new=mock_get):
                    with self.assertRaises(expected):
                        await directory.fetch_member_ids("c1")


if __name__ == '__main__':
    unittest.main()
