"""Tests for Discord payload parsing, gateway dispatch and REST sends."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from ircbridge.errors import TransportError
from ircbridge.transports.discord import (
    API_BASE,
    DiscordClient,
    parse_channel,
    parse_member,
    parse_message,
    parse_user,
    split_message,
)

GUILD_CREATE = {
    "id": "g1",
    "name": "Test Guild",
    "channels": [
        {"id": "1", "name": "general", "type": 0},
        {"id": "2", "name": "voice", "type": 2},
        {"id": "3", "name": "news", "type": 5},
    ],
    "members": [
        {"user": {"id": "100", "username": "alice"}, "nick": "Ali"},
        {"user": {"id": "200", "username": "bob"}, "nick": None},
    ],
}


class TestParsers:
    def test_user(self):
        user = parse_user({"id": 5, "username": "x", "bot": True})
        assert user.id == "5"
        assert user.bot is True

    def test_member_display_name(self):
        member = parse_member({"user": {"id": "1", "username": "alice"}, "nick": "Ali"})
        assert member.display_name == "Ali"
        assert parse_member({"user": {"id": "1", "username": "alice"}}).display_name == "alice"

    def test_channel_kinds(self):
        assert parse_channel({"id": "1", "name": "a", "type": 0}, "g").is_text
        assert not parse_channel({"id": "2", "name": "b", "type": 2}, "g").is_text
        assert parse_channel({"id": "3", "name": "c", "type": 0, "guild_id": 9}).guild_id == "9"

    def test_message(self):
        channel = parse_channel({"id": "1", "name": "general", "type": 0}, "g1")
        message = parse_message({
            "id": "m1",
            "author": {"id": "100", "username": "alice"},
            "content": "hi <@200>",
            "mentions": [{"id": "200", "username": "bob"}],
            "attachments": [{"url": "https://cdn.example/a.png"}, {"filename": "nourl"}],
        }, channel)
        assert message.channel is channel
        assert [u.username for u in message.mentions] == ["bob"]
        assert message.attachments == ("https://cdn.example/a.png",)


class TestDispatch:
    def test_guild_cache(self):
        client = DiscordClient("token")
        client._dispatch("GUILD_CREATE", GUILD_CREATE)
        assert client.text_channel_by_name("general").id == "1"
        assert client.text_channel_by_name("news").id == "3"
        assert client.text_channel_by_name("voice") is None
        assert client.member("g1", "100").nickname == "Ali"
        assert client.member_by_nickname("g1", "Ali").user.id == "100"
        assert client.user_by_username("bob").id == "200"

    def test_channel_events(self):
        client = DiscordClient("token")
        client._dispatch("GUILD_CREATE", GUILD_CREATE)
        client._dispatch("CHANNEL_UPDATE", {"id": "1", "name": "lobby", "type": 0, "guild_id": "g1"})
        assert client.text_channel_by_name("general") is None
        assert client.channel_by_id("1").name == "lobby"
        client._dispatch("CHANNEL_DELETE", {"id": "1"})
        assert client.channel_by_id("1") is None

    def test_member_events(self):
        client = DiscordClient("token")
        client._dispatch("GUILD_MEMBER_UPDATE", {
            "guild_id": "g1", "user": {"id": "300", "username": "carol"}, "nick": "Caz",
        })
        assert client.member("g1", "300").display_name == "Caz"
        client._dispatch("GUILD_MEMBER_REMOVE", {"guild_id": "g1", "user": {"id": "300"}})
        assert client.member("g1", "300") is None

    def test_ready(self):
        seen = []
        client = DiscordClient("token", on_ready=seen.append)
        client._dispatch("READY", {"user": {"id": "999", "username": "bridgebot", "bot": True}})
        assert client.user.id == "999"
        assert seen == [client.user]

    def test_message_create(self):
        seen = []
        client = DiscordClient("token", on_message=seen.append)
        client._dispatch("GUILD_CREATE", GUILD_CREATE)
        client._dispatch("MESSAGE_CREATE", {
            "id": "m1",
            "channel_id": "1",
            "author": {"id": "300", "username": "carol"},
            "member": {"nick": "Caz"},
            "content": "hello",
        })
        [message] = seen
        assert message.content == "hello"
        assert message.channel.name == "general"
        assert client.member("g1", "300").nickname == "Caz"

    def test_message_in_unknown_channel(self):
        seen = []
        client = DiscordClient("token", on_message=seen.append)
        client._dispatch("MESSAGE_CREATE", {
            "id": "m1", "channel_id": "42", "author": {"id": "1", "username": "x"}, "content": "hi",
        })
        assert seen == []

    def test_handler_errors_are_contained(self, caplog):
        def boom(message):
            raise RuntimeError("boom")

        client = DiscordClient("token", on_message=boom)
        client._dispatch("GUILD_CREATE", GUILD_CREATE)
        client._dispatch("MESSAGE_CREATE", {
            "id": "m1", "channel_id": "1", "author": {"id": "1", "username": "x"}, "content": "hi",
        })
        assert "boom" in caplog.text


def _client_with(handler) -> DiscordClient:
    http = httpx.AsyncClient(base_url=API_BASE, transport=httpx.MockTransport(handler))
    return DiscordClient("token", http=http)


class TestSendMessage:
    @pytest.mark.asyncio
    async def test_posts_to_channel(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"id": "m2"})

        client = _client_with(handler)
        await client.send_message("1", "#project **<dave>** hi")

        [request] = requests
        assert request.method == "POST"
        assert request.url.path == "/api/v10/channels/1/messages"
        assert json.loads(request.content)["content"] == "#project **<dave>** hi"

    @pytest.mark.asyncio
    async def test_rate_limited(self, caplog):
        client = _client_with(lambda request: httpx.Response(429, json={"retry_after": 1}))
        with pytest.raises(TransportError, match="429"):
            await client.send_message("1", "hi")
        assert "rate limited" in caplog.text

    @pytest.mark.asyncio
    async def test_not_started(self):
        with pytest.raises(TransportError):
            await DiscordClient("token").send_message("1", "hi")

    @pytest.mark.asyncio
    async def test_long_content_split_across_posts(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"id": "m2"})

        users = [f"user{i}" for i in range(600)]
        client = _client_with(handler)
        await client.send_message("1", " ".join(users))

        contents = [json.loads(r.content)["content"] for r in requests]
        assert len(contents) > 1
        assert all(len(c) <= 2000 for c in contents)
        assert " ".join(contents).split() == users


class TestSplitMessage:
    def test_short_message_unchanged(self):
        assert split_message("hi") == ["hi"]

    def test_prefers_newlines(self):
        text = "a " * 750 + "\n" + "b " * 750
        chunks = split_message(text)
        assert chunks == [("a " * 750), "b " * 750]

    def test_hard_cut_without_breaks(self):
        assert split_message("x" * 4500) == ["x" * 2000, "x" * 2000, "x" * 500]


class _FakeSocket:
    """Gateway socket that says HELLO, then stays quiet briefly and closes."""

    def __init__(self, frames, fail_heartbeat=False):
        self.frames = list(frames)
        self.fail_heartbeat = fail_heartbeat
        self.sent = []
        self.close = AsyncMock()

    async def recv(self):
        return json.dumps(self.frames.pop(0))

    async def send(self, data):
        payload = json.loads(data)
        if self.fail_heartbeat and payload["op"] == 1:
            raise ConnectionError("socket gone")
        self.sent.append(payload)

    def __aiter__(self):
        return self

    async def __anext__(self):
        await asyncio.sleep(0.05)
        raise StopAsyncIteration


class TestHeartbeat:
    @pytest.mark.asyncio
    async def test_missing_ack_closes_socket(self, caplog):
        ws = MagicMock()
        ws.send = AsyncMock()
        ws.close = AsyncMock()
        client = DiscordClient("token")

        await asyncio.wait_for(client._heartbeat(ws, 0), timeout=1)

        ws.send.assert_awaited_once()
        ws.close.assert_awaited_once_with(code=4000)
        assert "not acknowledged" in caplog.text

    @pytest.mark.asyncio
    async def test_heartbeat_failure_is_logged(self, caplog):
        ws = _FakeSocket([{"op": 10, "d": {"heartbeat_interval": 1}}], fail_heartbeat=True)
        client = DiscordClient("token")

        await client._session(ws)

        assert ws.sent[0]["op"] == 2
        assert "Discord heartbeat failed" in caplog.text
