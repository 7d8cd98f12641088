"""Discord transport — gateway client plus REST sender.

The gateway connection (``websockets``) keeps an in-memory cache of
guild channels, members and users, which also serves as the relay's
``Directory``. Messages are sent through the REST API with ``httpx``.
"""

import asyncio
import json
import logging
import random
from typing import Callable, Optional

import httpx
import websockets

from ..errors import TransportError
from ..relay.events import DiscordChannel, DiscordMember, DiscordMessage, DiscordUser

logger = logging.getLogger("ircbridge.discord")

API_BASE = "https://discord.com/api/v10"
GATEWAY_QUERY = "?v=10&encoding=json"

# Gateway intents
INTENT_GUILDS = 1 << 0
INTENT_GUILD_MEMBERS = 1 << 1
INTENT_GUILD_MESSAGES = 1 << 9
INTENT_MESSAGE_CONTENT = 1 << 15
INTENTS = INTENT_GUILDS | INTENT_GUILD_MEMBERS | INTENT_GUILD_MESSAGES | INTENT_MESSAGE_CONTENT

# Gateway opcodes
OP_DISPATCH = 0
OP_HEARTBEAT = 1
OP_IDENTIFY = 2
OP_RECONNECT = 7
OP_INVALID_SESSION = 9
OP_HELLO = 10
OP_HEARTBEAT_ACK = 11

_TEXT_CHANNEL_TYPES = (0, 5)    # GUILD_TEXT, GUILD_ANNOUNCEMENT
_MAX_MESSAGE = 2000
_RECONNECT_DELAY = 5.0


# ============================================================
# PAYLOAD PARSING
# ============================================================

def parse_user(data: dict) -> DiscordUser:
    return DiscordUser(
        id=str(data["id"]),
        username=data.get("username", ""),
        bot=bool(data.get("bot", False)),
    )


def parse_member(data: dict, user: Optional[DiscordUser] = None) -> DiscordMember:
    """Parse a guild member; ``user`` is used when the payload omits it."""
    if "user" in data:
        user = parse_user(data["user"])
    return DiscordMember(user=user, nickname=data.get("nick"))


def parse_channel(data: dict, guild_id: Optional[str] = None) -> DiscordChannel:
    guild = data.get("guild_id", guild_id)
    return DiscordChannel(
        id=str(data["id"]),
        name=data.get("name") or "",
        guild_id=str(guild) if guild else None,
        is_text=data.get("type") in _TEXT_CHANNEL_TYPES,
    )


def parse_message(data: dict, channel: DiscordChannel) -> DiscordMessage:
    return DiscordMessage(
        id=str(data["id"]),
        author=parse_user(data["author"]),
        channel=channel,
        content=data.get("content") or "",
        mentions=tuple(parse_user(u) for u in data.get("mentions", [])),
        attachments=tuple(a["url"] for a in data.get("attachments", []) if a.get("url")),
    )


# ============================================================
# MESSAGE SPLITTING
# ============================================================

def split_message(text: str, max_length: int = _MAX_MESSAGE) -> list[str]:
    """Split a long message into chunks respecting Discord's length limit.

    Tries to split at newlines first, then spaces, then hard-cuts.

    Args:
        text: Message text to split
        max_length: Maximum length per chunk (default: 2000 for Discord)

    Returns:
        List of message chunks
    """
    if len(text) <= max_length:
        return [text]

    chunks = []
    remaining = text

    while remaining:
        if len(remaining) <= max_length:
            chunks.append(remaining)
            break

        split_at = remaining.rfind("\n", 0, max_length)
        if split_at <= 0:
            split_at = remaining.rfind(" ", 0, max_length)
        if split_at <= 0:
            split_at = max_length

        chunks.append(remaining[:split_at])
        remaining = remaining[split_at:].lstrip()

    return chunks


# ============================================================
# CLIENT
# ============================================================

class DiscordClient:
    """Discord bot connection and live directory of channels/members/users."""

    def __init__(
        self,
        token: str,
        on_message: Optional[Callable[[DiscordMessage], None]] = None,
        on_ready: Optional[Callable[[DiscordUser], None]] = None,
        debug: bool = False,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.token = token
        self.on_message = on_message
        self.on_ready = on_ready
        self.debug = debug
        self.user: Optional[DiscordUser] = None

        self._http = http
        self._owns_http = http is None
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._seq: Optional[int] = None
        self._acked = True

        self._channels: dict[str, DiscordChannel] = {}
        self._members: dict[tuple[str, str], DiscordMember] = {}
        self._users: dict[str, DiscordUser] = {}

    # ── Lifecycle ──────────────────────────────────────────────

    async def start(self):
        """Authenticate and connect to the gateway in the background."""
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=API_BASE,
                headers={"Authorization": f"Bot {self.token}"},
                timeout=30,
            )
        self._running = True
        self._task = asyncio.create_task(self._run())

    async def stop(self):
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        if self._http and self._owns_http:
            await self._http.aclose()
            self._http = None

    async def _run(self):
        while self._running:
            try:
                url = await self._gateway_url()
                async with websockets.connect(url + GATEWAY_QUERY, max_size=None) as ws:
                    await self._session(ws)
            except asyncio.CancelledError:
                raise
            except websockets.ConnectionClosed as e:
                logger.warning(f"Discord gateway closed: {e}")
            except (OSError, httpx.HTTPError, TransportError) as e:
                logger.error(f"Received error event from Discord: {e}")

            if self._running:
                await asyncio.sleep(_RECONNECT_DELAY)

    async def _gateway_url(self) -> str:
        try:
            resp = await self._http.get("/gateway/bot")
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            if e.response.status_code in (401, 403):
                self._running = False
            raise TransportError(f"Discord gateway lookup failed: HTTP {e.response.status_code}") from e
        return resp.json()["url"]

    async def _session(self, ws):
        hello = json.loads(await ws.recv())
        if hello.get("op") != OP_HELLO:
            raise TransportError(f"Expected HELLO from gateway, got op {hello.get('op')}")
        interval = hello["d"]["heartbeat_interval"] / 1000

        self._acked = True
        heartbeat = asyncio.create_task(self._heartbeat(ws, interval))
        try:
            await ws.send(json.dumps({
                "op": OP_IDENTIFY,
                "d": {
                    "token": self.token,
                    "intents": INTENTS,
                    "properties": {"os": "linux", "browser": "ircbridge", "device": "ircbridge"},
                },
            }))

            async for raw in ws:
                payload = json.loads(raw)
                op = payload.get("op")
                if payload.get("s") is not None:
                    self._seq = payload["s"]

                if op == OP_DISPATCH:
                    self._dispatch(payload.get("t"), payload.get("d") or {})
                elif op == OP_HEARTBEAT_ACK:
                    self._acked = True
                elif op == OP_HEARTBEAT:
                    await ws.send(json.dumps({"op": OP_HEARTBEAT, "d": self._seq}))
                elif op == OP_RECONNECT:
                    logger.info("Discord asked us to reconnect")
                    return
                elif op == OP_INVALID_SESSION:
                    logger.warning("Received warn event from Discord: invalid session")
                    self._seq = None
                    await asyncio.sleep(random.uniform(1, 5))
                    return
        finally:
            heartbeat.cancel()
            [result] = await asyncio.gather(heartbeat, return_exceptions=True)
            if isinstance(result, Exception):
                logger.warning(f"Discord heartbeat failed: {type(result).__name__}: {result}")

    async def _heartbeat(self, ws, interval: float):
        """Beat every ``interval`` seconds; close the socket if a beat goes unacknowledged."""
        await asyncio.sleep(interval * random.random())
        while True:
            if not self._acked:
                logger.warning("Discord heartbeat not acknowledged, reconnecting")
                await ws.close(code=4000)
                return
            self._acked = False
            await ws.send(json.dumps({"op": OP_HEARTBEAT, "d": self._seq}))
            await asyncio.sleep(interval)

    # ── Dispatch ───────────────────────────────────────────────

    def _dispatch(self, event: Optional[str], data: dict):
        if self.debug:
            logger.debug(f"Received debug event from Discord: {event}")

        if event == "READY":
            self.user = parse_user(data["user"])
            logger.info(f"Connected to Discord as {self.user.username}")
            if self.on_ready:
                self.on_ready(self.user)
        elif event == "GUILD_CREATE":
            self._cache_guild(data)
        elif event in ("CHANNEL_CREATE", "CHANNEL_UPDATE"):
            channel = parse_channel(data)
            self._channels[channel.id] = channel
        elif event == "CHANNEL_DELETE":
            self._channels.pop(str(data["id"]), None)
        elif event in ("GUILD_MEMBER_ADD", "GUILD_MEMBER_UPDATE"):
            self._cache_member(str(data["guild_id"]), parse_member(data))
        elif event == "GUILD_MEMBER_REMOVE":
            self._members.pop((str(data["guild_id"]), str(data["user"]["id"])), None)
        elif event == "MESSAGE_CREATE":
            self._on_message_create(data)

    def _cache_guild(self, data: dict):
        guild_id = str(data["id"])
        for raw in data.get("channels", []):
            channel = parse_channel(raw, guild_id)
            self._channels[channel.id] = channel
        for raw in data.get("members", []):
            self._cache_member(guild_id, parse_member(raw))
        logger.debug(f"Cached guild {data.get('name', guild_id)}: "
                     f"{len(data.get('channels', []))} channels, {len(data.get('members', []))} members")

    def _cache_member(self, guild_id: str, member: DiscordMember):
        self._members[(guild_id, member.user.id)] = member
        self._users[member.user.id] = member.user

    def _on_message_create(self, data: dict):
        channel = self._channels.get(str(data.get("channel_id")))
        if not channel:
            logger.debug(f"Message in unknown channel {data.get('channel_id')}, ignoring")
            return
        message = parse_message(data, channel)
        self._users.setdefault(message.author.id, message.author)
        if channel.guild_id and "member" in data:
            self._cache_member(channel.guild_id, parse_member(data["member"], user=message.author))
        if self.on_message:
            try:
                self.on_message(message)
            except Exception as e:
                logger.error(f"Error handling Discord message {message.id}: {e}", exc_info=True)

    # ── Directory ──────────────────────────────────────────────

    def channel_by_id(self, channel_id: str) -> Optional[DiscordChannel]:
        return self._channels.get(channel_id)

    def text_channel_by_name(self, name: str) -> Optional[DiscordChannel]:
        for channel in self._channels.values():
            if channel.is_text and channel.name == name:
                return channel
        return None

    def member(self, guild_id: str, user_id: str) -> Optional[DiscordMember]:
        return self._members.get((guild_id, user_id))

    def member_by_nickname(self, guild_id: str, nickname: str) -> Optional[DiscordMember]:
        for (gid, _), member in self._members.items():
            if gid == guild_id and member.nickname == nickname:
                return member
        return None

    def user_by_username(self, username: str) -> Optional[DiscordUser]:
        for user in self._users.values():
            if user.username == username:
                return user
        return None

    # ── Outbound ───────────────────────────────────────────────

    async def send_message(self, channel_id: str, content: str):
        """Post a message as the bot, split into several when over the limit.

        Raises TransportError on HTTP failure; later chunks are not sent.
        """
        if self._http is None:
            raise TransportError("Discord client is not started")
        for chunk in split_message(content):
            await self._post_message(channel_id, chunk)

    async def _post_message(self, channel_id: str, content: str):
        try:
            resp = await self._http.post(
                f"/channels/{channel_id}/messages",
                json={"content": content, "allowed_mentions": {"parse": ["users"]}},
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            code = e.response.status_code
            if code == 429:
                logger.warning(f"Received warn event from Discord: rate limited on channel {channel_id}")
            raise TransportError(f"Discord send to {channel_id} failed: HTTP {code}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Discord send to {channel_id} failed: {e}") from e
