"""IRC transport — asyncio client that turns server lines into IRC events.

Handles registration, PING/PONG, channel membership tracking (needed to
fan QUIT/KILL out to channels), NAMES accumulation, CTCP and outbound
flood pacing. Reconnects with a bounded number of attempts.
"""

import asyncio
import logging
import ssl
from dataclasses import dataclass
from typing import Callable, Optional

from .. import __version__
from ..errors import TransportError
from ..relay.events import (
    IrcAction,
    IrcConnected,
    IrcCtcp,
    IrcError,
    IrcInvite,
    IrcJoin,
    IrcKick,
    IrcKill,
    IrcMessage,
    IrcNames,
    IrcNick,
    IrcNotice,
    IrcPart,
    IrcQuit,
    IrcTopic,
)

logger = logging.getLogger("ircbridge.irc")

_NICK_PREFIXES = "~&@%+"
_LINE_BYTES = 510           # 512 including CRLF
_SOURCE_RESERVE = 100       # ":nick!user@host " the server prepends when relaying
_MAX_BACKLOG = 200          # outbound lines kept while disconnected


# ============================================================
# LINE PARSING
# ============================================================

@dataclass
class IrcLine:
    prefix: str
    command: str
    params: list[str]

    @property
    def nick(self) -> str:
        """Nick part of 'nick!user@host' (or the server name)."""
        return self.prefix.split("!", 1)[0]


def parse_line(line: str) -> IrcLine:
    """Parse one raw IRC line (without CRLF) into prefix, command and params.

    IRCv3 message tags are discarded.
    """
    if line.startswith("@"):
        _, _, line = line.partition(" ")

    prefix = ""
    if line.startswith(":"):
        prefix, _, line = line[1:].partition(" ")

    trailing = None
    if " :" in line:
        line, trailing = line.split(" :", 1)
    elif line.startswith(":"):
        line, trailing = "", line[1:]

    parts = line.split()
    command = parts[0].upper() if parts else ""
    params = parts[1:]
    if trailing is not None:
        params.append(trailing)
    return IrcLine(prefix=prefix, command=command, params=params)


def split_line(text: str, max_bytes: int, prefix: str = "") -> list[str]:
    """Split a message into chunks of at most ``max_bytes`` UTF-8 bytes.

    Prefers splitting at spaces and never cuts inside a character.
    ``prefix`` (e.g. ``"<nick> "``) starts every chunk and counts
    towards the limit.

    Args:
        text: Message body
        max_bytes: Byte budget per chunk, prefix included
        prefix: Text repeated at the start of each chunk

    Returns:
        List of chunks, each starting with ``prefix``
    """
    budget = max(max_bytes - len(prefix.encode("utf-8")), 4)

    chunks = []
    remaining = text
    while True:
        encoded = remaining.encode("utf-8")
        if len(encoded) <= budget:
            chunks.append(prefix + remaining)
            break
        # Longest run of whole characters that fits
        fits = len(encoded[:budget].decode("utf-8", errors="ignore"))
        split_at = remaining.rfind(" ", 0, fits + 1)
        if split_at <= 0:
            split_at = fits
        chunks.append(prefix + remaining[:split_at])
        remaining = remaining[split_at:].lstrip()
        if not remaining:
            break
    return chunks


def strip_nick_prefix(nick: str) -> str:
    return nick.lstrip(_NICK_PREFIXES)


# ============================================================
# CLIENT
# ============================================================

class IrcClient:
    """Line-oriented IRC client feeding events to a single callback."""

    def __init__(
        self,
        server: str,
        nickname: str,
        port: int = 6667,
        channels: Optional[list[tuple[str, Optional[str]]]] = None,
        password: Optional[str] = None,
        realname: Optional[str] = None,
        tls: bool = False,
        flood_delay: float = 0.5,
        retry_count: int = 10,
        retry_delay: float = 5.0,
        on_event: Optional[Callable] = None,
    ):
        self.server = server
        self.port = port
        self.nick = nickname
        self.channels = channels or []
        self.password = password
        self.realname = realname or nickname
        self.tls = tls
        self.flood_delay = flood_delay
        self.retry_count = retry_count
        self.retry_delay = retry_delay
        self.on_event = on_event

        self._writer: Optional[asyncio.StreamWriter] = None
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=_MAX_BACKLOG)
        self._task: Optional[asyncio.Task] = None
        self._pump_task: Optional[asyncio.Task] = None
        self._running = False
        self._registered = False
        self._gave_up = False

        self._members: dict[str, dict[str, str]] = {}   # channel -> {nick_lower: nick}
        self._names: dict[str, list[str]] = {}          # channel -> nicks until 366

    # ── Lifecycle ──────────────────────────────────────────────

    async def start(self):
        """Connect in the background; returns immediately."""
        self._running = True
        self._task = asyncio.create_task(self._run())

    async def stop(self):
        self._running = False
        if self._writer and not self._writer.is_closing():
            self._write_now("QUIT", "Bridge shutting down")
            self._writer.close()
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

    async def _run(self):
        failures = 0
        while self._running:
            try:
                await self._session()
                failures = 0 if self._registered else failures + 1
            except asyncio.CancelledError:
                raise
            except (OSError, ssl.SSLError, TransportError) as e:
                failures += 1
                self._emit(IrcError(f"Connection to {self.server}:{self.port} failed: {e}"))

            if not self._running:
                break
            if failures >= self.retry_count:
                logger.error(f"Giving up on IRC after {failures} failed attempts")
                self._running = False
                self._gave_up = True
                self._drop_backlog()
                break
            logger.warning(f"IRC disconnected, reconnecting in {self.retry_delay}s (attempt {failures + 1})")
            await asyncio.sleep(self.retry_delay)

    async def _session(self):
        ctx = ssl.create_default_context() if self.tls else None
        logger.info(f"Connecting to IRC {self.server}:{self.port}{' (TLS)' if ctx else ''}")
        reader, writer = await asyncio.open_connection(self.server, self.port, ssl=ctx)
        self._writer = writer
        self._registered = False
        self._members.clear()
        self._names.clear()

        if self.password:
            self._write_now("PASS", self.password)
        self._write_now("NICK", self.nick)
        self._write_now("USER", self.nick, "0", "*", self.realname)

        try:
            while True:
                raw = await reader.readline()
                if not raw:
                    logger.warning("IRC server closed the connection")
                    return
                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                if line:
                    self._handle(parse_line(line))
        finally:
            if self._pump_task:
                self._pump_task.cancel()
                self._pump_task = None
            writer.close()
            self._writer = None

    # ── Outbound ───────────────────────────────────────────────

    def send_raw(self, command: str, *args: str):
        """Queue a raw command; the last argument is sent as trailing text.

        Lines are sent once registered. While disconnected up to
        _MAX_BACKLOG lines are kept; after giving up nothing is queued.
        """
        line = self._format(command, args)
        if self._gave_up:
            logger.debug(f"IRC connection given up, dropping: {line[:60]}")
            return
        try:
            self._queue.put_nowait(line)
        except asyncio.QueueFull:
            logger.warning(f"IRC outbound backlog full, dropping: {line[:60]}")

    def say(self, target: str, text: str, prefix: str = ""):
        """Send a PRIVMSG, split to fit the line limit with ``prefix`` on every chunk."""
        budget = _LINE_BYTES - _SOURCE_RESERVE - len(f"PRIVMSG {target} :".encode("utf-8"))
        for chunk in split_line(text, budget, prefix=prefix):
            self.send_raw("PRIVMSG", target, chunk)

    def ctcp(self, target: str, text: str, kind: str = "privmsg"):
        command = "PRIVMSG" if kind == "privmsg" else "NOTICE"
        self.send_raw(command, target, f"\x01{text}\x01")

    def join(self, channel: str, key: Optional[str] = None):
        if key:
            self.send_raw("JOIN", channel, key)
        else:
            self.send_raw("JOIN", channel)

    @staticmethod
    def _format(command: str, args) -> str:
        args = list(args)
        if args and (" " in args[-1] or args[-1].startswith(":") or not args[-1]):
            args[-1] = ":" + args[-1]
        return " ".join([command, *args])

    def _write_now(self, command: str, *args: str):
        if not self._writer:
            raise TransportError("IRC connection is not open")
        self._writer.write((self._format(command, args) + "\r\n").encode("utf-8"))

    async def _pump(self):
        """Drain the outbound queue, one line per flood_delay seconds."""
        while True:
            line = await self._queue.get()
            if not self._writer:
                logger.debug(f"Dropping IRC line while disconnected: {line[:60]}")
                continue
            self._writer.write((line + "\r\n").encode("utf-8"))
            await self._writer.drain()
            await asyncio.sleep(self.flood_delay)

    def _drop_backlog(self):
        dropped = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            dropped += 1
        if dropped:
            logger.warning(f"Dropped {dropped} queued IRC lines")

    # ── Inbound ────────────────────────────────────────────────

    def _emit(self, event):
        if not self.on_event:
            return
        try:
            self.on_event(event)
        except Exception as e:
            logger.error(f"Error handling IRC event {type(event).__name__}: {e}", exc_info=True)

    def _is_self(self, nick: str) -> bool:
        return nick.lower() == self.nick.lower()

    def _handle(self, msg: IrcLine):
        handler = getattr(self, f"_on_{msg.command.lower()}", None)
        if handler:
            handler(msg)
        elif msg.command.isdigit() and 400 <= int(msg.command) < 600:
            self._emit(IrcError(f"{msg.command} {' '.join(msg.params[1:])}"))

    def _on_ping(self, msg: IrcLine):
        self._write_now("PONG", *msg.params)

    def _on_001(self, msg: IrcLine):
        self.nick = msg.params[0]
        self._registered = True
        logger.info(f"Connected to IRC as {self.nick}")
        for channel, key in self.channels:
            if key:
                self._write_now("JOIN", channel, key)
            else:
                self._write_now("JOIN", channel)
        # Queued lines only go out once registered and joined
        if self._pump_task is None:
            self._pump_task = asyncio.create_task(self._pump())
        self._emit(IrcConnected(self.nick))

    def _on_433(self, msg: IrcLine):
        if not self._registered:
            self.nick += "_"
            logger.warning(f"Nickname in use, trying {self.nick}")
            self._write_now("NICK", self.nick)

    def _on_331(self, msg: IrcLine):
        self._emit(IrcTopic(channel=msg.params[1], topic=""))

    def _on_332(self, msg: IrcLine):
        self._emit(IrcTopic(channel=msg.params[1], topic=msg.params[2]))

    def _on_353(self, msg: IrcLine):
        channel = msg.params[-2].lower()
        nicks = [strip_nick_prefix(n) for n in msg.params[-1].split()]
        self._names.setdefault(channel, []).extend(nicks)
        members = self._members.setdefault(channel, {})
        for nick in nicks:
            members[nick.lower()] = nick

    def _on_366(self, msg: IrcLine):
        channel = msg.params[1]
        nicks = self._names.pop(channel.lower(), [])
        self._emit(IrcNames(channel=channel, nicks=tuple(nicks)))

    def _on_topic(self, msg: IrcLine):
        self._emit(IrcTopic(channel=msg.params[0], topic=msg.params[-1], nick=msg.nick))

    def _on_privmsg(self, msg: IrcLine):
        target, text = msg.params[0], msg.params[-1]
        if text.startswith("\x01"):
            body = text.strip("\x01")
            if body.startswith("ACTION "):
                self._emit(IrcAction(author=msg.nick, target=target, text=body[7:]))
                return
            if body == "VERSION":
                self.ctcp(msg.nick, f"VERSION ircbridge {__version__}", kind="notice")
            self._emit(IrcCtcp(author=msg.nick, target=target, text=body, kind="privmsg"))
            return
        self._emit(IrcMessage(author=msg.nick, target=target, text=text))

    def _on_notice(self, msg: IrcLine):
        target, text = msg.params[0], msg.params[-1]
        if not msg.prefix or "!" not in msg.prefix:
            logger.debug(f"Server notice: {text}")
            return
        if text.startswith("\x01"):
            self._emit(IrcCtcp(author=msg.nick, target=target, text=text.strip("\x01"), kind="notice"))
            return
        self._emit(IrcNotice(author=msg.nick, target=target, text=text))

    def _on_join(self, msg: IrcLine):
        channel = msg.params[0]
        if self._is_self(msg.nick):
            self._members[channel.lower()] = {}
        self._members.setdefault(channel.lower(), {})[msg.nick.lower()] = msg.nick
        self._emit(IrcJoin(channel=channel, nick=msg.nick))

    def _on_part(self, msg: IrcLine):
        channel = msg.params[0]
        reason = msg.params[1] if len(msg.params) > 1 else ""
        self._forget(channel, msg.nick)
        self._emit(IrcPart(channel=channel, nick=msg.nick, reason=reason))

    def _on_kick(self, msg: IrcLine):
        channel, nick = msg.params[0], msg.params[1]
        reason = msg.params[2] if len(msg.params) > 2 else ""
        self._forget(channel, nick)
        self._emit(IrcKick(channel=channel, nick=nick, by=msg.nick, reason=reason))

    def _on_quit(self, msg: IrcLine):
        reason = msg.params[0] if msg.params else ""
        channels = self._forget_everywhere(msg.nick)
        self._emit(IrcQuit(nick=msg.nick, reason=reason, channels=tuple(channels)))

    def _on_kill(self, msg: IrcLine):
        nick = msg.params[0]
        reason = msg.params[1] if len(msg.params) > 1 else ""
        channels = self._forget_everywhere(nick)
        self._emit(IrcKill(nick=nick, reason=reason, channels=tuple(channels)))

    def _on_nick(self, msg: IrcLine):
        new = msg.params[0]
        if self._is_self(msg.nick):
            self.nick = new
        for members in self._members.values():
            if members.pop(msg.nick.lower(), None) is not None:
                members[new.lower()] = new
        self._emit(IrcNick(old=msg.nick, new=new))

    def _on_invite(self, msg: IrcLine):
        self._emit(IrcInvite(channel=msg.params[-1], author=msg.nick))

    def _on_error(self, msg: IrcLine):
        self._emit(IrcError(msg.params[-1] if msg.params else "ERROR"))

    # ── Membership ─────────────────────────────────────────────

    def _forget(self, channel: str, nick: str):
        if self._is_self(nick):
            self._members.pop(channel.lower(), None)
        else:
            self._members.get(channel.lower(), {}).pop(nick.lower(), None)

    def _forget_everywhere(self, nick: str) -> list[str]:
        """Remove ``nick`` from every tracked channel; return those channels."""
        channels = []
        for channel, members in self._members.items():
            if members.pop(nick.lower(), None) is not None:
                channels.append(channel)
        return channels

    def members(self, channel: str) -> list[str]:
        return list(self._members.get(channel.lower(), {}).values())
