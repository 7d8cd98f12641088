"""Relay core — translates events from one network into actions for the other.

``forward`` handles Discord messages bound for IRC, ``reverse`` handles
IRC events bound for Discord. Both return a list of actions and never
touch a transport directly, so the core can be driven from tests with a
fake directory.

Routing misses (unmapped channel, Discord channel not visible to the bot,
unknown probe reply) are silent no-ops with a debug/info trace: this is a
best-effort relay.
"""

import logging
import time
from typing import Callable, Optional

from .commands import HELP_TEXT, CommandProcessor
from .correlation import AUTO_PROBE, MANUAL_PROBE, QUERY_VERSIONS, ProbeTracker, QueryTracker
from .events import (
    CtcpToIrc,
    DiscordMessage,
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
    JoinIrc,
    RawToIrc,
    SayToIrc,
)
from .identity import IdentityRenderer
from .mapping import ChannelMapping
from .text import (
    Directory,
    colorize,
    display_name,
    normalize_whitespace,
    resolve_mentions,
    rewrite_mentions_back,
    strip_irc_formatting,
)

logger = logging.getLogger("ircbridge.relay")

_PRUNE_INTERVAL = 60  # seconds between expired-probe sweeps


def _with_reason(text: str, reason: str) -> str:
    """'*nick has left*' style line, with an optional ': reason' suffix."""
    if reason:
        text += ": " + strip_irc_formatting(reason)
    return f"*{text}*"


class RelayCore:
    """Owns the channel mapping and all correlation state."""

    def __init__(
        self,
        mapping: ChannelMapping,
        directory: Directory,
        irc_nick: str,
        command_characters: Optional[list[str]] = None,
        nick_color: bool = True,
        startup_commands: Optional[list[list[str]]] = None,
        probe_reply_prefixes: Optional[list[str]] = None,
        probe_ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.mapping = mapping
        self.directory = directory
        self.irc_nick = irc_nick
        self.discord_user_id: Optional[str] = None
        self.nick_color = nick_color
        self.startup_commands = startup_commands or []
        self.probe_reply_prefixes = tuple(probe_reply_prefixes or ())

        self._clock = clock
        self._last_prune = clock()
        self.probes = ProbeTracker(ttl=probe_ttl, clock=clock)
        self.queries = QueryTracker(ttl=probe_ttl, clock=clock)
        self.commands = CommandProcessor(command_characters or [], self.queries)
        self.renderer = IdentityRenderer(mapping.webhooks)

        self._handlers = {
            IrcConnected: self._on_connected,
            IrcMessage: self._on_message,
            IrcNotice: self._on_notice,
            IrcAction: self._on_action,
            IrcJoin: self._on_join,
            IrcPart: self._on_part,
            IrcQuit: self._on_quit,
            IrcKick: self._on_kick,
            IrcKill: self._on_kill,
            IrcTopic: self._on_topic,
            IrcNames: self._on_names,
            IrcCtcp: self._on_ctcp,
            IrcInvite: self._on_invite,
            IrcNick: self._on_nick,
            IrcError: self._on_error,
        }

    # ── Discord → IRC ─────────────────────────────────────────

    def forward(self, message: DiscordMessage) -> list:
        """Translate a Discord message into IRC lines (or an IRC query)."""
        author = message.author
        if author.id == self.discord_user_id or author.bot:
            return []

        discord_channel = f"#{message.channel.name}"
        irc_channel = self.mapping.irc_channel_for(discord_channel)
        logger.debug(f"Channel mapping {discord_channel} → {irc_channel}")
        if not irc_channel:
            return []

        guild_id = message.channel.guild_id
        text = resolve_mentions(message.content, message.mentions, guild_id, self.directory)
        text = normalize_whitespace(text)

        if self.commands.is_command(text):
            actions, wants_help = self.commands.handle(text, irc_channel)
            if wants_help:
                actions += self._to_discord(None, irc_channel, HELP_TEXT, use_remap=False)
            return actions

        nickname = colorize(display_name(author, guild_id, self.directory), self.nick_color)
        actions = []
        if text:
            logger.debug(f"Sending message to IRC {irc_channel}: {text[:80]}")
            actions.append(SayToIrc(irc_channel, text, prefix=f"<{nickname}> "))
        for url in message.attachments:
            logger.debug(f"Sending attachment URL to IRC {irc_channel}: {url}")
            actions.append(SayToIrc(irc_channel, url, prefix=f"<{nickname}> "))
        return actions

    # ── IRC → Discord ─────────────────────────────────────────

    def reverse(self, event) -> list:
        """Translate one IRC event into Discord sends and/or IRC follow-ups."""
        now = self._clock()
        if now - self._last_prune > _PRUNE_INTERVAL:
            self.probes.prune()
            self._last_prune = now

        handler = self._handlers.get(type(event))
        if handler is None:
            logger.debug(f"Ignoring unknown IRC event {event!r}")
            return []
        return handler(event)

    def _to_discord(self, author: Optional[str], irc_channel: str, text: str, use_remap: bool) -> list:
        """Route a line from an IRC channel to its Discord channel."""
        discord_name = self.mapping.discord_channel_for(irc_channel)
        if not discord_name:
            return []

        destination = self.directory.text_channel_by_name(discord_name[1:])
        if not destination:
            logger.info(f"Tried to send a message to a channel the bot isn't in: {discord_name}")
            return []

        text = rewrite_mentions_back(text, destination.guild_id, self.directory)

        if use_remap:
            alternate = self.mapping.remap_for(discord_name)
            if alternate:
                remapped = self.directory.text_channel_by_name(alternate.lstrip("#"))
                if not remapped:
                    logger.info(f"Remap target {alternate} for {discord_name} is not visible to the bot")
                    return []
                destination = remapped

        action = self.renderer.render(destination, irc_channel, author, text)
        logger.debug(f"Sending message to Discord #{destination.name}: {action.text[:80]}")
        return [action]

    def _is_self(self, nick: str) -> bool:
        return nick.lower() == self.irc_nick.lower()

    def _on_connected(self, event: IrcConnected) -> list:
        self.irc_nick = event.nick
        return [RawToIrc(cmd[0], tuple(cmd[1:])) for cmd in self.startup_commands if cmd]

    def _on_message(self, event: IrcMessage) -> list:
        if self._is_self(event.target):
            if any(event.text.startswith(p) for p in self.probe_reply_prefixes):
                return self._probe_reply(event.author, event.text)
            return []
        return self._to_discord(event.author, event.target, event.text, use_remap=False)

    def _on_notice(self, event: IrcNotice) -> list:
        return self._to_discord(event.author, event.target, f"*{event.text}*", use_remap=False)

    def _on_action(self, event: IrcAction) -> list:
        return self._to_discord(event.author, event.target, f"_{event.text}_", use_remap=False)

    def _on_ctcp(self, event: IrcCtcp) -> list:
        if event.kind == "notice" and event.text.startswith("VERSION "):
            return self._probe_reply(event.author, event.text)
        return []

    def _probe_reply(self, nick: str, text: str) -> list:
        probe = self.probes.consume(nick)
        if not probe:
            return []
        return self._to_discord(
            None, probe.channel, f"*{nick} {text.strip()}*",
            use_remap=probe.kind == AUTO_PROBE,
        )

    def _on_join(self, event: IrcJoin) -> list:
        if not self.mapping.is_irc_channel_mapped(event.channel):
            return []
        actions = []
        if not self._is_self(event.nick):
            self.probes.record(event.nick, event.channel, AUTO_PROBE)
            actions.append(CtcpToIrc(event.nick, "VERSION"))
        actions += self._to_discord(None, event.channel, f"*{event.nick} has joined*", use_remap=True)
        return actions

    def _on_part(self, event: IrcPart) -> list:
        text = _with_reason(f"{event.nick} has left", event.reason)
        return self._to_discord(None, event.channel, text, use_remap=True)

    def _on_quit(self, event: IrcQuit) -> list:
        text = _with_reason(f"{event.nick} has quit", event.reason)
        actions = []
        for channel in event.channels:
            actions += self._to_discord(None, channel, text, use_remap=True)
        return actions

    def _on_kick(self, event: IrcKick) -> list:
        text = _with_reason(f"{event.nick} has been kicked by {event.by}", event.reason)
        return self._to_discord(None, event.channel, text, use_remap=True)

    def _on_kill(self, event: IrcKill) -> list:
        text = _with_reason(f"{event.nick} was killed", event.reason)
        actions = []
        for channel in event.channels:
            actions += self._to_discord(None, channel, text, use_remap=True)
        return actions

    def _on_topic(self, event: IrcTopic) -> list:
        if not self.mapping.is_irc_channel_mapped(event.channel):
            return []
        requested = self.queries.pop("TOPIC", event.channel)
        text = f"*{event.channel} topic:* {strip_irc_formatting(event.topic)}".rstrip()
        return self._to_discord(None, event.channel, text, use_remap=requested is None)

    def _on_names(self, event: IrcNames) -> list:
        if not self.mapping.is_irc_channel_mapped(event.channel):
            return []
        requested = self.queries.pop("NAMES", event.channel)

        if requested == QUERY_VERSIONS:
            actions = []
            for nick in event.nicks:
                if self._is_self(nick):
                    continue
                self.probes.record(nick, event.channel, MANUAL_PROBE)
                actions.append(CtcpToIrc(nick, "VERSION"))
            logger.debug(f"Probing {len(actions)} users in {event.channel} for versions")
            return actions

        if not event.nicks:
            return []
        text = f"*{event.channel} users:* {', '.join(event.nicks)}"
        return self._to_discord(None, event.channel, text, use_remap=requested is None)

    def _on_invite(self, event: IrcInvite) -> list:
        logger.debug(f"Received invite to {event.channel} from {event.author}")
        if not self.mapping.is_irc_channel_mapped(event.channel):
            logger.debug(f"Channel not found in config, not joining: {event.channel}")
            return []
        logger.debug(f"Joining channel: {event.channel}")
        return [JoinIrc(event.channel.lower(), self.mapping.key_for(event.channel))]

    def _on_nick(self, event: IrcNick) -> list:
        if self._is_self(event.old):
            logger.info(f"Bridge nick changed from {event.old} to {event.new}")
            self.irc_nick = event.new
        return []

    def _on_error(self, event: IrcError) -> list:
        logger.error(f"Received error event from IRC: {event.message}")
        return []
