"""Bridge — wires both transports to one RelayCore and delivers its actions.

Each inbound event is translated synchronously by the core, then every
resulting action is scheduled as its own task. Delivery is fire-and-forget:
failures are logged by a done-callback and never retried.
"""

import asyncio
import logging
from typing import Optional

import httpx

from .config import BridgeSettings
from .errors import TransportError
from .relay import ChannelMapping, RelayCore
from .relay.events import (
    CtcpToIrc,
    DiscordMessage,
    DiscordUser,
    JoinIrc,
    RawToIrc,
    SayToIrc,
    SendToDiscord,
)
from .transports import DiscordClient, IrcClient, WebhookSender

logger = logging.getLogger("ircbridge")


class Bridge:
    """Owns the RelayCore and both network clients."""

    def __init__(
        self,
        core: RelayCore,
        irc: IrcClient,
        discord: DiscordClient,
        webhooks: Optional[dict[str, WebhookSender]] = None,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.core = core
        self.irc = irc
        self.discord = discord
        self.webhooks = webhooks or {}
        self._http = http
        self._pending: set[asyncio.Task] = set()
        self.running = False

        irc.on_event = self.on_irc_event
        discord.on_message = self.on_discord_message
        discord.on_ready = self.on_discord_ready

    @classmethod
    def from_settings(cls, settings: BridgeSettings) -> "Bridge":
        """Build the mapping, core, clients and webhook senders from settings."""
        mapping = ChannelMapping.from_config(
            settings.channel_mapping,
            remap=settings.channel_remap,
            webhooks=settings.webhook_mapping,
        )
        discord = DiscordClient(settings.discord_token, debug=settings.debug)
        core = RelayCore(
            mapping,
            directory=discord,
            irc_nick=settings.nickname,
            command_characters=settings.command_characters,
            nick_color=settings.irc_nick_color,
            startup_commands=settings.auto_send_commands,
            probe_reply_prefixes=settings.probe_reply_prefixes,
            probe_ttl=settings.probe_ttl_seconds,
        )
        irc = IrcClient(
            settings.server,
            settings.nickname,
            port=settings.port,
            channels=mapping.join_targets(),
            password=settings.irc_password,
            realname=settings.realname,
            tls=settings.tls,
            flood_delay=settings.flood_delay,
            retry_count=settings.retry_count,
            retry_delay=settings.retry_delay,
        )
        http = httpx.AsyncClient(timeout=30)
        webhooks = {
            credential: WebhookSender(credential, http)
            for credential in set(mapping.webhooks.values())
        }
        return cls(core, irc, discord, webhooks=webhooks, http=http)

    # ── Lifecycle ──────────────────────────────────────────────

    async def start(self):
        logger.debug("Connecting to IRC and Discord")
        await self.discord.start()
        await self.irc.start()
        self.running = True

    async def stop(self):
        self.running = False
        await self.irc.stop()
        await self.discord.stop()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        if self._http:
            await self._http.aclose()

    # ── Inbound ────────────────────────────────────────────────

    def on_discord_ready(self, user: DiscordUser):
        self.core.discord_user_id = user.id

    def on_discord_message(self, message: DiscordMessage):
        self.dispatch(self.core.forward(message))

    def on_irc_event(self, event):
        self.dispatch(self.core.reverse(event))

    # ── Outbound ───────────────────────────────────────────────

    def dispatch(self, actions: list):
        """Schedule delivery of each action without waiting for it."""
        for action in actions:
            task = asyncio.create_task(self.deliver(action))
            self._pending.add(task)
            task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task):
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc:
            logger.error(f"Delivery failed: {type(exc).__name__}: {exc}")

    async def deliver(self, action):
        """Hand one action to the transport that owns it."""
        if isinstance(action, SayToIrc):
            self.irc.say(action.channel, action.text, prefix=action.prefix)
        elif isinstance(action, RawToIrc):
            self.irc.send_raw(action.command, *action.args)
        elif isinstance(action, CtcpToIrc):
            self.irc.ctcp(action.target, action.text)
        elif isinstance(action, JoinIrc):
            self.irc.join(action.channel, action.key)
        elif isinstance(action, SendToDiscord):
            if action.webhook:
                sender = self.webhooks.get(action.webhook)
                if not sender:
                    raise TransportError(f"No webhook sender for #{action.channel.name}")
                await sender.send(action.text, action.username or "")
            else:
                await self.discord.send_message(action.channel.id, action.text)
        else:
            logger.warning(f"Unknown action {action!r}")
