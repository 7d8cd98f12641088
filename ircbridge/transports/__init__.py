"""Network transports: IRC client, Discord gateway client, Discord webhooks."""

from .discord import DiscordClient
from .irc import IrcClient
from .webhook import WebhookSender

__all__ = ["DiscordClient", "IrcClient", "WebhookSender"]
