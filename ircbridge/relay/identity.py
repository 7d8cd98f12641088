"""Delivery identity for Discord-bound messages."""

from typing import Mapping, Optional

from .events import DiscordChannel, SendToDiscord


class IdentityRenderer:
    """Renders the final Discord text and picks webhook vs. bot delivery.

    Channels with a configured webhook get an impersonated sender named
    after the IRC channel (and author); everything else is posted by the
    bot with the author in bold. Destination and remap are decided by the
    caller.
    """

    def __init__(self, webhooks: Mapping[str, str]):
        self._webhooks = webhooks

    def render(
        self,
        destination: DiscordChannel,
        irc_channel: str,
        author: Optional[str],
        text: str,
    ) -> SendToDiscord:
        webhook = self._webhooks.get(f"#{destination.name}")
        if webhook:
            username = irc_channel.lower()
            if author:
                username = f"{username} | {author}"
            return SendToDiscord(channel=destination, text=text, webhook=webhook, username=username)

        if author:
            body = f"{irc_channel} **<{author}>** {text}"
        else:
            body = f"{irc_channel} {text}"
        return SendToDiscord(channel=destination, text=body)
