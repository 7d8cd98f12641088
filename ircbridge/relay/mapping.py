"""Channel mapping between Discord and IRC.

Built once at startup from configuration and never mutated afterwards.
Discord channel names keep their leading '#'; IRC channel names are
lowercased so reverse lookups are case-insensitive.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional

from ..errors import ConfigurationError


@dataclass(frozen=True)
class MappingEntry:
    discord_channel: str        # '#general'
    irc_channel: str            # '#project', lowercased
    key: Optional[str] = None   # IRC channel key, if any


class ChannelMapping:
    """Bidirectional Discord <-> IRC channel lookup plus remap/webhook tables."""

    def __init__(
        self,
        entries: list[MappingEntry],
        remap: Optional[Mapping[str, str]] = None,
        webhooks: Optional[Mapping[str, str]] = None,
    ):
        forward: dict[str, MappingEntry] = {}
        inverse: dict[str, str] = {}
        for entry in entries:
            if entry.discord_channel in forward:
                raise ConfigurationError(f"Discord channel {entry.discord_channel} is mapped twice")
            if entry.irc_channel in inverse:
                raise ConfigurationError(
                    f"IRC channel {entry.irc_channel} is mapped from both "
                    f"{inverse[entry.irc_channel]} and {entry.discord_channel}"
                )
            forward[entry.discord_channel] = entry
            inverse[entry.irc_channel] = entry.discord_channel

        self._forward = MappingProxyType(forward)
        self._inverse = MappingProxyType(inverse)
        self._remap = MappingProxyType(dict(remap or {}))
        self._webhooks = MappingProxyType(dict(webhooks or {}))

    @classmethod
    def from_config(
        cls,
        channel_mapping: Mapping[str, str],
        remap: Optional[Mapping[str, str]] = None,
        webhooks: Optional[Mapping[str, str]] = None,
    ) -> "ChannelMapping":
        """Build from the raw config tables ('#discord' -> '#irc [key]')."""
        entries = []
        for discord_channel, irc_entry in channel_mapping.items():
            parts = irc_entry.split()
            if not parts:
                raise ConfigurationError(f"Empty IRC channel for {discord_channel}")
            entries.append(MappingEntry(
                discord_channel=discord_channel,
                irc_channel=parts[0].lower(),
                key=parts[1] if len(parts) > 1 else None,
            ))
        return cls(entries, remap=remap, webhooks=webhooks)

    def irc_channel_for(self, discord_channel: str) -> Optional[str]:
        entry = self._forward.get(discord_channel)
        return entry.irc_channel if entry else None

    def discord_channel_for(self, irc_channel: str) -> Optional[str]:
        return self._inverse.get(irc_channel.lower())

    def key_for(self, irc_channel: str) -> Optional[str]:
        discord_channel = self._inverse.get(irc_channel.lower())
        return self._forward[discord_channel].key if discord_channel else None

    def remap_for(self, discord_channel: str) -> Optional[str]:
        return self._remap.get(discord_channel)

    def webhook_for(self, discord_channel: str) -> Optional[str]:
        return self._webhooks.get(discord_channel)

    def is_irc_channel_mapped(self, irc_channel: str) -> bool:
        return irc_channel.lower() in self._inverse

    @property
    def entries(self) -> list[MappingEntry]:
        return list(self._forward.values())

    @property
    def webhooks(self) -> Mapping[str, str]:
        return self._webhooks

    def join_targets(self) -> list[tuple[str, Optional[str]]]:
        """IRC (channel, key) pairs to join after connecting."""
        return [(e.irc_channel, e.key) for e in self._forward.values()]
