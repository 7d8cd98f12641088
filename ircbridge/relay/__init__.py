"""Relay sub-core — network-agnostic translation between IRC and Discord.

- Events: tagged dataclasses for inbound events and outbound actions
- Mapping: Discord <-> IRC channel tables (plus remap and webhooks)
- Text: mentions, whitespace, nick coloring, formatting stripping
- Commands: !help / !users / !topic / !versions
- Identity: webhook vs. bot delivery for Discord
- Core: RelayCore.forward / RelayCore.reverse
"""

from .core import RelayCore
from .mapping import ChannelMapping, MappingEntry
from .text import Directory

__all__ = [
    "RelayCore",
    "ChannelMapping",
    "MappingEntry",
    "Directory",
]
