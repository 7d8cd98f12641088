"""Text transformations between Discord markup and IRC lines.

All functions here are pure: they only read the lookups they are given
and never keep state between calls.

Handles:
- Discord mention/channel/emoji tokens → readable IRC text
- Line break collapsing (IRC is line-oriented)
- Deterministic nickname coloring with mIRC color codes
- '@name' on IRC → Discord mention references
- Stripping mIRC color/style codes from topics and reasons
"""

import re
from typing import Iterable, Optional, Protocol

from .events import DiscordChannel, DiscordMember, DiscordUser


# ============================================================
# LOOKUP INTERFACE
# ============================================================

class Directory(Protocol):
    """Read-only view of the live Discord state (channels, members, users)."""

    def channel_by_id(self, channel_id: str) -> Optional[DiscordChannel]: ...

    def text_channel_by_name(self, name: str) -> Optional[DiscordChannel]: ...

    def member(self, guild_id: str, user_id: str) -> Optional[DiscordMember]: ...

    def member_by_nickname(self, guild_id: str, nickname: str) -> Optional[DiscordMember]: ...

    def user_by_username(self, username: str) -> Optional[DiscordUser]: ...


# ============================================================
# DISCORD → IRC
# ============================================================

_CHANNEL_TOKEN_RE = re.compile(r'<#(\d+)>')
_EMOJI_TOKEN_RE = re.compile(r'<a?(:\w+:)\d+>')
_NEWLINE_RE = re.compile(r'\r\n|\r|\n')


def display_name(user: DiscordUser, guild_id: Optional[str], directory: Directory) -> str:
    """Guild nickname if set, else the base username."""
    if guild_id:
        member = directory.member(guild_id, user.id)
        if member:
            return member.display_name
    return user.username


def resolve_mentions(
    text: str,
    mentions: Iterable[DiscordUser],
    guild_id: Optional[str],
    directory: Directory,
) -> str:
    """Replace Discord mention tokens with readable names.

    ``<@id>``, ``<@!id>`` and ``<@&id>`` for each mentioned user become
    ``@display name``; ``<#id>`` becomes ``#channel-name``; custom emoji
    ``<:name:id>`` become ``:name:``. Tokens that cannot be resolved are
    left as they are.
    """
    for user in mentions:
        name = display_name(user, guild_id, directory)
        for token in (f"<@{user.id}>", f"<@!{user.id}>", f"<@&{user.id}>"):
            text = text.replace(token, f"@{name}")

    def _channel(match: re.Match) -> str:
        channel = directory.channel_by_id(match.group(1))
        return f"#{channel.name}" if channel else match.group(0)

    text = _CHANNEL_TOKEN_RE.sub(_channel, text)
    return _EMOJI_TOKEN_RE.sub(r'\1', text)


def normalize_whitespace(text: str) -> str:
    """Collapse every line break variant into a single space."""
    return _NEWLINE_RE.sub(' ', text)


# ============================================================
# NICKNAME COLORING
# ============================================================

NICK_COLORS = (
    "light_blue", "dark_blue", "light_red", "dark_red", "light_green",
    "dark_green", "magenta", "light_magenta", "orange", "yellow", "cyan", "light_cyan",
)

# mIRC color numbers
IRC_COLOR_CODES = {
    "white": "00", "black": "01", "dark_blue": "02", "dark_green": "03",
    "light_red": "04", "dark_red": "05", "magenta": "06", "orange": "07",
    "yellow": "08", "light_green": "09", "cyan": "10", "light_cyan": "11",
    "light_blue": "12", "light_magenta": "13", "gray": "14", "light_gray": "15",
}

_COLOR = "\x03"
_RESET = "\x0f"


def nick_color(name: str) -> str:
    """Palette entry for a name: (first codepoint + length) mod 12."""
    return NICK_COLORS[(ord(name[0]) + len(name)) % len(NICK_COLORS)]


def colorize(name: str, enabled: bool = True) -> str:
    """Wrap a name in its mIRC color. Returns the name untouched when disabled."""
    if not enabled or not name:
        return name
    return f"{_COLOR}{IRC_COLOR_CODES[nick_color(name)]}{name}{_RESET}"


# ============================================================
# IRC → DISCORD
# ============================================================

_AT_WORD_RE = re.compile(r'@[^\s]+\b')

# \x02 bold, \x1d italic, \x1f underline, \x1e strike, \x11 monospace,
# \x16 reverse, \x0f reset, \x03 color with optional fg[,bg]
_FORMATTING_RE = re.compile(r'\x03(?:\d{1,2}(?:,\d{1,2})?)?|[\x02\x0f\x11\x16\x1d\x1e\x1f]')


def rewrite_mentions_back(text: str, guild_id: Optional[str], directory: Directory) -> str:
    """Turn IRC '@name' words into Discord mention references.

    Exact guild nickname matches win. Otherwise a global username match
    is used only when that user has no nickname in the guild, or the
    nickname equals the word. When a username matches but the member
    goes by a different nickname, the word stays as plain text.
    """
    if not guild_id:
        return text

    def _replace(match: re.Match) -> str:
        word = match.group(0)[1:]
        member = directory.member_by_nickname(guild_id, word)
        if member:
            return f"<@{member.user.id}>"

        user = directory.user_by_username(word)
        if user:
            guild_member = directory.member(guild_id, user.id)
            nickname = guild_member.nickname if guild_member else None
            if not nickname or nickname == word:
                return f"<@{user.id}>"

        return match.group(0)

    return _AT_WORD_RE.sub(_replace, text)


def strip_irc_formatting(text: str) -> str:
    """Remove mIRC color and style control codes."""
    return _FORMATTING_RE.sub('', text)
