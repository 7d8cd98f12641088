"""Event and action types exchanged between transports and the relay core.

Every inbound event is a small immutable dataclass. IRC events are a
closed set (``IrcEvent``); the relay core dispatches on the concrete
class. Outbound work is expressed as actions, which the bridge hands to
the opposite transport.
"""

from dataclasses import dataclass
from typing import Optional, Union


# ════════════════════════════════════════════════════════
# Discord side
# ════════════════════════════════════════════════════════

@dataclass(frozen=True)
class DiscordUser:
    id: str
    username: str
    bot: bool = False


@dataclass(frozen=True)
class DiscordMember:
    user: DiscordUser
    nickname: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.nickname or self.user.username


@dataclass(frozen=True)
class DiscordChannel:
    id: str
    name: str                   # without the leading '#'
    guild_id: Optional[str] = None
    is_text: bool = True


@dataclass(frozen=True)
class DiscordMessage:
    id: str
    author: DiscordUser
    channel: DiscordChannel
    content: str
    mentions: tuple[DiscordUser, ...] = ()
    attachments: tuple[str, ...] = ()   # attachment URLs


# ════════════════════════════════════════════════════════
# IRC side
# ════════════════════════════════════════════════════════

@dataclass(frozen=True)
class IrcConnected:
    nick: str


@dataclass(frozen=True)
class IrcMessage:
    author: str
    target: str                 # channel or the bridge's own nick
    text: str


@dataclass(frozen=True)
class IrcNotice:
    author: str
    target: str
    text: str


@dataclass(frozen=True)
class IrcAction:
    author: str
    target: str
    text: str


@dataclass(frozen=True)
class IrcJoin:
    channel: str
    nick: str


@dataclass(frozen=True)
class IrcPart:
    channel: str
    nick: str
    reason: str = ""


@dataclass(frozen=True)
class IrcQuit:
    nick: str
    reason: str = ""
    channels: tuple[str, ...] = ()


@dataclass(frozen=True)
class IrcKick:
    channel: str
    nick: str
    by: str
    reason: str = ""


@dataclass(frozen=True)
class IrcKill:
    nick: str
    reason: str = ""
    channels: tuple[str, ...] = ()


@dataclass(frozen=True)
class IrcTopic:
    channel: str
    topic: str
    nick: str = ""


@dataclass(frozen=True)
class IrcNames:
    channel: str
    nicks: tuple[str, ...] = ()


@dataclass(frozen=True)
class IrcCtcp:
    author: str
    target: str
    text: str                   # e.g. "VERSION HexChat 2.16"
    kind: str = "notice"        # 'notice' (reply) or 'privmsg' (request)


@dataclass(frozen=True)
class IrcInvite:
    channel: str
    author: str


@dataclass(frozen=True)
class IrcNick:
    old: str
    new: str


@dataclass(frozen=True)
class IrcError:
    message: str


IrcEvent = Union[
    IrcConnected, IrcMessage, IrcNotice, IrcAction, IrcJoin, IrcPart, IrcQuit,
    IrcKick, IrcKill, IrcTopic, IrcNames, IrcCtcp, IrcInvite, IrcNick, IrcError,
]


# ════════════════════════════════════════════════════════
# Outbound actions
# ════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SayToIrc:
    channel: str
    text: str
    prefix: str = ""            # repeated on every chunk when the line is split

    @property
    def line(self) -> str:
        return self.prefix + self.text


@dataclass(frozen=True)
class RawToIrc:
    command: str
    args: tuple[str, ...] = ()


@dataclass(frozen=True)
class CtcpToIrc:
    target: str
    text: str = "VERSION"


@dataclass(frozen=True)
class JoinIrc:
    channel: str
    key: Optional[str] = None


@dataclass(frozen=True)
class SendToDiscord:
    channel: DiscordChannel
    text: str
    webhook: Optional[str] = None       # credential; None = send as the bot
    username: Optional[str] = None      # webhook display name


Action = Union[SayToIrc, RawToIrc, CtcpToIrc, JoinIrc, SendToDiscord]
