"""Pytest configuration and shared fixtures."""

from typing import Optional

import pytest

from ircbridge.relay import ChannelMapping, RelayCore
from ircbridge.relay.events import DiscordChannel, DiscordMember, DiscordMessage, DiscordUser

GUILD = "g1"

ALICE = DiscordUser(id="100", username="alice")
BOB = DiscordUser(id="200", username="bob")
CAROL = DiscordUser(id="300", username="carol")
ROBOT = DiscordUser(id="900", username="somebot", bot=True)

GENERAL = DiscordChannel(id="1", name="general", guild_id=GUILD)
OFFTOPIC = DiscordChannel(id="2", name="offtopic", guild_id=GUILD)
ACTIVITY = DiscordChannel(id="3", name="activity", guild_id=GUILD)
UNMAPPED = DiscordChannel(id="4", name="random", guild_id=GUILD)


class FakeDirectory:
    """In-memory stand-in for the live Discord state."""

    def __init__(self):
        self.channels: dict[str, DiscordChannel] = {}
        self.members: dict[tuple[str, str], DiscordMember] = {}
        self.users: dict[str, DiscordUser] = {}

    def add_channel(self, channel: DiscordChannel):
        self.channels[channel.id] = channel

    def add_member(self, user: DiscordUser, nickname: Optional[str] = None, guild_id: str = GUILD):
        self.users[user.id] = user
        self.members[(guild_id, user.id)] = DiscordMember(user=user, nickname=nickname)

    def channel_by_id(self, channel_id):
        return self.channels.get(channel_id)

    def text_channel_by_name(self, name):
        for channel in self.channels.values():
            if channel.is_text and channel.name == name:
                return channel
        return None

    def member(self, guild_id, user_id):
        return self.members.get((guild_id, user_id))

    def member_by_nickname(self, guild_id, nickname):
        for (gid, _), member in self.members.items():
            if gid == guild_id and member.nickname == nickname:
                return member
        return None

    def user_by_username(self, username):
        for user in self.users.values():
            if user.username == username:
                return user
        return None


class FakeClock:
    """Monotonic clock the tests can move forward."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def make_message(content: str, author: DiscordUser = ALICE, channel: DiscordChannel = GENERAL,
                 mentions=(), attachments=()) -> DiscordMessage:
    return DiscordMessage(
        id="m1", author=author, channel=channel, content=content,
        mentions=tuple(mentions), attachments=tuple(attachments),
    )


@pytest.fixture
def directory():
    d = FakeDirectory()
    for channel in (GENERAL, OFFTOPIC, ACTIVITY, UNMAPPED):
        d.add_channel(channel)
    d.add_member(ALICE, nickname="Ali")
    d.add_member(BOB)
    d.add_member(CAROL, nickname="Caz")
    return d


@pytest.fixture
def mapping():
    return ChannelMapping.from_config(
        {"#general": "#Project", "#offtopic": "#offtopic sekrit"},
        remap={"#general": "#activity"},
        webhooks={"#offtopic": "555 hooktoken"},
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def core(mapping, directory, clock):
    relay = RelayCore(
        mapping,
        directory,
        irc_nick="bridge",
        command_characters=["!"],
        nick_color=False,
        probe_reply_prefixes=["bzone "],
        probe_ttl=300,
        clock=clock,
    )
    relay.discord_user_id = "999"
    return relay
