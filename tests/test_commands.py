"""Tests for Discord-side bridge commands."""

from conftest import FakeClock
from ircbridge.relay.commands import HELP_TEXT, CommandProcessor
from ircbridge.relay.correlation import QUERY_TOPIC, QUERY_USERS, QUERY_VERSIONS, QueryTracker
from ircbridge.relay.events import RawToIrc


def _processor():
    queries = QueryTracker(clock=FakeClock())
    return CommandProcessor(["!", "."], queries), queries


class TestCommandProcessor:
    def test_is_command(self):
        processor, _ = _processor()
        assert processor.is_command("!users")
        assert processor.is_command(".anything")
        assert not processor.is_command("hello")
        assert not processor.is_command("")

    def test_help(self):
        processor, queries = _processor()
        actions, wants_help = processor.handle("!help", "#project")
        assert actions == []
        assert wants_help is True
        assert "!versions" in HELP_TEXT

    def test_users(self):
        processor, queries = _processor()
        actions, wants_help = processor.handle("!users", "#project")
        assert actions == [RawToIrc("NAMES", ("#project",))]
        assert not wants_help
        assert queries.pop("NAMES", "#project") == QUERY_USERS

    def test_topic(self):
        processor, queries = _processor()
        actions, _ = processor.handle("!topic", "#project")
        assert actions == [RawToIrc("TOPIC", ("#project",))]
        assert queries.pop("TOPIC", "#project") == QUERY_TOPIC

    def test_versions(self):
        processor, queries = _processor()
        actions, _ = processor.handle("!versions", "#project")
        assert actions == [RawToIrc("NAMES", ("#project",))]
        assert queries.pop("NAMES", "#project") == QUERY_VERSIONS

    def test_unknown_command_swallowed(self):
        processor, queries = _processor()
        actions, wants_help = processor.handle("!kick everyone", "#project")
        assert actions == []
        assert not wants_help
        assert queries.pending("NAMES", "#project") == 0

    def test_commands_take_no_arguments(self):
        processor, _ = _processor()
        actions, _ = processor.handle("!users now", "#project")
        assert actions == []
