"""Tests for probe and query correlation tracking."""

from conftest import FakeClock
from ircbridge.relay.correlation import (
    AUTO_PROBE,
    MANUAL_PROBE,
    QUERY_TOPIC,
    QUERY_USERS,
    QUERY_VERSIONS,
    ProbeTracker,
    QueryTracker,
)


class TestProbeTracker:
    """Pending version probes keyed by nick."""

    def test_consume_removes_entry(self):
        probes = ProbeTracker(clock=FakeClock())
        probes.record("dave", "#project", AUTO_PROBE)
        probe = probes.consume("dave")
        assert probe.channel == "#project"
        assert probe.kind == AUTO_PROBE
        assert probes.consume("dave") is None
        assert len(probes) == 0

    def test_nick_case_insensitive(self):
        probes = ProbeTracker(clock=FakeClock())
        probes.record("Dave", "#project", AUTO_PROBE)
        assert "dave" in probes
        assert probes.consume("DAVE") is not None

    def test_latest_probe_wins(self):
        probes = ProbeTracker(clock=FakeClock())
        probes.record("dave", "#project", AUTO_PROBE)
        probes.record("dave", "#offtopic", MANUAL_PROBE)
        probe = probes.consume("dave")
        assert probe.channel == "#offtopic"
        assert probe.kind == MANUAL_PROBE

    def test_expired_probe_not_returned(self):
        clock = FakeClock()
        probes = ProbeTracker(ttl=60, clock=clock)
        probes.record("dave", "#project", AUTO_PROBE)
        clock.advance(61)
        assert probes.consume("dave") is None

    def test_prune(self):
        clock = FakeClock()
        probes = ProbeTracker(ttl=60, clock=clock)
        probes.record("old", "#project", AUTO_PROBE)
        clock.advance(30)
        probes.record("new", "#project", AUTO_PROBE)
        clock.advance(40)
        probes.prune()
        assert "old" not in probes
        assert "new" in probes


class TestQueryTracker:
    """User-issued TOPIC/NAMES queries, FIFO per channel."""

    def test_fifo_order(self):
        queries = QueryTracker(clock=FakeClock())
        queries.push(QUERY_USERS, "#project")
        queries.push(QUERY_VERSIONS, "#project")
        assert queries.pop("NAMES", "#project") == QUERY_USERS
        assert queries.pop("NAMES", "#project") == QUERY_VERSIONS
        assert queries.pop("NAMES", "#project") is None

    def test_channels_are_independent(self):
        queries = QueryTracker(clock=FakeClock())
        queries.push(QUERY_USERS, "#project")
        assert queries.pop("NAMES", "#offtopic") is None
        assert queries.pop("NAMES", "#PROJECT") == QUERY_USERS

    def test_topic_and_names_are_separate(self):
        queries = QueryTracker(clock=FakeClock())
        queries.push(QUERY_TOPIC, "#project")
        assert queries.pop("NAMES", "#project") is None
        assert queries.pending("TOPIC", "#project") == 1
        assert queries.pop("TOPIC", "#project") == QUERY_TOPIC

    def test_expired_queries_skipped(self):
        clock = FakeClock()
        queries = QueryTracker(ttl=60, clock=clock)
        queries.push(QUERY_USERS, "#project")
        clock.advance(100)
        queries.push(QUERY_VERSIONS, "#project")
        assert queries.pop("NAMES", "#project") == QUERY_VERSIONS
        assert queries.pending("NAMES", "#project") == 0
