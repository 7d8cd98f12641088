"""Request/reply correlation for IRC queries and version probes.

IRC replies carry no request id, so outstanding work is tracked here:

- ProbeTracker — one pending CTCP VERSION probe per peer (latest wins)
- QueryTracker — FIFO of user-issued TOPIC/NAMES queries per channel

Entries expire after ``ttl`` seconds so unanswered probes and queries
cannot accumulate forever. Expiry is checked lazily on access.
"""

import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger("ircbridge.relay")

AUTO_PROBE = "auto"         # sent on join, reply is an automatic message
MANUAL_PROBE = "manual"     # sent for !versions, reply goes to the requester

QUERY_TOPIC = "topic"
QUERY_USERS = "users"
QUERY_VERSIONS = "versions"

_COMMAND_FOR_QUERY = {
    QUERY_TOPIC: "TOPIC",
    QUERY_USERS: "NAMES",
    QUERY_VERSIONS: "NAMES",
}


@dataclass
class PendingProbe:
    channel: str
    kind: str
    created_at: float


class ProbeTracker:
    """Pending version probes keyed by IRC nick (case-insensitive)."""

    def __init__(self, ttl: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self._ttl = ttl
        self._clock = clock
        self._pending: dict[str, PendingProbe] = {}

    def record(self, nick: str, channel: str, kind: str):
        """Remember a probe sent to ``nick``. Overwrites any earlier probe."""
        key = nick.lower()
        previous = self._pending.get(key)
        if previous:
            logger.debug(f"Probe to {nick} replaces pending {previous.kind} probe from {previous.channel}")
        self._pending[key] = PendingProbe(channel=channel, kind=kind, created_at=self._clock())

    def consume(self, nick: str) -> Optional[PendingProbe]:
        """Remove and return the live probe for ``nick``, if any."""
        probe = self._pending.pop(nick.lower(), None)
        if probe and self._expired(probe.created_at):
            logger.debug(f"Dropping expired probe for {nick}")
            return None
        return probe

    def prune(self):
        """Drop every expired probe."""
        self._pending = {
            k: v for k, v in self._pending.items() if not self._expired(v.created_at)
        }

    def _expired(self, created_at: float) -> bool:
        return self._clock() - created_at >= self._ttl

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, nick: str) -> bool:
        return nick.lower() in self._pending


class QueryTracker:
    """User-issued TOPIC/NAMES queries awaiting a reply, per IRC channel.

    Replies for one channel arrive in the order the queries were sent,
    so each (command, channel) pair is a FIFO queue.
    """

    def __init__(self, ttl: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self._ttl = ttl
        self._clock = clock
        self._queues: dict[tuple[str, str], deque] = {}

    def push(self, kind: str, channel: str):
        """Record a query of ``kind`` (QUERY_*) sent for ``channel``."""
        key = (_COMMAND_FOR_QUERY[kind], channel.lower())
        self._queues.setdefault(key, deque()).append((kind, self._clock()))

    def pop(self, command: str, channel: str) -> Optional[str]:
        """Consume the oldest live query for a reply of ``command`` ('TOPIC'/'NAMES').

        Returns the query kind, or None when the reply was unsolicited.
        """
        key = (command, channel.lower())
        queue = self._queues.get(key)
        kind = None
        while queue:
            candidate, created_at = queue.popleft()
            if self._clock() - created_at < self._ttl:
                kind = candidate
                break
            logger.debug(f"Dropping expired {candidate} query for {channel}")
        if queue is not None and not queue:
            del self._queues[key]
        return kind

    def pending(self, command: str, channel: str) -> int:
        return len(self._queues.get((command, channel.lower()), ()))
