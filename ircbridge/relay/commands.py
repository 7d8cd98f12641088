"""Bridge commands typed on Discord and answered from IRC.

Only exact, argument-free commands are recognised. Anything else that
starts with a command character is swallowed so command syntax never
leaks into the IRC channel.
"""

import logging

from .correlation import QUERY_TOPIC, QUERY_USERS, QUERY_VERSIONS, QueryTracker
from .events import RawToIrc

logger = logging.getLogger("ircbridge.relay")

HELP_TEXT = (
    "```\r\n"
    "!users     list of users connected to IRC\r\n"
    "!topic     topic of IRC room\r\n"
    "!versions  versions of users in the room\r\n"
    "```"
)

_QUERIES = {
    "!users": (QUERY_USERS, "NAMES"),
    "!topic": (QUERY_TOPIC, "TOPIC"),
    "!versions": (QUERY_VERSIONS, "NAMES"),
}


class CommandProcessor:
    """Turns Discord commands into IRC queries."""

    def __init__(self, command_characters: list[str], queries: QueryTracker):
        self.command_characters = list(command_characters)
        self._queries = queries

    def is_command(self, text: str) -> bool:
        return bool(text) and text[0] in self.command_characters

    def handle(self, text: str, irc_channel: str) -> tuple[list, bool]:
        """Process a command for ``irc_channel``.

        Returns:
            Tuple of (irc_actions, wants_help). ``wants_help`` asks the
            caller to deliver HELP_TEXT back to the originating channel.
        """
        if text == "!help":
            return [], True

        query = _QUERIES.get(text)
        if query is None:
            logger.debug(f"Swallowed unknown command {text!r} for {irc_channel}")
            return [], False

        kind, command = query
        self._queries.push(kind, irc_channel)
        logger.debug(f"Command {text} → {command} {irc_channel}")
        return [RawToIrc(command, (irc_channel,))], False
