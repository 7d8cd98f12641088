"""ircbridge — IRC <-> Discord channel relay."""

__version__ = "0.4.0"
