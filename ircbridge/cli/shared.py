"""Shared utilities for ircbridge CLI commands."""

import os

from rich.console import Console

console = Console()

DEFAULT_CONFIG = os.environ.get("IRCBRIDGE_CONFIG", "config.json")
