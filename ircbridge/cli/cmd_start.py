"""Start command."""

import click

from . import cli
from .shared import DEFAULT_CONFIG, console


@cli.command()
@click.option("--config", "-c", "config_path", default=DEFAULT_CONFIG, show_default=True,
              help="Path to the JSON config file")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def start(config_path, debug):
    """Start relaying between IRC and Discord."""
    from ircbridge.main import main

    console.print("[bold blue]Starting ircbridge...[/bold blue]")
    code = main(config_path, debug=debug)
    if code:
        console.print("[red]ircbridge did not start — fix the configuration and try again.[/red]")
    raise SystemExit(code)
