"""ircbridge CLI — command line interface."""

import click
from ircbridge import __version__
from .shared import console


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="ircbridge")
@click.pass_context
def cli(ctx):
    """ircbridge — relay IRC channels to Discord and back"""
    if ctx.invoked_subcommand is None:
        _show_help()


def _show_help():
    """Show all available commands."""
    console.print(f"[bold]ircbridge v{__version__}[/bold] — IRC <-> Discord relay\n")

    commands = [
        ("start", "Connect to IRC and Discord and start relaying"),
        ("check", "Validate a config file and show the channel mapping"),
    ]
    for name, desc in commands:
        console.print(f"    [bold]ircbridge {name:10s}[/bold] {desc}")
    console.print()
    console.print("[dim]Run 'ircbridge <command> --help' for details on a specific command.[/dim]")


# Import all command modules (registers commands onto cli group)
from . import cmd_start  # noqa: E402, F401
from . import cmd_check  # noqa: E402, F401


@cli.command(name="help", hidden=True)
def help_cmd():
    """Show all available commands."""
    _show_help()
