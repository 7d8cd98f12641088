"""Config check command."""

import click
from rich.table import Table

from . import cli
from .shared import DEFAULT_CONFIG, console


@cli.command()
@click.option("--config", "-c", "config_path", default=DEFAULT_CONFIG, show_default=True,
              help="Path to the JSON config file")
def check(config_path):
    """Validate the config file and print the channel mapping."""
    from ircbridge.config import load_settings
    from ircbridge.errors import ConfigurationError
    from ircbridge.relay import ChannelMapping

    try:
        settings = load_settings(config_path)
        mapping = ChannelMapping.from_config(
            settings.channel_mapping,
            remap=settings.channel_remap,
            webhooks=settings.webhook_mapping,
        )
    except ConfigurationError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise SystemExit(1)

    table = Table(title=f"{settings.nickname} @ {settings.server}:{settings.port}", padding=(0, 2))
    table.add_column("Discord", style="bold")
    table.add_column("IRC")
    table.add_column("Remap")
    table.add_column("Delivery")

    for entry in mapping.entries:
        irc = entry.irc_channel + (" (key)" if entry.key else "")
        remap = mapping.remap_for(entry.discord_channel) or "—"
        delivery = "webhook" if mapping.webhook_for(entry.discord_channel) else "bot"
        table.add_row(entry.discord_channel, irc, remap, delivery)

    console.print(table)
    if settings.command_characters:
        console.print(f"Command characters: {' '.join(settings.command_characters)}")
    console.print("[green]✓ Configuration OK[/green]")
