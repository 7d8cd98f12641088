"""ircbridge configuration management."""

import json
import logging
import os
from typing import Optional

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings

from .errors import ConfigurationError

logger = logging.getLogger("ircbridge.config")

# camelCase keys used by older config.json files
_LEGACY_KEYS = {
    "channelMapping": "channel_mapping",
    "channelReMappingStatus": "channel_remap",
    "webhookMapping": "webhook_mapping",
    "discordToken": "discord_token",
    "commandCharacters": "command_characters",
    "ircNickColor": "irc_nick_color",
    "autoSendCommands": "auto_send_commands",
}


class BridgeSettings(BaseSettings):
    """Settings loaded from a JSON config file, environment variables or .env file."""

    # IRC
    server: str = Field(description="IRC server hostname")
    port: int = Field(default=6667, description="IRC server port")
    tls: bool = Field(default=False, description="Connect to IRC over TLS")
    irc_password: Optional[str] = Field(default=None, description="IRC server password (PASS)")
    nickname: str = Field(description="Bridge nickname on IRC")
    realname: Optional[str] = Field(default=None, description="IRC real name, defaults to nickname")

    # Discord
    discord_token: str = Field(description="Discord bot token")

    # Routing
    channel_mapping: dict[str, str] = Field(
        description="Discord channel -> 'IRC channel [key]'",
    )
    channel_remap: dict[str, str] = Field(
        default_factory=dict,
        description="Discord channel -> alternate Discord channel for automatic messages",
    )
    webhook_mapping: dict[str, str] = Field(
        default_factory=dict,
        description="Discord channel -> 'webhook_id webhook_token'",
    )

    # Behaviour
    command_characters: list[str] = Field(default_factory=list, description="Command prefix characters")
    irc_nick_color: bool = Field(default=True, description="Colorize Discord nicknames on IRC")
    auto_send_commands: list[list[str]] = Field(
        default_factory=list,
        description="Raw IRC commands sent once after registering",
    )
    probe_reply_prefixes: list[str] = Field(
        default_factory=list,
        description="Private-message prefixes treated as version probe replies",
    )
    probe_ttl_seconds: float = Field(default=300.0, description="Lifetime of unanswered probes and queries")

    # Transport tuning
    flood_delay: float = Field(default=0.5, description="Seconds between outbound IRC lines")
    retry_count: int = Field(default=10, description="IRC reconnect attempts before giving up")
    retry_delay: float = Field(default=5.0, description="Seconds between IRC reconnect attempts")

    # Logging
    log_file: Optional[str] = Field(default="~/ircbridge.log", description="Log file path (empty disables)")
    debug: bool = Field(default=False, description="Debug logging")

    model_config = {"env_prefix": "IRCBRIDGE_", "env_file": ".env", "extra": "ignore"}

    @field_validator("channel_mapping")
    @classmethod
    def _check_channel_mapping(cls, value: dict[str, str]) -> dict[str, str]:
        if not value:
            raise ValueError("channel_mapping must contain at least one entry")
        for discord_channel, irc_entry in value.items():
            if not discord_channel.startswith("#") or len(discord_channel) < 2:
                raise ValueError(f"Discord channel '{discord_channel}' must look like '#name'")
            parts = irc_entry.split()
            if not parts or len(parts) > 2:
                raise ValueError(f"IRC entry '{irc_entry}' for {discord_channel} must be '#channel [key]'")
            if parts[0][0] not in "#&+!":
                raise ValueError(f"IRC channel '{parts[0]}' for {discord_channel} is not a channel name")
        return value

    @field_validator("webhook_mapping")
    @classmethod
    def _check_webhook_mapping(cls, value: dict[str, str]) -> dict[str, str]:
        for discord_channel, credential in value.items():
            if len(credential.split()) != 2:
                raise ValueError(f"Webhook for {discord_channel} must be 'webhook_id webhook_token'")
        return value

    @field_validator("command_characters")
    @classmethod
    def _check_command_characters(cls, value: list[str]) -> list[str]:
        for char in value:
            if len(char) != 1:
                raise ValueError(f"Command character '{char}' must be a single character")
        return value

    @model_validator(mode="after")
    def _check_unambiguous(self) -> "BridgeSettings":
        seen: dict[str, str] = {}
        for discord_channel, irc_entry in self.channel_mapping.items():
            irc_channel = irc_entry.split()[0].lower()
            if irc_channel in seen:
                raise ValueError(
                    f"IRC channel {irc_channel} is mapped from both "
                    f"{seen[irc_channel]} and {discord_channel}"
                )
            seen[irc_channel] = discord_channel
        return self


def _read_config_file(path: str) -> dict:
    """Read a JSON config file, translating legacy camelCase keys."""
    try:
        with open(os.path.expanduser(path), encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"Config file not found: {path}")
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Config file {path} is not valid JSON: {e}")

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a JSON object")

    for legacy, current in _LEGACY_KEYS.items():
        if legacy in data and current not in data:
            data[current] = data.pop(legacy)
    return data


def _describe(error: ValidationError) -> str:
    """Turn the first pydantic error into a one-line message."""
    first = error.errors()[0]
    field = ".".join(str(part) for part in first["loc"]) or "config"
    if first["type"] == "missing":
        return f"Missing configuration field {field}"
    return f"Invalid configuration field {field}: {first['msg']}"


def load_settings(path: Optional[str] = None, **overrides) -> BridgeSettings:
    """Load settings from a JSON file (optional) plus environment.

    Raises:
        ConfigurationError: on a missing file, missing field or bad mapping.
    """
    data = _read_config_file(path) if path else {}
    data.update(overrides)

    try:
        settings = BridgeSettings(**data)
    except ValidationError as e:
        raise ConfigurationError(_describe(e)) from e

    if settings.tls and settings.port == 6667:
        logger.warning("TLS enabled on port 6667; most networks expect 6697 for TLS.")

    return settings
