"""
Channel configuration loader for the pushers host.

Reads `config/channels.yml`, which lists the notification channels to start:

    channels:
      alerts:
        type: smtp
        server: mail.example.com
        ...

Only the file structure is checked here; each channel validates its own
settings when it is built.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)


@dataclass
class ChannelEntry:
    """Configuration for a single channel."""

    name: str
    type: str
    enabled: bool = True
    env_prefix: Optional[str] = None
    settings: dict[str, Any] = field(default_factory=dict)


def _project_root() -> Path:
    """Return the project root path based on this file's location."""
    return Path(__file__).resolve().parent.parent


def default_config_path() -> Path:
    return _project_root() / "config" / "channels.yml"


def load_channels_config(config_path: str | None = None) -> list[ChannelEntry]:
    """
    Load channel definitions from a YAML file.

    Args:
        config_path: Optional override for the config file path. When omitted,
            `config/channels.yml` relative to the project root is read.

    Returns:
        List of `ChannelEntry` objects in file order.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ValueError: If the YAML cannot be parsed or has invalid structure.
    """
    path = Path(config_path) if config_path else default_config_path()
    if not path.exists():
        logger.error("Channels configuration file not found: %s", path)
        raise FileNotFoundError(f"Channels configuration file not found: {path}")

    try:
        with path.open("r", encoding="utf-8") as handle:
            raw_config: Mapping[str, Any] | None = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        logger.error("Failed to parse channels configuration: %s", exc)
        raise ValueError(f"Invalid YAML in channels configuration: {exc}") from exc

    if not raw_config:
        logger.warning("Channels configuration file is empty: %s", path)
        return []
    if not isinstance(raw_config, Mapping):
        raise ValueError("Channels configuration must be a mapping")

    channels_section = raw_config.get("channels")
    if not isinstance(channels_section, Mapping):
        raise ValueError("`channels` section is missing or invalid in channels configuration")

    entries: list[ChannelEntry] = []
    for channel_name, channel_data in channels_section.items():
        if not isinstance(channel_data, Mapping):
            raise ValueError(f"Invalid channel configuration for '{channel_name}'")

        channel_type = channel_data.get("type")
        if not isinstance(channel_type, str) or not channel_type.strip():
            raise ValueError(f"Channel '{channel_name}' must define a non-empty `type` string")

        env_prefix = channel_data.get("env_prefix")
        if env_prefix is not None and not isinstance(env_prefix, str):
            raise ValueError(f"`env_prefix` for channel '{channel_name}' must be a string")

        settings = {
            key: value
            for key, value in channel_data.items()
            if key not in ("type", "enabled", "env_prefix")
        }
        entries.append(
            ChannelEntry(
                name=str(channel_name),
                type=channel_type.strip(),
                enabled=bool(channel_data.get("enabled", True)),
                env_prefix=env_prefix,
                settings=settings,
            )
        )

    logger.info(
        "Loaded channels configuration",
        extra={
            "channels_count": len(entries),
            "enabled_channels": [entry.name for entry in entries if entry.enabled],
        },
    )
    return entries


__all__ = ["ChannelEntry", "default_config_path", "load_channels_config"]
