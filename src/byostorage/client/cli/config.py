"""Configuration utilities for the byostorage CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

from byostorage.client.sync.feed import DEFAULT_LONGPOLL_TIMEOUT
from byostorage.core.config import DEFAULT_ROOT_FOLDER, DropboxConfig

CONFIG_DIR_ENV = "BYOSTORAGE_HOME"


def get_config_dir() -> Path:
    """Get the configuration directory for byostorage.

    Returns:
        Path from $BYOSTORAGE_HOME, or ~/.byostorage.
    """
    override = os.environ.get(CONFIG_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".byostorage"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def get_cache_path() -> Path:
    """Get the path to the local cache database."""
    return get_config_dir() / "cache.db"


def load_config() -> dict[str, str]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, str]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def build_dropbox_config(access_token: str) -> DropboxConfig:
    """Build the Dropbox configuration from the config file."""
    config = load_config()
    return DropboxConfig(
        access_token=access_token,
        root_folder=config.get("root_folder", DEFAULT_ROOT_FOLDER),
        longpoll_timeout=int(config.get("longpoll_timeout", DEFAULT_LONGPOLL_TIMEOUT)),
    )
