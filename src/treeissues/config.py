"""Configuration file handling for treeissues."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

import tomli_w

from treeissues.constants import (
    CONFIG_FILENAME,
    DEFAULT_CORS_ORIGINS,
    DEFAULT_WEB_HOST,
    DEFAULT_WEB_PORT,
    ENV_LOG_LEVEL,
    ENV_STORE_DIR,
    STORE_DIRNAME,
    STORE_FILENAME,
)

logger = logging.getLogger(__name__)

DEFAULT_LOG_LEVEL = "WARNING"

# Known configuration keys with their defaults
DEFAULTS: dict[str, Any] = {
    "store_file": STORE_FILENAME,
    "log_level": DEFAULT_LOG_LEVEL,
    "web_host": DEFAULT_WEB_HOST,
    "web_port": DEFAULT_WEB_PORT,
    "cors_origins": list(DEFAULT_CORS_ORIGINS),
}


def get_config_path(store_dir: str | Path) -> Path:
    """Get the path to the config file.

    Args:
        store_dir: Path to the .treeissues directory

    Returns:
        Path to config.toml
    """
    return Path(store_dir) / CONFIG_FILENAME


def load_config(store_dir: str | Path) -> dict[str, Any]:
    """Load configuration from .treeissues/config.toml.

    Args:
        store_dir: Path to the .treeissues directory

    Returns:
        Configuration dictionary, or empty dict if no config exists
    """
    config_path = get_config_path(store_dir)
    if not config_path.exists():
        return {}

    try:
        with config_path.open("rb") as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as e:
        logger.warning("Ignoring unreadable config %s: %s", config_path, e)
        return {}


def save_config(store_dir: str | Path, config: dict[str, Any]) -> None:
    """Save configuration to .treeissues/config.toml.

    Args:
        store_dir: Path to the .treeissues directory
        config: Configuration dictionary to save
    """
    config_path = get_config_path(store_dir)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with config_path.open("wb") as f:
        tomli_w.dump(config, f)


def get_setting(store_dir: str | Path | None, key: str) -> Any:
    """Return a config value, falling back to its default."""
    if key not in DEFAULTS:
        msg = f"Unknown config key: {key}"
        raise KeyError(msg)
    config = load_config(store_dir) if store_dir is not None else {}
    return config.get(key, DEFAULTS[key])


def find_store_dir(start_dir: str | None = None) -> str:
    """Find the .treeissues directory.

    ``TREEISSUES_DIR`` wins when set. Otherwise searches upward from
    *start_dir* (default: current directory), similar to how git finds .git.

    Returns:
        Path to the store directory, or ".treeissues" if not found
    """
    env_dir = os.environ.get(ENV_STORE_DIR, "").strip()
    if env_dir:
        return env_dir

    current = Path.cwd() if start_dir is None else Path(start_dir).resolve()
    while True:
        candidate = current / STORE_DIRNAME
        if candidate.is_dir():
            return str(candidate)
        parent = current.parent
        if parent == current:
            return STORE_DIRNAME
        current = parent


def get_store_path(store_dir: str | Path) -> Path:
    """Get the path of the JSONL issue file inside *store_dir*."""
    return Path(store_dir) / get_setting(store_dir, "store_file")


def get_log_level(store_dir: str | Path | None = None) -> str:
    """Resolve the log level: ``TREEISSUES_LOG_LEVEL`` > config > WARNING."""
    env_level = os.environ.get(ENV_LOG_LEVEL, "").strip()
    if env_level:
        return env_level.upper()
    return str(get_setting(store_dir, "log_level")).upper()
