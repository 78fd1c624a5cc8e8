"""Configuration loading utilities."""

import json
import os
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger
from pydantic import ValidationError

from muavin.config.schema import Config


class ConfigurationError(Exception):
    """Raised when required configuration or credentials are missing."""


def get_data_dir() -> Path:
    """Get the muavin data directory (``MUAVIN_HOME`` or ``~/.muavin``)."""
    override = os.environ.get("MUAVIN_HOME")
    return Path(override).expanduser() if override else Path.home() / ".muavin"


def get_config_path() -> Path:
    return get_data_dir() / "config.json"


def load_env() -> None:
    """Load secrets from ``<data dir>/.env`` without overriding the real environment."""
    env_path = get_data_dir() / ".env"
    if env_path.exists():
        load_dotenv(env_path, override=False)
        logger.debug("Loaded environment from {}", env_path)


def load_config(config_path: Path | None = None) -> Config:
    """Load and validate ``config.json``.

    Raises:
        ConfigurationError: if the file is missing, unreadable or invalid.
    """
    path = config_path or get_config_path()
    if not path.exists():
        raise ConfigurationError(f"config.json not found at {path}. Create it with at least an 'owner' chat id")

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return Config.model_validate(data)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Failed to read {path}: {e}") from e
    except ValidationError as e:
        raise ConfigurationError(f"Invalid config at {path}: {e}") from e

