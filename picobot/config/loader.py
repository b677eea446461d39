"""Configuration loading utilities."""

import json
import os
from pathlib import Path

from loguru import logger

from picobot.config.schema import Config
from picobot.utils.helpers import get_data_path


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return get_data_path() / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file or create default.

    Args:
        config_path: Optional path to config file. Uses default if not provided.

    Returns:
        Loaded configuration object.
    """
    path = config_path or get_config_path()

    config = Config()
    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            config = Config(**data)
        except (json.JSONDecodeError, TypeError, ValueError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            logger.warning("Using default configuration.")

    if not config.providers.anthropic.api_key:
        config.providers.anthropic.api_key = os.environ.get("ANTHROPIC_API_KEY", "")
    return config
