"""Configuration module for picobot."""

from picobot.config.loader import get_config_path, load_config
from picobot.config.schema import Config

__all__ = ["Config", "load_config", "get_config_path"]
