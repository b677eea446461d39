"""Utility functions for picobot."""

from picobot.utils.helpers import ensure_dir, get_data_path, safe_filename

__all__ = ["ensure_dir", "get_data_path", "safe_filename"]
