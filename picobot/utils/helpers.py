"""Utility functions for picobot."""

import re
from pathlib import Path

_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """Get the picobot data directory (~/.picobot)."""
    return ensure_dir(Path.home() / ".picobot")


def safe_filename(name: str) -> str:
    """Convert a string to a safe filename."""
    return _UNSAFE_CHARS.sub("_", name).strip()


def truncate(text: str, max_len: int = 200) -> str:
    """Shorten text for log previews."""
    if len(text) <= max_len:
        return text
    return text[:max_len] + "..."
