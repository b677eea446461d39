"""Thread persistence."""

from picobot.threads.store import ThreadStore

__all__ = ["ThreadStore"]
