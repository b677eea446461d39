"""Durable storage for conversation threads."""

from __future__ import annotations

import hashlib
import json
import os
from pathlib import Path
from typing import Any

from loguru import logger

from picobot.agent.messages import Thread
from picobot.utils.helpers import ensure_dir, safe_filename


class ThreadStore:
    """
    Stores one JSON record per conversation id.

    The store only performs mechanical reads and writes. Whoever owns the
    conversation (the scheduler) decides when to call it.
    """

    def __init__(self, threads_dir: Path):
        self.threads_dir = threads_dir

    def _get_thread_path(self, thread_id: str) -> Path:
        name = safe_filename(thread_id)
        if name != thread_id:
            # Ids that needed escaping get a digest suffix to keep them apart.
            digest = hashlib.sha256(thread_id.encode("utf-8")).hexdigest()[:12]
            name = f"{name}-{digest}"
        return self.threads_dir / f"{name}.json"

    def load(self, thread_id: str) -> Thread | None:
        """Load a thread, or None when it is missing or cannot be parsed."""
        path = self._get_thread_path(thread_id)
        if not path.exists():
            return None

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            thread = Thread.from_dict(data)
        except Exception as e:
            # A corrupt record is treated as absent; the next save overwrites it.
            logger.warning(f"Failed to load thread {thread_id}: {e}")
            return None

        if thread.id != thread_id:
            logger.warning(f"Thread record {path.name} belongs to {thread.id!r}, not {thread_id!r}")
            return None
        return thread

    def save(self, thread_id: str, thread: Thread) -> None:
        """Fully replace the record for `thread_id`."""
        ensure_dir(self.threads_dir)
        path = self._get_thread_path(thread_id)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(thread.to_json(), encoding="utf-8")
        os.replace(tmp_path, path)

    def list_threads(self) -> list[dict[str, Any]]:
        """
        List all stored threads.

        Returns:
            List of thread info dicts, most recently written first.
        """
        if not self.threads_dir.exists():
            return []

        threads = []
        for path in self.threads_dir.glob("*.json"):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                threads.append(
                    {
                        "id": str(data.get("id") or path.stem),
                        "channel": str(data.get("channel", "")),
                        "messages": len(data.get("messages") or []),
                        "updated_at": path.stat().st_mtime,
                        "path": str(path),
                    }
                )
            except Exception:
                continue

        return sorted(threads, key=lambda x: x["updated_at"], reverse=True)
