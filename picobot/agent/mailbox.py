"""Per-conversation queue of messages waiting to join a thread."""

from __future__ import annotations

import threading
from collections import defaultdict

from picobot.agent.messages import Message


class MailboxFull(RuntimeError):
    """Raised by enqueue when a configured pending limit is reached."""


class PendingMailbox:
    """
    Accumulates newly arrived messages until a loop iteration consumes them.

    Producers may call `enqueue` from any thread or task. The single consumer
    for a conversation id takes everything at once with `drain_and_clear`.
    """

    def __init__(self, max_pending: int | None = None):
        self.max_pending = max_pending
        self._pending: dict[str, list[Message]] = defaultdict(list)
        self._lock = threading.Lock()

    def enqueue(self, conversation_id: str, message: Message) -> None:
        """Append a message to the tail of the conversation's pending list."""
        with self._lock:
            queue = self._pending[conversation_id]
            if self.max_pending is not None and len(queue) >= self.max_pending:
                raise MailboxFull(
                    f"Pending mailbox for {conversation_id} is full ({self.max_pending} messages)"
                )
            queue.append(message)

    def requeue_front(self, conversation_id: str, messages: list[Message]) -> None:
        """Put drained messages back ahead of anything that arrived since."""
        if not messages:
            return
        with self._lock:
            self._pending[conversation_id][:0] = messages

    def drain_and_clear(self, conversation_id: str) -> list[Message]:
        """Atomically remove and return every queued message, oldest first."""
        with self._lock:
            return self._pending.pop(conversation_id, [])

    def pending_count(self, conversation_id: str) -> int:
        with self._lock:
            return len(self._pending.get(conversation_id, ()))
