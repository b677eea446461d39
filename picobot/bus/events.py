"""Event types for the message bus."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class InboundMessage:
    """Message received from a chat channel."""

    channel: str  # telegram, slack, cli, ...
    sender_id: str  # User identifier
    chat_id: str  # Chat/channel identifier
    content: str  # Message text
    message_id: str  # Platform id of this event
    thread_id: str | None = None  # Parent conversation, if this is a reply
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def conversation_id(self) -> str:
        """A reply joins its parent conversation; anything else starts a new one."""
        return self.thread_id or self.message_id


@dataclass
class OutboundMessage:
    """Message to send to a chat channel."""

    channel: str
    chat_id: str
    content: str
    thread_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
