"""Conversation data model: content blocks, messages and threads."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Literal, Union

Role = Literal["user", "assistant"]

ROLE_USER: Role = "user"
ROLE_ASSISTANT: Role = "assistant"


@dataclass(frozen=True)
class TextBlock:
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(frozen=True)
class ToolCallBlock:
    """A tool invocation requested by the model."""

    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": "tool_call", "id": self.id, "name": self.name, "input": self.input}


@dataclass(frozen=True)
class ToolResultBlock:
    """The answer to exactly one earlier ToolCallBlock."""

    tool_call_id: str
    content: str
    error: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": "tool_result",
            "tool_call_id": self.tool_call_id,
            "content": self.content,
        }
        if self.error:
            data["error"] = True
        return data


ContentBlock = Union[TextBlock, ToolCallBlock, ToolResultBlock]


def block_from_dict(data: dict[str, Any]) -> ContentBlock:
    """Parse one persisted content block."""
    if not isinstance(data, dict):
        raise ValueError(f"Content block must be an object, got {type(data).__name__}")

    block_type = data.get("type")
    if block_type == "text":
        return TextBlock(text=str(data.get("text", "")))
    if block_type == "tool_call":
        raw_input = data.get("input") or {}
        if not isinstance(raw_input, dict):
            raise ValueError(f"tool_call input must be an object: {raw_input!r}")
        return ToolCallBlock(id=str(data["id"]), name=str(data["name"]), input=raw_input)
    if block_type == "tool_result":
        return ToolResultBlock(
            tool_call_id=str(data["tool_call_id"]),
            content=str(data.get("content", "")),
            error=bool(data.get("error", False)),
        )
    raise ValueError(f"Unknown content block type: {block_type!r}")


@dataclass
class Message:
    """
    One turn in a conversation.

    Content is always held as an ordered list of blocks. Plain string content
    found in stored records is normalized to a single TextBlock on load.
    """

    role: Role
    content: list[ContentBlock] = field(default_factory=list)

    @classmethod
    def user_text(cls, text: str) -> Message:
        return cls(role=ROLE_USER, content=[TextBlock(text)])

    @classmethod
    def assistant_text(cls, text: str) -> Message:
        return cls(role=ROLE_ASSISTANT, content=[TextBlock(text)])

    @property
    def tool_calls(self) -> list[ToolCallBlock]:
        return [b for b in self.content if isinstance(b, ToolCallBlock)]

    @property
    def tool_results(self) -> list[ToolResultBlock]:
        return [b for b in self.content if isinstance(b, ToolResultBlock)]

    @property
    def text(self) -> str:
        return "\n".join(b.text for b in self.content if isinstance(b, TextBlock))

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role, "content": [b.to_dict() for b in self.content]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        role = data.get("role")
        if role not in (ROLE_USER, ROLE_ASSISTANT):
            raise ValueError(f"Unknown message role: {role!r}")

        raw = data.get("content", "")
        if isinstance(raw, str):
            blocks: list[ContentBlock] = [TextBlock(raw)]
        elif isinstance(raw, list):
            blocks = [block_from_dict(item) for item in raw]
        else:
            raise ValueError(f"Message content must be a string or a list, got {type(raw).__name__}")
        return cls(role=role, content=blocks)


@dataclass
class Thread:
    """
    A conversation's durable history.

    Messages are append-only: the sequence is replayed in full on every load.
    """

    id: str
    channel: str
    messages: list[Message] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "channel": self.channel,
            "messages": [m.to_dict() for m in self.messages],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Thread:
        if not isinstance(data, dict):
            raise ValueError("Thread record must be an object")
        messages = data.get("messages") or []
        if not isinstance(messages, list):
            raise ValueError("Thread messages must be a list")
        return cls(
            id=str(data["id"]),
            channel=str(data.get("channel", "")),
            messages=[Message.from_dict(m) for m in messages],
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=2)


def unanswered_tool_calls(messages: list[Message]) -> list[ToolCallBlock]:
    """Return tool calls in the sequence that no later tool_result answers, in order."""
    answered = {r.tool_call_id for m in messages for r in m.tool_results}
    return [c for m in messages for c in m.tool_calls if c.id not in answered]
