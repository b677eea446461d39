"""Message tool for sending messages to users."""

from typing import Any, Awaitable, Callable

from picobot.agent.tools.base import Tool
from picobot.bus.events import OutboundMessage


class MessageTool(Tool):
    """Tool to send messages to the user in the current conversation."""

    def __init__(
        self,
        send_callback: Callable[[OutboundMessage], Awaitable[None]] | None = None,
        default_channel: str = "",
        default_chat_id: str = "",
        default_thread_id: str | None = None,
    ):
        self._send_callback = send_callback
        self._default_channel = default_channel
        self._default_chat_id = default_chat_id
        self._default_thread_id = default_thread_id

    @property
    def name(self) -> str:
        return "send_message"

    @property
    def description(self) -> str:
        return (
            "Send a message to the user. "
            "This is the only way to communicate with the user."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "text": {
                    "type": "string",
                    "description": "The message text (supports markdown formatting)",
                },
            },
            "required": ["text"],
        }

    async def execute(self, text: str, **kwargs: Any) -> str:
        if not self._default_channel or not self._default_chat_id:
            raise RuntimeError("No target channel/chat for this conversation")
        if not self._send_callback:
            raise RuntimeError("Message sending not configured")

        msg = OutboundMessage(
            channel=self._default_channel,
            chat_id=self._default_chat_id,
            content=text,
            thread_id=self._default_thread_id,
        )
        await self._send_callback(msg)
        return "Message sent."
