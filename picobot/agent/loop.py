"""Agent loop: connects chat channels to the per-thread scheduler."""

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from picobot.agent.mailbox import MailboxFull, PendingMailbox
from picobot.agent.messages import Message
from picobot.agent.round import GenerationRound
from picobot.agent.scheduler import ThreadScheduler
from picobot.agent.tools.filesystem import ReadFileTool, WriteFileTool
from picobot.agent.tools.message import MessageTool
from picobot.agent.tools.registry import ToolRegistry
from picobot.agent.tools.shell import ExecTool
from picobot.bus.events import InboundMessage, OutboundMessage
from picobot.bus.queue import MessageBus
from picobot.providers.base import LLMProvider
from picobot.threads.store import ThreadStore

if TYPE_CHECKING:
    from picobot.config.schema import ExecToolConfig


class AgentLoop:
    """
    The agent loop is the entry point for chat traffic.

    It:
    1. Receives messages from the bus
    2. Turns each one into a user message queued for its conversation
    3. Triggers the scheduler, which runs generation rounds until the turn ends
    4. Lets the send_message tool deliver replies back through the bus
    """

    def __init__(
        self,
        bus: MessageBus,
        provider: LLMProvider,
        workspace: Path,
        store: ThreadStore,
        model: str | None = None,
        max_tokens: int = 8096,
        system_prompt: str = "You are a helpful assistant.",
        exec_config: "ExecToolConfig | None" = None,
        restrict_to_workspace: bool = False,
        allow_from: list[str] | None = None,
        max_pending: int | None = None,
    ):
        from picobot.config.schema import ExecToolConfig

        self.bus = bus
        self.provider = provider
        self.workspace = workspace
        self.store = store
        self.base_system_prompt = system_prompt
        self.exec_config = exec_config or ExecToolConfig()
        self.restrict_to_workspace = restrict_to_workspace
        self.allow_from = allow_from or []

        self.scheduler = ThreadScheduler(
            store=store,
            generation=GenerationRound(provider, model=model, max_tokens=max_tokens),
            tools_factory=self.build_tools,
            system_prompt=self.build_system_prompt,
            mailbox=PendingMailbox(max_pending=max_pending),
        )
        self._running = False

    @staticmethod
    def _conversation_target(channel: str, chat_id: str) -> str:
        return f"{channel}:{chat_id}"

    @staticmethod
    def _split_target(target: str) -> tuple[str, str]:
        channel, _, chat_id = target.partition(":")
        return channel, chat_id

    def build_system_prompt(self) -> str:
        return f"{self.base_system_prompt}\n\nYour workspace is in {self.workspace}."

    def build_tools(self, conversation_id: str, target: str) -> ToolRegistry:
        """Build a registry bound to one conversation's delivery target."""
        channel, chat_id = self._split_target(target)
        allowed_dir = self.workspace if self.restrict_to_workspace else None

        tools = ToolRegistry()
        tools.register(
            MessageTool(
                send_callback=self.bus.publish_outbound,
                default_channel=channel,
                default_chat_id=chat_id,
                default_thread_id=conversation_id,
            )
        )
        tools.register(ReadFileTool(allowed_dir=allowed_dir))
        tools.register(WriteFileTool(allowed_dir=allowed_dir))
        tools.register(
            ExecTool(
                timeout=self.exec_config.timeout,
                max_output_bytes=self.exec_config.max_output_bytes,
                working_dir=str(self.workspace),
                deny_patterns=self.exec_config.deny_patterns or None,
                restrict_to_workspace=self.restrict_to_workspace,
            )
        )
        return tools

    def is_allowed(self, sender_id: str) -> bool:
        """Check a sender against the allow-list. An empty list allows everyone."""
        if not self.allow_from:
            return True
        return str(sender_id) in self.allow_from

    @staticmethod
    def format_inbound(msg: InboundMessage) -> Message:
        """Render a chat event as the user message the model sees."""
        return Message.user_text(
            f"User {msg.sender_id} sent this message "
            f"(timestamp: {msg.timestamp.isoformat()}) in {msg.channel}:\n"
            f"```\n{msg.content}\n```\n\n"
            "You must respond using the `send_message` tool."
        )

    def handle_inbound(self, msg: InboundMessage) -> asyncio.Task[None] | None:
        """
        Queue an inbound message and make sure its conversation loop is running.

        Returns the loop task when this call started one.
        """
        conversation_id = msg.conversation_id
        preview = msg.content[:80] + "..." if len(msg.content) > 80 else msg.content
        logger.info(f"Processing message from {msg.channel}:{msg.sender_id} [{conversation_id}]: {preview}")

        self.scheduler.enqueue(conversation_id, self.format_inbound(msg))
        return self.scheduler.trigger(
            conversation_id, self._conversation_target(msg.channel, msg.chat_id)
        )

    async def run(self) -> None:
        """Run the agent loop, processing messages from the bus."""
        self._running = True
        logger.info("Agent loop started")

        while self._running:
            try:
                msg = await asyncio.wait_for(self.bus.consume_inbound(), timeout=1.0)
            except asyncio.TimeoutError:
                continue

            if not self.is_allowed(msg.sender_id):
                logger.warning(f"Access denied for sender {msg.sender_id} on channel {msg.channel}")
                continue

            try:
                self.handle_inbound(msg)
            except MailboxFull as e:
                logger.warning(str(e))
                await self.bus.publish_outbound(
                    OutboundMessage(
                        channel=msg.channel,
                        chat_id=msg.chat_id,
                        content="I'm still working through earlier messages. Please wait a moment.",
                        thread_id=msg.conversation_id,
                    )
                )

    def stop(self) -> None:
        """Stop the agent loop."""
        self._running = False
        logger.info("Agent loop stopping")
