"""Generation round: one request/response cycle with the model."""

from __future__ import annotations

from loguru import logger

from picobot.agent.messages import (
    ROLE_ASSISTANT,
    ROLE_USER,
    Message,
    ToolCallBlock,
    ToolResultBlock,
    unanswered_tool_calls,
)
from picobot.agent.tools.registry import ToolRegistry
from picobot.providers.base import LLMProvider


class GenerationRound:
    """
    Sends the full history to the provider and dispatches the tool calls it returns.

    The round never persists anything. It returns the extended message
    sequence and leaves saving to the caller.
    """

    def __init__(
        self,
        provider: LLMProvider,
        model: str | None = None,
        max_tokens: int = 8096,
    ):
        self.provider = provider
        self.model = model or provider.get_default_model()
        self.max_tokens = max_tokens

    async def run(
        self,
        conversation_id: str,
        system: str,
        messages: list[Message],
        tools: ToolRegistry,
    ) -> list[Message]:
        """
        Run one round and return the extended sequence.

        Provider failures propagate. Tool failures and unknown tools are
        recorded as error results and never abort the round.
        """
        messages = list(messages)

        # A record saved with calls but no results gets them answered first,
        # directly after the assistant message, ahead of any newer user input.
        index = _last_assistant_index(messages)
        if index is not None:
            dangling = unanswered_tool_calls(messages[index:])
            if dangling:
                logger.info(
                    f"Resuming {len(dangling)} unanswered tool call(s) for thread {conversation_id}"
                )
                messages.insert(index + 1, await self._dispatch(dangling, tools))

        logger.info(f"Generating messages for thread {conversation_id}")
        response = await self.provider.chat(
            messages=messages,
            system=system,
            tools=tools.get_definitions(),
            model=self.model,
            max_tokens=self.max_tokens,
        )
        logger.info(
            f"Response generated for thread {conversation_id}: "
            f"{response.usage.output_tokens} tokens"
        )

        messages.append(Message(role=ROLE_ASSISTANT, content=list(response.content)))
        if response.tool_calls:
            messages.append(await self._dispatch(response.tool_calls, tools))
        return messages

    async def _dispatch(self, calls: list[ToolCallBlock], tools: ToolRegistry) -> Message:
        """Run each call in order and collect one result block per call."""
        results = []
        for call in calls:
            outcome = await tools.execute(call.name, call.input)
            results.append(
                ToolResultBlock(
                    tool_call_id=call.id,
                    content=outcome.content,
                    error=outcome.is_error,
                )
            )
        return Message(role=ROLE_USER, content=results)


def _last_assistant_index(messages: list[Message]) -> int | None:
    for index in range(len(messages) - 1, -1, -1):
        if messages[index].role == ROLE_ASSISTANT:
            return index
    return None
