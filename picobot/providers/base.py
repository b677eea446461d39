"""Base LLM provider interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from picobot.agent.messages import ContentBlock, Message, TextBlock, ToolCallBlock


class ProviderError(RuntimeError):
    """The provider could not produce a response."""


@dataclass
class Usage:
    """Token accounting reported by the provider. Informational only."""

    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class LLMResponse:
    """Response from an LLM provider: ordered content blocks plus usage."""

    content: list[ContentBlock] = field(default_factory=list)
    stop_reason: str = "end_turn"
    usage: Usage = field(default_factory=Usage)

    @property
    def tool_calls(self) -> list[ToolCallBlock]:
        return [b for b in self.content if isinstance(b, ToolCallBlock)]

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    @property
    def text(self) -> str:
        return "".join(b.text for b in self.content if isinstance(b, TextBlock))


class LLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    Implementations should handle the specifics of each provider's API
    while maintaining a consistent interface.
    """

    def __init__(self, api_key: str | None = None, api_base: str | None = None):
        self.api_key = api_key
        self.api_base = api_base

    @abstractmethod
    async def chat(
        self,
        messages: list[Message],
        system: str = "",
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
        max_tokens: int = 8096,
    ) -> LLMResponse:
        """
        Send a chat completion request.

        Args:
            messages: Full conversation history.
            system: System instructions.
            tools: Tool declarations ({name, description, input_schema}).
            model: Model identifier (provider-specific).
            max_tokens: Maximum tokens in response.

        Returns:
            LLMResponse with content blocks and usage.

        Raises:
            ProviderError: When the request fails. Callers do not retry.
        """
        pass

    @abstractmethod
    def get_default_model(self) -> str:
        """Get the default model for this provider."""
        pass

    def _log_response_debug(self, response: LLMResponse, model: str) -> None:
        logger.debug(
            f"LLM response model={model} stop={response.stop_reason} "
            f"blocks={len(response.content)} tool_calls={len(response.tool_calls)} "
            f"usage={response.usage.input_tokens}/{response.usage.output_tokens}"
        )
