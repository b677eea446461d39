"""LLM provider abstraction module."""

from picobot.providers.base import LLMProvider, LLMResponse, ProviderError, Usage

__all__ = ["LLMProvider", "LLMResponse", "ProviderError", "Usage"]
