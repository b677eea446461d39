"""Anthropic Messages API provider."""

from __future__ import annotations

import json
from typing import Any, AsyncGenerator

import httpx
import json_repair

from picobot.agent.messages import (
    ContentBlock,
    Message,
    TextBlock,
    ToolCallBlock,
    ToolResultBlock,
)
from picobot.providers.base import LLMProvider, LLMResponse, ProviderError, Usage

DEFAULT_API_BASE = "https://api.anthropic.com"
DEFAULT_MODEL = "claude-opus-4-6"
ANTHROPIC_VERSION = "2023-06-01"


class AnthropicProvider(LLMProvider):
    """Call the Messages API with streaming and rebuild the content blocks."""

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        default_model: str = DEFAULT_MODEL,
        request_timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(api_key=api_key, api_base=api_base or DEFAULT_API_BASE)
        self.default_model = default_model
        self.request_timeout = request_timeout
        self._transport = transport

    async def chat(
        self,
        messages: list[Message],
        system: str = "",
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
        max_tokens: int = 8096,
    ) -> LLMResponse:
        if not self.api_key:
            raise ProviderError("No Anthropic API key configured")

        model = model or self.default_model
        body: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": [_convert_message(m) for m in messages],
            "stream": True,
        }
        if system:
            body["system"] = system
        if tools:
            body["tools"] = tools

        url = f"{self.api_base.rstrip('/')}/v1/messages"
        async with httpx.AsyncClient(timeout=self.request_timeout, transport=self._transport) as client:
            async with client.stream("POST", url, headers=self._build_headers(), json=body) as response:
                if response.status_code != 200:
                    text = await response.aread()
                    raise ProviderError(
                        _friendly_error(response.status_code, text.decode("utf-8", "ignore"))
                    )
                result = await _consume_sse(response)

        self._log_response_debug(result, model=model)
        return result

    def get_default_model(self) -> str:
        return self.default_model

    def _build_headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.api_key or "",
            "anthropic-version": ANTHROPIC_VERSION,
            "accept": "text/event-stream",
            "content-type": "application/json",
            "user-agent": "picobot (python)",
        }


def _convert_block(block: ContentBlock) -> dict[str, Any]:
    if isinstance(block, TextBlock):
        return {"type": "text", "text": block.text}
    if isinstance(block, ToolCallBlock):
        return {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
    if isinstance(block, ToolResultBlock):
        converted: dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": block.tool_call_id,
            "content": block.content,
        }
        if block.error:
            converted["is_error"] = True
        return converted
    raise TypeError(f"Unsupported content block: {block!r}")


def _convert_message(message: Message) -> dict[str, Any]:
    return {"role": message.role, "content": [_convert_block(b) for b in message.content]}


async def _iter_sse(response: httpx.Response) -> AsyncGenerator[dict[str, Any], None]:
    buffer: list[str] = []
    async for line in response.aiter_lines():
        if line == "":
            if buffer:
                parsed = _parse_sse_buffer(buffer)
                buffer = []
                if parsed is not None:
                    yield parsed
            continue
        buffer.append(line)
    # Some servers terminate the stream without a trailing blank line.
    if buffer:
        parsed = _parse_sse_buffer(buffer)
        if parsed is not None:
            yield parsed


async def _consume_sse(response: httpx.Response) -> LLMResponse:
    blocks: dict[int, dict[str, Any]] = {}
    usage = Usage()
    stop_reason = "end_turn"

    async for event in _iter_sse(response):
        event_type = event.get("type")
        if event_type == "message_start":
            raw_usage = (event.get("message") or {}).get("usage") or {}
            usage.input_tokens = int(raw_usage.get("input_tokens") or 0)
            usage.output_tokens = int(raw_usage.get("output_tokens") or 0)
        elif event_type == "content_block_start":
            block = dict(event.get("content_block") or {})
            if block.get("type") == "tool_use":
                block["partial_json"] = ""
            blocks[int(event.get("index", len(blocks)))] = block
        elif event_type == "content_block_delta":
            block = blocks.get(int(event.get("index", -1)))
            delta = event.get("delta") or {}
            if block is None:
                continue
            if delta.get("type") == "text_delta":
                block["text"] = block.get("text", "") + (delta.get("text") or "")
            elif delta.get("type") == "input_json_delta":
                block["partial_json"] += delta.get("partial_json") or ""
        elif event_type == "message_delta":
            delta = event.get("delta") or {}
            stop_reason = delta.get("stop_reason") or stop_reason
            raw_usage = event.get("usage") or {}
            if raw_usage.get("output_tokens") is not None:
                usage.output_tokens = int(raw_usage["output_tokens"])
        elif event_type == "error":
            error = event.get("error") or {}
            raise ProviderError(f"Anthropic stream error: {error.get('message') or error}")

    content: list[ContentBlock] = []
    for index in sorted(blocks):
        block = blocks[index]
        if block.get("type") == "text" and block.get("text"):
            content.append(TextBlock(text=block.get("text", "")))
        elif block.get("type") == "tool_use":
            content.append(
                ToolCallBlock(
                    id=str(block.get("id")),
                    name=str(block.get("name")),
                    input=_parse_tool_input(block),
                )
            )
    return LLMResponse(content=content, stop_reason=stop_reason, usage=usage)


def _parse_tool_input(block: dict[str, Any]) -> dict[str, Any]:
    raw = block.get("partial_json") or ""
    if not raw:
        initial = block.get("input")
        return initial if isinstance(initial, dict) else {}
    parsed = json_repair.loads(raw)
    return parsed if isinstance(parsed, dict) else {"raw": raw}


def _parse_sse_buffer(buffer: list[str]) -> dict[str, Any] | None:
    data_lines = [line[5:].strip() for line in buffer if line.startswith("data:")]
    if not data_lines:
        return None
    data = "\n".join(data_lines).strip()
    if not data or data == "[DONE]":
        return None
    try:
        parsed = json.loads(data)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def _friendly_error(status_code: int, raw: str) -> str:
    if status_code == 429:
        return "Anthropic rate limit or usage quota exceeded. Please try again later."
    if status_code == 401:
        return "Anthropic rejected the API key (HTTP 401)."
    return f"HTTP {status_code}: {raw}"
