import json

import httpx
import pytest

from picobot.agent.messages import Message, TextBlock, ToolCallBlock, ToolResultBlock
from picobot.providers.anthropic_provider import AnthropicProvider
from picobot.providers.base import ProviderError


def _sse(*events: dict) -> bytes:
    chunks = []
    for event in events:
        chunks.append(f"event: {event['type']}\ndata: {json.dumps(event)}\n\n")
    return "".join(chunks).encode("utf-8")


STREAM = _sse(
    {"type": "message_start", "message": {"usage": {"input_tokens": 42, "output_tokens": 1}}},
    {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
    {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "Let me "}},
    {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "check."}},
    {"type": "content_block_stop", "index": 0},
    {
        "type": "content_block_start",
        "index": 1,
        "content_block": {"type": "tool_use", "id": "toolu_1", "name": "execute_bash", "input": {}},
    },
    {"type": "content_block_delta", "index": 1, "delta": {"type": "input_json_delta", "partial_json": '{"comm'}},
    {"type": "content_block_delta", "index": 1, "delta": {"type": "input_json_delta", "partial_json": 'and": "ls"}'}},
    {"type": "content_block_stop", "index": 1},
    {"type": "message_delta", "delta": {"stop_reason": "tool_use"}, "usage": {"output_tokens": 17}},
    {"type": "message_stop"},
)


def _provider(handler) -> AnthropicProvider:
    return AnthropicProvider(
        api_key="sk-test",
        api_base="https://api.example.test",
        default_model="test-model",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_chat_builds_request_and_parses_stream() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, content=STREAM, headers={"content-type": "text/event-stream"})

    history = [
        Message.user_text("list files"),
        Message(role="assistant", content=[ToolCallBlock(id="toolu_0", name="read_file", input={"path": "x"})]),
        Message(
            role="user",
            content=[ToolResultBlock(tool_call_id="toolu_0", content="Error: File not found", error=True)],
        ),
    ]
    tools = [{"name": "execute_bash", "description": "Run", "input_schema": {"type": "object"}}]

    response = await _provider(handler).chat(history, system="Be brief.", tools=tools, max_tokens=100)

    assert seen["url"] == "https://api.example.test/v1/messages"
    assert seen["headers"]["x-api-key"] == "sk-test"
    body = seen["body"]
    assert body["model"] == "test-model"
    assert body["system"] == "Be brief."
    assert body["tools"] == tools
    assert body["stream"] is True
    assert body["messages"][1]["content"] == [
        {"type": "tool_use", "id": "toolu_0", "name": "read_file", "input": {"path": "x"}}
    ]
    assert body["messages"][2]["content"] == [
        {"type": "tool_result", "tool_use_id": "toolu_0", "content": "Error: File not found", "is_error": True}
    ]

    assert response.content == [
        TextBlock("Let me check."),
        ToolCallBlock(id="toolu_1", name="execute_bash", input={"command": "ls"}),
    ]
    assert response.stop_reason == "tool_use"
    assert (response.usage.input_tokens, response.usage.output_tokens) == (42, 17)


@pytest.mark.asyncio
async def test_http_error_raises_provider_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"error": {"message": "slow down"}})

    with pytest.raises(ProviderError, match="rate limit"):
        await _provider(handler).chat([Message.user_text("hi")])


@pytest.mark.asyncio
async def test_stream_error_event_raises_provider_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        body = _sse({"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}})
        return httpx.Response(200, content=body)

    with pytest.raises(ProviderError, match="Overloaded"):
        await _provider(handler).chat([Message.user_text("hi")])


@pytest.mark.asyncio
async def test_missing_api_key_fails_fast() -> None:
    provider = AnthropicProvider(api_key=None)
    with pytest.raises(ProviderError):
        await provider.chat([Message.user_text("hi")])
