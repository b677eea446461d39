"""Shared fixtures: a scripted provider and small test tools."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Union

import pytest

from picobot.agent.messages import Message, TextBlock, ToolCallBlock
from picobot.agent.tools.base import Tool
from picobot.agent.tools.registry import ToolRegistry
from picobot.providers.base import LLMProvider, LLMResponse, Usage
from picobot.threads.store import ThreadStore

Step = Union[LLMResponse, Exception, Callable[[list[Message]], Awaitable[LLMResponse]]]


def text_response(text: str) -> LLMResponse:
    return LLMResponse(content=[TextBlock(text)], usage=Usage(input_tokens=10, output_tokens=5))


def tool_response(*calls: tuple[str, str, dict[str, Any]], text: str | None = None) -> LLMResponse:
    content: list[Any] = [TextBlock(text)] if text else []
    content.extend(ToolCallBlock(id=cid, name=name, input=args) for cid, name, args in calls)
    return LLMResponse(content=content, stop_reason="tool_use")


class ScriptedProvider(LLMProvider):
    """Replays a fixed list of responses and records every request."""

    def __init__(self, steps: list[Step] | None = None):
        super().__init__()
        self.steps = list(steps or [])
        self.calls: list[list[Message]] = []
        self.systems: list[str] = []
        self.tool_names: list[list[str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def chat(
        self,
        messages: list[Message],
        system: str = "",
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
        max_tokens: int = 8096,
    ) -> LLMResponse:
        self.calls.append(list(messages))
        self.systems.append(system)
        self.tool_names.append([t["name"] for t in tools or []])
        if not self.steps:
            raise AssertionError("Unexpected provider call")
        step = self.steps.pop(0)

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if isinstance(step, Exception):
                raise step
            if callable(step):
                return await step(messages)
            return step
        finally:
            self.in_flight -= 1

    def get_default_model(self) -> str:
        return "scripted-model"


def gated(gate: asyncio.Event, response: LLMResponse, started: asyncio.Event | None = None):
    """A step that blocks until `gate` is set."""

    async def step(messages: list[Message]) -> LLMResponse:
        if started is not None:
            started.set()
        await gate.wait()
        return response

    return step


class EchoTool(Tool):
    def __init__(self):
        self.seen: list[str] = []

    @property
    def name(self) -> str:
        return "echo"

    @property
    def description(self) -> str:
        return "Echo the given text."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {"text": {"type": "string"}},
            "required": ["text"],
        }

    async def execute(self, text: str, **kwargs: Any) -> str:
        self.seen.append(text)
        return f"echo: {text}"


class ExplodingTool(Tool):
    @property
    def name(self) -> str:
        return "explode"

    @property
    def description(self) -> str:
        return "Always fails."

    @property
    def parameters(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}}

    async def execute(self, **kwargs: Any) -> str:
        raise RuntimeError("kaboom")


@pytest.fixture
def store(tmp_path) -> ThreadStore:
    return ThreadStore(tmp_path / "threads")


@pytest.fixture
def echo_tool() -> EchoTool:
    return EchoTool()


@pytest.fixture
def registry(echo_tool) -> ToolRegistry:
    tools = ToolRegistry()
    tools.register(echo_tool)
    tools.register(ExplodingTool())
    return tools
