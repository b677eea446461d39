import pytest

from picobot.agent.tools.filesystem import ReadFileTool, WriteFileTool
from picobot.agent.tools.message import MessageTool
from picobot.agent.tools.registry import ToolRegistry
from picobot.bus.queue import MessageBus
from tests.conftest import EchoTool


def _registry(*tools) -> ToolRegistry:
    registry = ToolRegistry()
    for tool in tools:
        registry.register(tool)
    return registry


def test_definitions_use_provider_declaration_shape() -> None:
    registry = _registry(EchoTool())

    [definition] = registry.get_definitions()

    assert definition == {
        "name": "echo",
        "description": "Echo the given text.",
        "input_schema": {
            "type": "object",
            "properties": {"text": {"type": "string"}},
            "required": ["text"],
        },
    }


def test_duplicate_registration_is_rejected() -> None:
    registry = _registry(EchoTool())
    with pytest.raises(ValueError):
        registry.register(EchoTool())


@pytest.mark.asyncio
async def test_missing_required_parameter_is_an_error() -> None:
    outcome = await _registry(EchoTool()).execute("echo", {})

    assert outcome.is_error
    assert "missing required text" in outcome.content


@pytest.mark.asyncio
async def test_write_then_read_file(tmp_path) -> None:
    registry = _registry(ReadFileTool(), WriteFileTool())
    target = tmp_path / "nested" / "notes.txt"

    written = await registry.execute("write_file", {"path": str(target), "content": "hello\n"})
    read = await registry.execute("read_file", {"path": str(target)})

    assert not written.is_error
    assert read.content == "hello\n"
    assert not read.is_error


@pytest.mark.asyncio
async def test_read_missing_file_is_an_error(tmp_path) -> None:
    outcome = await _registry(ReadFileTool()).execute("read_file", {"path": str(tmp_path / "nope.txt")})

    assert outcome.is_error
    assert "File not found" in outcome.content


@pytest.mark.asyncio
async def test_allowed_dir_blocks_outside_paths(tmp_path) -> None:
    registry = _registry(WriteFileTool(allowed_dir=tmp_path / "workspace"))

    outcome = await registry.execute("write_file", {"path": str(tmp_path / "escape.txt"), "content": "x"})

    assert outcome.is_error
    assert "outside allowed directory" in outcome.content
    assert not (tmp_path / "escape.txt").exists()


@pytest.mark.asyncio
async def test_message_tool_publishes_to_bus() -> None:
    bus = MessageBus()
    tool = MessageTool(
        send_callback=bus.publish_outbound,
        default_channel="slack",
        default_chat_id="D123",
        default_thread_id="1700.0001",
    )

    result = await tool.execute(text="Hi there")

    assert result == "Message sent."
    msg = await bus.consume_outbound()
    assert (msg.channel, msg.chat_id, msg.thread_id, msg.content) == (
        "slack",
        "D123",
        "1700.0001",
        "Hi there",
    )


@pytest.mark.asyncio
async def test_message_tool_without_callback_fails() -> None:
    outcome = await _registry(MessageTool(default_channel="cli", default_chat_id="x")).execute(
        "send_message", {"text": "hi"}
    )

    assert outcome.is_error
    assert "not configured" in outcome.content
