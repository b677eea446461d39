import pytest

from picobot.agent.messages import Message, ToolResultBlock
from picobot.agent.round import GenerationRound
from picobot.providers.base import ProviderError
from tests.conftest import ScriptedProvider, text_response, tool_response


@pytest.mark.asyncio
async def test_plain_answer_appends_one_assistant_message(registry) -> None:
    provider = ScriptedProvider([text_response("Hello!")])
    history = [Message.user_text("hi")]

    result = await GenerationRound(provider).run("t1", "system", history, registry)

    assert [m.role for m in result] == ["user", "assistant"]
    assert result[-1].text == "Hello!"
    assert history == [Message.user_text("hi")]
    assert provider.tool_names == [["echo", "explode"]]


@pytest.mark.asyncio
async def test_unknown_tool_becomes_error_result(registry) -> None:
    provider = ScriptedProvider([tool_response(("c1", "frobnicate", {"level": 11}))])

    result = await GenerationRound(provider).run("t1", "", [Message.user_text("go")], registry)

    [block] = result[-1].content
    assert isinstance(block, ToolResultBlock)
    assert block.tool_call_id == "c1"
    assert block.error is True
    assert "frobnicate" in block.content


@pytest.mark.asyncio
async def test_tool_failure_does_not_stop_sibling_calls(registry, echo_tool) -> None:
    provider = ScriptedProvider(
        [
            tool_response(
                ("c1", "echo", {"text": "before"}),
                ("c2", "explode", {}),
                ("c3", "echo", {"text": "after"}),
            )
        ]
    )

    result = await GenerationRound(provider).run("t1", "", [Message.user_text("go")], registry)

    assert [m.role for m in result] == ["user", "assistant", "user"]
    results = result[2].tool_results
    assert [r.tool_call_id for r in results] == ["c1", "c2", "c3"]
    assert [r.error for r in results] == [False, True, False]
    assert "kaboom" in results[1].content
    assert echo_tool.seen == ["before", "after"]


@pytest.mark.asyncio
async def test_invalid_parameters_are_reported_to_the_model(registry) -> None:
    provider = ScriptedProvider([tool_response(("c1", "echo", {"text": 42}))])

    result = await GenerationRound(provider).run("t1", "", [Message.user_text("go")], registry)

    [block] = result[-1].tool_results
    assert block.error is True
    assert "text should be string" in block.content


@pytest.mark.asyncio
async def test_provider_failure_propagates(registry) -> None:
    provider = ScriptedProvider([ProviderError("HTTP 529: overloaded")])

    with pytest.raises(ProviderError):
        await GenerationRound(provider).run("t1", "", [Message.user_text("go")], registry)
