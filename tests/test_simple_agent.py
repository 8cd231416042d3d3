"""Tests for the model-driven agent and its tool loop."""
from __future__ import annotations

from typing import Sequence

import pytest
from pydantic import BaseModel

from orchestra.agents.simple import SimpleAgent
from orchestra.core.errors import ErrorCode, LifecycleError
from orchestra.core.models import AgentConfig, AgentKind, Role, TaskStatus, ToolCall
from orchestra.services.llm import ModelResponse
from orchestra.services.llm_pool import LLMPool
from orchestra.tools.registry import ToolDefinition, ToolRegistry
from orchestra.tracing.manager import TraceManager
from orchestra.tracing.models import EventType

from conftest import MODEL, ScriptedModelClient


class EchoArgs(BaseModel):
    text: str


async def _echo(args: EchoArgs) -> str:
    return f"echo: {args.text}"


def make_agent(
    responses: Sequence,
    *,
    max_turns: int = 10,
    traces: TraceManager | None = None,
) -> tuple[SimpleAgent, ScriptedModelClient]:
    client = ScriptedModelClient(responses)
    pool = LLMPool()
    pool.register_client(MODEL, client)
    catalog = ToolRegistry("catalog")
    catalog.register_tool(ToolDefinition(name="echo", description="Echo text", parameters=EchoArgs, handler=_echo))
    config = AgentConfig(
        kind=AgentKind.SIMPLE,
        name="assistant",
        model=MODEL,
        instructions="Be brief.",
        tools=("echo",),
        max_turns=max_turns,
    )
    agent = SimpleAgent(config, llm_pool=pool, tool_catalog=catalog, trace_manager=traces)
    return agent, client


@pytest.mark.anyio
async def test_plain_answer_without_tools() -> None:
    agent, client = make_agent([ModelResponse(content="Paris")])

    recorder = await agent.run("Capital of France?")

    assert recorder.output == "Paris"
    assert [message.role for message in recorder.messages] == [Role.SYSTEM, Role.USER, Role.ASSISTANT]
    assert client.received[0][0].content == "Be brief."


@pytest.mark.anyio
async def test_tool_calls_are_executed_and_fed_back() -> None:
    agent, client = make_agent(
        [
            ModelResponse(
                content="",
                tool_calls=[
                    ToolCall(id="call_1", name="echo", arguments={"text": "hi"}),
                    ToolCall(id="call_2", name="echo", arguments={}),
                ],
            ),
            ModelResponse(content="All done"),
        ]
    )

    recorder = await agent.run("Use the tool")

    assert recorder.output == "All done"
    assert [call.result for call in recorder.tool_calls][0] == "echo: hi"
    assert recorder.tool_calls[1].result.startswith("Error:")
    tool_messages = [message for message in recorder.messages if message.role is Role.TOOL]
    assert [message.tool_call_id for message in tool_messages] == ["call_1", "call_2"]
    # The second model call sees the tool observations.
    assert client.received[1][-1].tool_call_id == "call_2"


@pytest.mark.anyio
async def test_tool_calls_are_mirrored_into_an_active_trace() -> None:
    traces = TraceManager()
    trace_id = traces.start_trace("run")
    agent, _ = make_agent(
        [
            ModelResponse(content="", tool_calls=[ToolCall(id="c", name="echo", arguments={"text": "x"})]),
            ModelResponse(content="ok"),
        ],
        traces=traces,
    )

    await agent.run("go", trace_id=trace_id)

    events = traces.get_trace_events(trace_id)
    assert [event.event_type for event in events] == [EventType.TOOL_CALL.value]
    assert events[0].data["agent_name"] == "assistant"
    assert events[0].data["result"] == "echo: x"


@pytest.mark.anyio
async def test_endless_tool_requests_hit_the_turn_limit() -> None:
    agent, _ = make_agent(
        [ModelResponse(content="", tool_calls=[ToolCall(id="c", name="echo", arguments={"text": "x"})])],
        max_turns=2,
    )

    with pytest.raises(LifecycleError) as exc_info:
        await agent.run("loop forever")

    assert exc_info.value.code == ErrorCode.MAX_TURNS_EXCEEDED
    assert agent.last_recorder.status is TaskStatus.FAILED
    assert len(agent.last_recorder.tool_calls) == 2


@pytest.mark.anyio
async def test_model_failures_are_wrapped() -> None:
    cause = ConnectionError("network down")
    agent, _ = make_agent([cause])

    with pytest.raises(LifecycleError) as exc_info:
        await agent.run("hello")

    assert exc_info.value.code == ErrorCode.LLM_CALL_FAILED
    assert exc_info.value.cause is cause


@pytest.mark.anyio
async def test_stream_collects_chunks_into_output() -> None:
    agent, _ = make_agent([ModelResponse(content="one two three")])

    chunks = [message.content async for message in agent.run_stream("count")]

    assert chunks == ["one", "two", "three"]
    assert agent.last_recorder.output == "onetwothree"
    assert agent.last_recorder.status is TaskStatus.COMPLETED


@pytest.mark.anyio
async def test_echo_provider_answers_offline() -> None:
    config = AgentConfig(kind=AgentKind.SIMPLE, name="offline", model=MODEL)
    agent = SimpleAgent(config)

    recorder = await agent.run("ping")

    assert recorder.output == "Mock response from test-model: I received 'ping'"
