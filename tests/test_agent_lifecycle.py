"""Tests for the shared agent lifecycle: initialize, run, stream, cleanup."""
from __future__ import annotations

import asyncio
from typing import AsyncIterator, List, Optional

import pytest
from pydantic import BaseModel

from orchestra.agents.base import Agent
from orchestra.core.errors import ErrorCode, LifecycleError
from orchestra.core.events import Event
from orchestra.core.models import (
    AgentConfig,
    AgentKind,
    AgentState,
    Message,
    ModelConfig,
    Role,
    TaskRecorder,
    TaskStatus,
)
from orchestra.tools.registry import ToolDefinition, ToolRegistry

MODEL = ModelConfig(provider="echo", model="test-model")


class RecordingAgent(Agent):
    """Agent recording hook calls; behaviour is set per test."""

    def __init__(self, config: AgentConfig, **kwargs) -> None:
        super().__init__(config, **kwargs)
        self.initialize_calls = 0
        self.cleanup_calls = 0
        self.init_error: Optional[Exception] = None
        self.run_error: Optional[Exception] = None
        self.blocker: Optional[asyncio.Event] = None
        self.chunks: List[str] = ["one", "two", "three"]
        self.log: List[str] = []

    async def on_initialize(self) -> None:
        self.initialize_calls += 1
        if self.init_error is not None:
            raise self.init_error

    async def on_cleanup(self) -> None:
        self.cleanup_calls += 1

    async def execute(self, input: str, recorder: TaskRecorder) -> str:
        if self.blocker is not None:
            await self.blocker.wait()
        if self.run_error is not None:
            raise self.run_error
        return input.upper()

    async def execute_stream(self, input: str, recorder: TaskRecorder) -> AsyncIterator[Message]:
        for chunk in self.chunks:
            self.log.append(f"produced {chunk}")
            yield Message(role=Role.ASSISTANT, content=chunk)
        if self.run_error is not None:
            raise self.run_error


def make_agent(tools=(), catalog: Optional[ToolRegistry] = None) -> RecordingAgent:
    config = AgentConfig(kind=AgentKind.SIMPLE, name="recording", model=MODEL, tools=tuple(tools))
    return RecordingAgent(config, tool_catalog=catalog)


@pytest.mark.anyio
async def test_initialize_is_idempotent() -> None:
    agent = make_agent()
    await agent.initialize()
    await agent.initialize()

    assert agent.state is AgentState.READY
    assert agent.is_ready
    assert agent.initialize_calls == 1


@pytest.mark.anyio
async def test_initialize_failure_raises_lifecycle_error() -> None:
    agent = make_agent()
    cause = RuntimeError("no credentials")
    agent.init_error = cause

    with pytest.raises(LifecycleError) as exc_info:
        await agent.initialize()

    assert exc_info.value.code == ErrorCode.AGENT_INIT_FAILED
    assert exc_info.value.cause is cause
    assert agent.state is AgentState.UNINITIALIZED
    assert not agent.is_ready

    # A later attempt is allowed once the cause is fixed.
    agent.init_error = None
    await agent.initialize()
    assert agent.is_ready


@pytest.mark.anyio
async def test_initialize_loads_only_allow_listed_catalog_tools() -> None:
    class Args(BaseModel):
        text: str

    async def handler(args: Args) -> str:
        return args.text

    catalog = ToolRegistry("catalog")
    for name in ("search", "calculator", "shell"):
        catalog.register_tool(ToolDefinition(name=name, description=name, parameters=Args, handler=handler))

    agent = make_agent(tools=("search", "calculator", "unknown"), catalog=catalog)
    await agent.initialize()

    assert agent.tools.tool_names() == ["search", "calculator"]
    assert len(catalog) == 3


@pytest.mark.anyio
async def test_run_initializes_lazily_and_completes_recorder() -> None:
    agent = make_agent()
    seen: List[Event] = []
    agent.events.subscribe(seen.append)

    recorder = await agent.run("hello", trace_id="trace_custom")

    assert recorder.id == "trace_custom"
    assert recorder.status is TaskStatus.COMPLETED
    assert recorder.output == "HELLO"
    assert recorder.end_time is not None and recorder.end_time >= recorder.start_time
    assert agent.state is AgentState.READY
    assert agent.history == [recorder]
    assert [event.name for event in seen] == ["initialized", "task_start", "task_completed"]


@pytest.mark.anyio
async def test_run_generates_trace_ids() -> None:
    agent = make_agent()
    first = await agent.run("a")
    second = await agent.run("b")

    assert first.id.startswith("trace_")
    assert first.id != second.id


@pytest.mark.anyio
async def test_run_failure_marks_recorder_and_reraises() -> None:
    agent = make_agent()
    error = ValueError("bad input")
    agent.run_error = error

    with pytest.raises(ValueError) as exc_info:
        await agent.run("hello")

    assert exc_info.value is error
    recorder = agent.last_recorder
    assert recorder is not None
    assert recorder.status is TaskStatus.FAILED
    assert recorder.error == "bad input"
    assert recorder.output is None
    # The agent stays usable after a failed run.
    assert agent.state is AgentState.READY


@pytest.mark.anyio
async def test_cancelled_run_fails_the_recorder() -> None:
    agent = make_agent()
    agent.blocker = asyncio.Event()
    seen: List[str] = []
    agent.events.subscribe(lambda event: seen.append(event.name))

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(agent.run("hello"), 0.05)

    recorder = agent.last_recorder
    assert recorder.status is TaskStatus.FAILED
    assert recorder.error == "cancelled"
    assert recorder.end_time is not None
    assert seen[-1] == "task_failed"
    assert agent.state is AgentState.READY


@pytest.mark.anyio
async def test_closing_a_stream_early_fails_the_recorder() -> None:
    agent = make_agent()
    stream = agent.run_stream("hello")

    first = await stream.__anext__()
    await stream.aclose()

    assert first.content == "one"
    recorder = agent.last_recorder
    assert recorder.status is TaskStatus.FAILED
    assert [message.content for message in recorder.messages] == ["one"]
    assert agent.state is AgentState.READY


@pytest.mark.anyio
async def test_run_stream_yields_each_message_after_recording_it() -> None:
    agent = make_agent()
    received: List[str] = []

    async for message in agent.run_stream("hello"):
        agent.log.append(f"consumed {message.content}")
        assert agent.last_recorder.messages[-1] is message
        received.append(message.content)

    assert received == ["one", "two", "three"]
    # The producer does not run ahead of the consumer.
    assert agent.log == [
        "produced one",
        "consumed one",
        "produced two",
        "consumed two",
        "produced three",
        "consumed three",
    ]
    recorder = agent.last_recorder
    assert recorder.status is TaskStatus.COMPLETED
    assert recorder.output == "three"


@pytest.mark.anyio
async def test_run_stream_failure_keeps_delivered_messages() -> None:
    agent = make_agent()
    agent.run_error = RuntimeError("stream broke")
    received: List[str] = []

    with pytest.raises(RuntimeError):
        async for message in agent.run_stream("hello"):
            received.append(message.content)

    assert received == ["one", "two", "three"]
    recorder = agent.last_recorder
    assert recorder.status is TaskStatus.FAILED
    assert [message.content for message in recorder.messages] == received


@pytest.mark.anyio
async def test_stream_events_are_emitted() -> None:
    agent = make_agent()
    await agent.initialize()

    async with agent.events.deliver() as inbox:
        async for _ in agent.run_stream("hello"):
            pass
        names = [inbox.get_nowait().name for _ in range(inbox.qsize())]

    assert names == ["stream_start", "stream_message", "stream_message", "stream_message", "stream_completed"]


@pytest.mark.anyio
async def test_cleanup_is_repeatable_and_releases_tools() -> None:
    class Args(BaseModel):
        text: str

    catalog = ToolRegistry("catalog")
    catalog.register_tool(ToolDefinition(name="search", description="", parameters=Args, handler=lambda a: a.text))
    agent = make_agent(tools=("search",), catalog=catalog)
    await agent.initialize()

    await agent.cleanup()
    await agent.cleanup()

    assert agent.state is AgentState.RELEASED
    assert not agent.is_ready
    assert agent.cleanup_calls == 1
    assert len(agent.tools) == 0


@pytest.mark.anyio
async def test_released_agent_reinitializes_on_next_run() -> None:
    agent = make_agent()
    await agent.initialize()
    await agent.cleanup()

    recorder = await agent.run("again")

    assert recorder.output == "AGAIN"
    assert agent.initialize_calls == 2


def test_recorder_status_only_moves_forward() -> None:
    recorder = TaskRecorder(id="trace_x", input="x")
    recorder.mark_running()
    recorder.mark_completed("done")

    with pytest.raises(LifecycleError) as exc_info:
        recorder.mark_running()
    assert exc_info.value.code == ErrorCode.INVALID_TRANSITION

    with pytest.raises(LifecycleError):
        recorder.mark_failed("late")
    assert recorder.status is TaskStatus.COMPLETED
    assert recorder.error is None
