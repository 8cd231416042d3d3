"""Shared fixtures: scripted agents and model clients that never touch the network."""
from __future__ import annotations

import inspect
import json
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

import pytest

from orchestra.agents.base import Agent
from orchestra.agents.factory import AgentFactory
from orchestra.agents.orchestra import OrchestraAgent
from orchestra.agents.workforce import WorkforceAgent
from orchestra.core.models import (
    AgentConfig,
    AgentKind,
    Message,
    ModelConfig,
    Role,
    TaskRecorder,
    WorkerInfo,
)
from orchestra.services.llm import ModelClient, ModelResponse
from orchestra.tracing.manager import TraceManager

MODEL = ModelConfig(provider="echo", model="test-model")


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class ScriptedAgent(Agent):
    """Agent whose replies come from a per-name script.

    A script entry may be a string (returned as is), an exception instance
    (raised) or a callable receiving the input, sync or async. Missing
    entries echo.
    """

    script: Dict[str, Any] = {}
    calls: List[Tuple[str, str]] = []
    built: List[str] = []

    def __init__(self, config: AgentConfig, **kwargs: Any) -> None:
        super().__init__(config, **kwargs)
        self.built.append(config.name)

    async def execute(self, input: str, recorder: TaskRecorder) -> str:
        self.calls.append((self.name, input))
        behaviour = self.script.get(self.name)
        if isinstance(behaviour, BaseException):
            raise behaviour
        if callable(behaviour):
            result = behaviour(input)
            if inspect.isawaitable(result):
                result = await result
            return result
        if behaviour is None:
            return f"{self.name} handled: {input}"
        return behaviour

    async def execute_stream(self, input: str, recorder: TaskRecorder) -> AsyncIterator[Message]:
        yield Message(role=Role.ASSISTANT, content=await self.execute(input, recorder))


@pytest.fixture
def script() -> Dict[str, Any]:
    return {}


@pytest.fixture
def agent_calls() -> List[Tuple[str, str]]:
    return []


@pytest.fixture
def built_agents() -> List[str]:
    return []


@pytest.fixture
def traces() -> TraceManager:
    return TraceManager()


@pytest.fixture
def factory(script, agent_calls, built_agents, traces) -> AgentFactory:
    bound = type(
        "BoundScriptedAgent",
        (ScriptedAgent,),
        {"script": script, "calls": agent_calls, "built": built_agents},
    )
    return AgentFactory(
        trace_manager=traces,
        catalog={
            AgentKind.SIMPLE: bound,
            AgentKind.ORCHESTRA: OrchestraAgent,
            AgentKind.WORKFORCE: WorkforceAgent,
        },
    )


def worker_config(name: str) -> AgentConfig:
    return AgentConfig(kind=AgentKind.SIMPLE, name=name, model=MODEL)


def orchestra_config(
    workers: Sequence[str] = ("researcher", "writer"),
    *,
    name: str = "orch",
    planner: bool = True,
    reporter: bool = False,
) -> AgentConfig:
    return AgentConfig(
        kind=AgentKind.ORCHESTRA,
        name=name,
        model=MODEL,
        planner_model=MODEL if planner else None,
        reporter_model=MODEL if reporter else None,
        workers={worker: worker_config(f"{worker}_agent") for worker in workers},
        workers_info=tuple(
            WorkerInfo(name=worker, description=f"{worker} worker", strengths=(worker,))
            for worker in workers
        ),
    )


def plan_reply(*subtasks: Dict[str, Any], order: Optional[List[str]] = None) -> str:
    payload: Dict[str, Any] = {"subtasks": list(subtasks)}
    if order is not None:
        payload["executionOrder"] = order
    return f"Here is the plan:\n```json\n{json.dumps(payload)}\n```\nGood luck."


class ScriptedModelClient(ModelClient):
    """Model client replaying a fixed list of responses."""

    def __init__(self, responses: Sequence[Any]) -> None:
        self._responses = list(responses)
        self.received: List[List[Message]] = []

    async def invoke(self, messages, tools=None) -> ModelResponse:
        self.received.append(list(messages))
        response = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(response, BaseException):
            raise response
        return response

    async def stream(self, messages) -> AsyncIterator[str]:
        response = await self.invoke(messages)
        for word in response.content.split(" "):
            yield word


def workforce_config(
    executors: Sequence[str] = ("researcher", "writer"),
    *,
    name: str = "team",
    max_tries: int = 1,
    summary: bool = False,
    max_turns: int = 10,
) -> AgentConfig:
    return AgentConfig(
        kind=AgentKind.WORKFORCE,
        name=name,
        model=MODEL,
        max_turns=max_turns,
        executor_max_tries=max_tries,
        executor_return_summary=summary,
        workers={executor: worker_config(f"{executor}_agent") for executor in executors},
        workers_info=tuple(
            WorkerInfo(name=executor, description=f"{executor} executor") for executor in executors
        ),
    )
