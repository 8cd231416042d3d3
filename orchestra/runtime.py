"""Application runtime composition helpers."""
from __future__ import annotations

from functools import lru_cache
from typing import List

from orchestra.agents.base import Agent
from orchestra.agents.factory import AgentFactory
from orchestra.config import config
from orchestra.core.models import AgentConfig, AgentKind, WorkerInfo
from orchestra.services.llm_pool import LLMPool
from orchestra.tools.registry import ToolRegistry
from orchestra.tracing.manager import TraceManager
from orchestra.tracing.sinks import JsonFileTraceSink

ASSISTANT_AGENT = "assistant"
ORCHESTRA_AGENT = "orchestra"


@lru_cache
def get_trace_manager() -> TraceManager:
    sink = JsonFileTraceSink(config.trace_dir) if config.trace_dir else None
    return TraceManager(sink=sink)


@lru_cache
def get_llm_pool() -> LLMPool:
    return LLMPool()


@lru_cache
def get_tool_catalog() -> ToolRegistry:
    # Concrete tools are registered by the embedding application.
    return ToolRegistry("catalog")


@lru_cache
def get_agent_factory() -> AgentFactory:
    return AgentFactory(
        llm_pool=get_llm_pool(),
        tool_catalog=get_tool_catalog(),
        trace_manager=get_trace_manager(),
    )


def default_agent_configs() -> List[AgentConfig]:
    worker = AgentConfig(
        kind=AgentKind.SIMPLE,
        name="default",
        model=config.model,
        instructions="You are a helpful AI assistant completing one subtask of a larger task.",
    )
    return [
        AgentConfig(
            kind=AgentKind.SIMPLE,
            name=ASSISTANT_AGENT,
            model=config.model,
            instructions="You are a helpful AI assistant.",
        ),
        AgentConfig(
            kind=AgentKind.ORCHESTRA,
            name=ORCHESTRA_AGENT,
            model=config.model,
            planner_model=config.model,
            reporter_model=config.model,
            workers={"default": worker},
            workers_info=(
                WorkerInfo(
                    name="default",
                    description="General purpose assistant",
                    strengths=("analysis", "writing"),
                ),
            ),
        ),
    ]


async def initialize_default_agents() -> List[Agent]:
    """Spawn the agents every deployment exposes."""
    factory = get_agent_factory()
    return [await factory.spawn_agent(agent_config) for agent_config in default_agent_configs()]
