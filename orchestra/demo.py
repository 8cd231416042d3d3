"""CLI demonstration of an orchestration run on the offline echo model."""
from __future__ import annotations

import asyncio
import sys
from typing import NoReturn

from orchestra.agents.factory import AgentFactory
from orchestra.config import configure_logging
from orchestra.core.models import AgentConfig, AgentKind, ModelConfig, WorkerInfo
from orchestra.tracing.manager import TraceManager


async def main(task: str) -> None:
    model = ModelConfig(provider="echo", model="demo-echo")
    traces = TraceManager()
    factory = AgentFactory(trace_manager=traces)

    agent = await factory.spawn_agent(
        AgentConfig(
            kind=AgentKind.ORCHESTRA,
            name="demo-orchestra",
            model=model,
            planner_model=model,
            workers={"default": AgentConfig(kind=AgentKind.SIMPLE, name="demo-worker", model=model)},
            workers_info=(WorkerInfo(name="default", description="Echoes its subtask"),),
        )
    )
    print(f"Spawned agent {agent.name} in state {agent.state.name}")

    async for message in agent.run_stream(task):
        print(f"[{message.role.value}] {message.content}")

    for session in traces.query_traces():
        print(f"Trace {session.id} {session.status.value} with {len(session.events)} events")

    await factory.cleanup_all()
    print("Agents released")


def run() -> NoReturn:
    configure_logging("WARNING")
    task = " ".join(sys.argv[1:]) or "Summarise the benefits of unit testing"
    asyncio.run(main(task))
    sys.exit(0)


if __name__ == "__main__":
    run()
