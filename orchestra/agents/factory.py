"""Factory responsible for building, tracking and releasing agents by kind."""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Dict, Iterable, Mapping, Optional, Type

from orchestra.agents.base import Agent
from orchestra.agents.orchestra import OrchestraAgent
from orchestra.agents.simple import SimpleAgent
from orchestra.agents.workforce import WorkforceAgent
from orchestra.core.errors import ErrorCode, LifecycleError
from orchestra.core.models import AgentConfig, AgentKind
from orchestra.services.llm_pool import LLMPool
from orchestra.tools.registry import ToolRegistry
from orchestra.tracing.manager import TraceManager

LOGGER = logging.getLogger(__name__)

DEFAULT_CATALOG: Mapping[AgentKind, Type[Agent]] = {
    AgentKind.SIMPLE: SimpleAgent,
    AgentKind.ORCHESTRA: OrchestraAgent,
    AgentKind.WORKFORCE: WorkforceAgent,
}


class AgentFactory:
    """Build agents from their configuration and supervise the ones it spawns."""

    def __init__(
        self,
        *,
        llm_pool: Optional[LLMPool] = None,
        tool_catalog: Optional[ToolRegistry] = None,
        trace_manager: Optional[TraceManager] = None,
        catalog: Optional[Mapping[AgentKind, Type[Agent]]] = None,
    ) -> None:
        self._llm_pool = llm_pool or LLMPool()
        self._tool_catalog = tool_catalog
        self._trace_manager = trace_manager
        self._catalog: Dict[AgentKind, Type[Agent]] = dict(catalog or DEFAULT_CATALOG)
        self._agents: Dict[str, Agent] = {}
        self._lock = asyncio.Lock()

    def build_agent(self, config: AgentConfig) -> Agent:
        """Instantiate the agent class registered for ``config.kind``."""
        agent_cls = self._resolve_agent_class(config.kind)

        # Only hand each class the collaborators its constructor accepts.
        available: Dict[str, Any] = {
            "llm_pool": self._llm_pool,
            "tool_catalog": self._tool_catalog,
            "trace_manager": self._trace_manager,
            "factory": self,
        }
        parameters = inspect.signature(agent_cls.__init__).parameters
        kwargs = {name: value for name, value in available.items() if name in parameters}
        return agent_cls(config, **kwargs)

    async def create_agent(self, config: AgentConfig) -> Agent:
        """Build and initialise an agent without tracking it."""
        LOGGER.info("Creating %s agent %s", config.kind.value, config.name)
        agent = self.build_agent(config)
        try:
            await agent.initialize()
        except LifecycleError as exc:
            LOGGER.error("Failed to create agent %s: %s", config.name, exc)
            raise LifecycleError(
                f"Failed to create agent {config.name}: {exc}",
                ErrorCode.AGENT_CREATION_FAILED,
                exc,
            ) from exc
        return agent

    async def spawn_agent(self, config: AgentConfig) -> Agent:
        """Create an agent and track it by name, reusing a live one if present."""
        async with self._lock:
            existing = self._agents.get(config.name)
            if existing is not None and existing.config.kind is config.kind:
                LOGGER.info("Reusing agent %s", config.name)
                return existing

        agent = await self.create_agent(config)
        async with self._lock:
            self._agents[config.name] = agent
        return agent

    def get_agent(self, name: str) -> Optional[Agent]:
        return self._agents.get(name)

    def list_agents(self) -> Iterable[Agent]:
        return list(self._agents.values())

    async def remove_agent(self, name: str) -> bool:
        """Release and forget an agent."""
        async with self._lock:
            agent = self._agents.pop(name, None)
        if agent is None:
            return False
        await agent.cleanup()
        LOGGER.info("Removed agent %s", name)
        return True

    async def cleanup_all(self) -> None:
        """Release every agent currently tracked by the factory."""
        async with self._lock:
            agents = list(self._agents.values())
            self._agents.clear()
        results = await asyncio.gather(*(agent.cleanup() for agent in agents), return_exceptions=True)
        for agent, result in zip(agents, results):
            if isinstance(result, Exception):
                LOGGER.error("Failed to release agent %s: %s", agent.name, result)

    def stats(self) -> Dict[str, Any]:
        by_kind: Dict[str, int] = {}
        for agent in self._agents.values():
            by_kind[agent.config.kind.value] = by_kind.get(agent.config.kind.value, 0) + 1
        ready = sum(1 for agent in self._agents.values() if agent.is_ready)
        return {
            "total": len(self._agents),
            "by_kind": by_kind,
            "ready": ready,
            "not_ready": len(self._agents) - ready,
        }

    def _resolve_agent_class(self, kind: AgentKind) -> Type[Agent]:
        if kind not in self._catalog:
            raise LifecycleError(f"No agent registered for kind '{kind}'", ErrorCode.UNKNOWN_AGENT_KIND)
        return self._catalog[kind]
