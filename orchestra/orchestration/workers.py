"""Worker descriptors registered with the orchestration engine."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, Tuple

from orchestra.core.models import AgentConfig, WorkerInfo

if TYPE_CHECKING:
    from orchestra.agents.base import Agent


@dataclass(slots=True)
class WorkerAgent:
    """Capability wrapper around an agent that is built on first dispatch."""

    name: str
    description: str
    config: AgentConfig
    strengths: Tuple[str, ...] = ()
    weaknesses: Tuple[str, ...] = ()
    instance: Optional["Agent"] = field(default=None, repr=False)

    @classmethod
    def from_info(cls, info: WorkerInfo, config: AgentConfig) -> "WorkerAgent":
        return cls(
            name=info.name,
            description=info.description,
            config=config,
            strengths=tuple(info.strengths),
            weaknesses=tuple(info.weaknesses),
        )

    async def get_or_build(self, build: Callable[[AgentConfig], Awaitable["Agent"]]) -> "Agent":
        """Return the cached agent, building it with ``build`` the first time."""
        if self.instance is None:
            self.instance = await build(self.config)
        return self.instance
