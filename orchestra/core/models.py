"""Core data models shared across agent components."""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Any, Dict, List, Mapping, Optional, Tuple

from orchestra.core.errors import ErrorCode, LifecycleError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_trace_id() -> str:
    return f"trace_{uuid.uuid4().hex[:16]}"


class AgentState(Enum):
    """Lifecycle states shared by every agent variant."""

    UNINITIALIZED = auto()
    INITIALIZING = auto()
    READY = auto()
    RUNNING = auto()
    RELEASED = auto()


class AgentKind(str, Enum):
    """Closed set of agent variants the factory knows how to build."""

    SIMPLE = "simple"
    ORCHESTRA = "orchestra"
    WORKFORCE = "workforce"


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True, slots=True)
class ModelConfig:
    """Parameters used to reach a language model."""

    provider: str
    model: str
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    api_version: Optional[str] = None
    temperature: float = 0.7
    max_tokens: int = 4000
    timeout: float = 30.0
    max_concurrent: int = 50


@dataclass(frozen=True, slots=True)
class WorkerInfo:
    """Capability blurb for a worker, used only inside the planning prompt."""

    name: str
    description: str
    strengths: Tuple[str, ...] = ()
    weaknesses: Tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class AgentConfig:
    """Immutable descriptor used when instantiating an agent."""

    kind: AgentKind
    name: str
    model: ModelConfig
    instructions: Optional[str] = None
    tools: Tuple[str, ...] = ()
    max_turns: int = 10
    planner_model: Optional[ModelConfig] = None
    reporter_model: Optional[ModelConfig] = None
    assigner_model: Optional[ModelConfig] = None
    answerer_model: Optional[ModelConfig] = None
    executor_max_tries: int = 1
    executor_return_summary: bool = False
    workers: Mapping[str, "AgentConfig"] = field(default_factory=dict)
    workers_info: Tuple[WorkerInfo, ...] = ()


@dataclass(slots=True)
class ToolCall:
    """A tool invocation requested by a model and, once run, its result."""

    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    result: Optional[Any] = None


@dataclass(slots=True)
class Message:
    """Message exchanged with a model. Appended only, never edited."""

    role: Role
    content: str
    timestamp: datetime = field(default_factory=utcnow)
    tool_calls: List[ToolCall] = field(default_factory=list)
    tool_call_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            payload["tool_calls"] = [
                {"id": call.id, "name": call.name, "arguments": call.arguments}
                for call in self.tool_calls
            ]
        if self.tool_call_id:
            payload["tool_call_id"] = self.tool_call_id
        return payload


_TRANSITIONS = {
    TaskStatus.PENDING: {TaskStatus.RUNNING},
    TaskStatus.RUNNING: {TaskStatus.COMPLETED, TaskStatus.FAILED},
    TaskStatus.COMPLETED: set(),
    TaskStatus.FAILED: set(),
}


@dataclass(slots=True)
class TaskRecorder:
    """Per-run result envelope owned by the agent that created it."""

    id: str
    input: str
    messages: List[Message] = field(default_factory=list)
    tool_calls: List[ToolCall] = field(default_factory=list)
    output: Optional[str] = None
    status: TaskStatus = TaskStatus.PENDING
    start_time: datetime = field(default_factory=utcnow)
    end_time: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (TaskStatus.COMPLETED, TaskStatus.FAILED)

    @property
    def duration_ms(self) -> Optional[float]:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds() * 1000

    def transition(self, status: TaskStatus) -> None:
        """Move to ``status``; status only ever moves forward."""
        if status not in _TRANSITIONS[self.status]:
            raise LifecycleError(
                f"Task {self.id} cannot move from {self.status.value} to {status.value}",
                ErrorCode.INVALID_TRANSITION,
            )
        self.status = status

    def mark_running(self) -> None:
        self.transition(TaskStatus.RUNNING)

    def mark_completed(self, output: Optional[str]) -> None:
        self.transition(TaskStatus.COMPLETED)
        self.output = output
        self.end_time = utcnow()

    def mark_failed(self, error: str) -> None:
        self.transition(TaskStatus.FAILED)
        self.error = error
        self.end_time = utcnow()
