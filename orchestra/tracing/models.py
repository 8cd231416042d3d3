"""Trace session and event records."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from orchestra.core.models import utcnow


class TraceStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class EventType(str, Enum):
    AGENT_START = "agent_start"
    AGENT_END = "agent_end"
    TOOL_CALL = "tool_call"
    ERROR = "error"
    PLAN_CREATED = "plan_created"
    PLAN_UPDATED = "plan_updated"
    SUBTASK_START = "subtask_start"
    SUBTASK_COMPLETE = "subtask_complete"
    SUBTASKS_COMPLETED = "subtasks_completed"
    REPORT_GENERATED = "report_generated"
    TASK_RECORDER = "task_recorder"


@dataclass(slots=True)
class TraceEvent:
    id: str
    trace_id: str
    event_type: str
    data: Dict[str, Any]
    timestamp: datetime = field(default_factory=utcnow)
    duration: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "trace_id": self.trace_id,
            "event_type": self.event_type,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
            "duration": self.duration,
        }


@dataclass(slots=True)
class TraceSession:
    """Append-only audit record of one run; ended exactly once."""

    id: str
    name: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    start_time: datetime = field(default_factory=utcnow)
    end_time: Optional[datetime] = None
    status: TraceStatus = TraceStatus.ACTIVE
    events: List[TraceEvent] = field(default_factory=list)

    @property
    def duration_ms(self) -> Optional[float]:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds() * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "metadata": self.metadata,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "status": self.status.value,
            "events": [event.to_dict() for event in self.events],
        }


@dataclass(slots=True)
class TraceFilter:
    trace_id: Optional[str] = None
    status: Optional[TraceStatus] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    agent_name: Optional[str] = None
    event_type: Optional[str] = None


@dataclass(slots=True)
class TraceStats:
    total_traces: int
    active_traces: int
    completed_traces: int
    failed_traces: int
    average_duration: float
    total_events: int
    event_type_stats: Dict[str, int]
