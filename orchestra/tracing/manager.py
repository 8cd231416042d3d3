"""Trace manager recording redacted, timestamped events per session."""
from __future__ import annotations

import asyncio
import csv
import dataclasses
import io
import json
import logging
import uuid
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Set

from orchestra.core.models import TaskRecorder, utcnow
from orchestra.tracing.models import (
    EventType,
    TraceEvent,
    TraceFilter,
    TraceSession,
    TraceStats,
    TraceStatus,
)
from orchestra.tracing.sinks import TraceSink

LOGGER = logging.getLogger(__name__)

REDACTED = "[REDACTED]"
SENSITIVE_KEYS = ("password", "token", "key", "secret")
PREVIEW_LENGTH = 200


def _is_sensitive(key: Any) -> bool:
    lowered = str(key).lower()
    return any(marker in lowered for marker in SENSITIVE_KEYS)


def redact(value: Any) -> Any:
    """Return a copy of ``value`` with every sensitive mapping key masked."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return redact(dataclasses.asdict(value))
    if isinstance(value, Mapping):
        return {
            key: REDACTED if _is_sensitive(key) else redact(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple, set, frozenset)):
        return [redact(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    return value


def _clip(text: Optional[str], limit: int = PREVIEW_LENGTH) -> Optional[str]:
    if text is None:
        return None
    return text[:limit]


class TraceManager:
    """Keep trace sessions in memory and hand ended ones to a sink."""

    def __init__(self, sink: Optional[TraceSink] = None) -> None:
        self._sink = sink
        self._sessions: Dict[str, TraceSession] = {}
        self._pending: Set[asyncio.Task[None]] = set()

    def start_trace(self, name: str, metadata: Optional[Dict[str, Any]] = None) -> str:
        trace_id = str(uuid.uuid4())
        self._sessions[trace_id] = TraceSession(
            id=trace_id,
            name=name,
            metadata=redact(metadata or {}),
        )
        LOGGER.info("Started trace %s (%s)", name, trace_id)
        return trace_id

    def end_trace(self, trace_id: str, status: TraceStatus | str = TraceStatus.COMPLETED) -> None:
        session = self._sessions.get(trace_id)
        if session is None:
            LOGGER.warning("Trace %s does not exist", trace_id)
            return
        if session.end_time is not None:
            LOGGER.warning("Trace %s already ended with status %s", trace_id, session.status.value)
            return

        session.end_time = utcnow()
        session.status = TraceStatus(status)
        LOGGER.info("Ended trace %s (%s) with status %s", session.name, trace_id, session.status.value)
        self._schedule_persist(session)

    def record_event(
        self,
        trace_id: str,
        event_type: EventType | str,
        data: Optional[Mapping[str, Any]] = None,
        duration: Optional[float] = None,
    ) -> Optional[TraceEvent]:
        session = self._sessions.get(trace_id)
        if session is None:
            LOGGER.warning("Trace %s does not exist", trace_id)
            return None
        if session.end_time is not None:
            LOGGER.warning("Trace %s has ended, dropping %s event", trace_id, event_type)
            return None

        kind = event_type.value if isinstance(event_type, EventType) else event_type
        event = TraceEvent(
            id=str(uuid.uuid4()),
            trace_id=trace_id,
            event_type=kind,
            data=redact(dict(data or {})),
            duration=duration,
        )
        session.events.append(event)
        LOGGER.debug("Recorded %s event for trace %s", kind, trace_id)
        return event

    def record_agent_start(self, trace_id: str, agent_name: str, input: str) -> None:
        self.record_event(
            trace_id,
            EventType.AGENT_START,
            {"agent_name": agent_name, "input": _clip(input)},
        )

    def record_agent_end(self, trace_id: str, agent_name: str, output: str, duration: float) -> None:
        self.record_event(
            trace_id,
            EventType.AGENT_END,
            {"agent_name": agent_name, "output": _clip(output), "duration": duration},
            duration,
        )

    def record_tool_call(
        self,
        trace_id: str,
        tool_name: str,
        args: Any,
        result: Any,
        duration: Optional[float] = None,
        agent_name: Optional[str] = None,
    ) -> None:
        self.record_event(
            trace_id,
            EventType.TOOL_CALL,
            {
                "agent_name": agent_name,
                "tool_name": tool_name,
                "args": args,
                "result": _clip(str(result)),
                "duration": duration,
            },
            duration,
        )

    def record_error(
        self,
        trace_id: str,
        error: BaseException,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.record_event(
            trace_id,
            EventType.ERROR,
            {
                "error": {"name": type(error).__name__, "message": str(error)},
                "context": dict(context or {}),
            },
        )

    def record_task_recorder(self, trace_id: str, recorder: TaskRecorder) -> None:
        self.record_event(
            trace_id,
            EventType.TASK_RECORDER,
            {
                "task_id": recorder.id,
                "input": recorder.input,
                "output": recorder.output,
                "status": recorder.status,
                "message_count": len(recorder.messages),
                "tool_call_count": len(recorder.tool_calls),
                "start_time": recorder.start_time.isoformat(),
                "end_time": recorder.end_time.isoformat() if recorder.end_time else None,
                "duration": recorder.duration_ms,
            },
        )

    def get_trace(self, trace_id: str) -> Optional[TraceSession]:
        return self._sessions.get(trace_id)

    def get_trace_events(self, trace_id: str) -> List[TraceEvent]:
        session = self._sessions.get(trace_id)
        return list(session.events) if session else []

    def query_traces(self, trace_filter: Optional[TraceFilter] = None) -> List[TraceSession]:
        """Return sessions matching every populated filter field, newest first."""
        criteria = trace_filter or TraceFilter()
        results = list(self._sessions.values())

        if criteria.trace_id:
            results = [s for s in results if s.id == criteria.trace_id]
        if criteria.status:
            status = TraceStatus(criteria.status)
            results = [s for s in results if s.status is status]
        if criteria.start_time:
            results = [s for s in results if s.start_time >= criteria.start_time]
        if criteria.end_time:
            results = [s for s in results if s.end_time is None or s.end_time <= criteria.end_time]
        if criteria.agent_name:
            results = [
                s
                for s in results
                if any(event.data.get("agent_name") == criteria.agent_name for event in s.events)
            ]
        if criteria.event_type:
            results = [
                s
                for s in results
                if any(event.event_type == criteria.event_type for event in s.events)
            ]

        return sorted(results, key=lambda session: session.start_time, reverse=True)

    def get_stats(self) -> TraceStats:
        sessions = list(self._sessions.values())
        event_type_stats: Dict[str, int] = {}
        for session in sessions:
            for event in session.events:
                event_type_stats[event.event_type] = event_type_stats.get(event.event_type, 0) + 1

        durations = [s.duration_ms for s in sessions if s.duration_ms is not None]
        return TraceStats(
            total_traces=len(sessions),
            active_traces=sum(1 for s in sessions if s.status is TraceStatus.ACTIVE),
            completed_traces=sum(1 for s in sessions if s.status is TraceStatus.COMPLETED),
            failed_traces=sum(1 for s in sessions if s.status is TraceStatus.FAILED),
            average_duration=sum(durations) / len(durations) if durations else 0.0,
            total_events=sum(len(s.events) for s in sessions),
            event_type_stats=event_type_stats,
        )

    def cleanup_old_traces(self, max_age: timedelta = timedelta(days=7)) -> int:
        """Evict sessions started before ``now - max_age``; return how many went."""
        cutoff = utcnow() - max_age
        stale = [trace_id for trace_id, s in self._sessions.items() if s.start_time < cutoff]
        for trace_id in stale:
            del self._sessions[trace_id]
        LOGGER.info("Evicted %d old trace sessions", len(stale))
        return len(stale)

    def export_trace(self, trace_id: str, format: str = "json") -> str:
        session = self._sessions.get(trace_id)
        if session is None:
            raise KeyError(f"Trace {trace_id} does not exist")

        if format == "json":
            payload = {"session": session.to_dict(), "exported_at": utcnow().isoformat()}
            return json.dumps(payload, indent=2, default=str)
        if format == "csv":
            buffer = io.StringIO()
            writer = csv.writer(buffer, lineterminator="\n")
            writer.writerow(["timestamp", "event_type", "data"])
            for event in session.events:
                writer.writerow(
                    [event.timestamp.isoformat(), event.event_type, json.dumps(event.data, default=str)]
                )
            return buffer.getvalue()
        raise ValueError(f"Unsupported export format: {format}")

    async def flush(self) -> None:
        """Wait for every scheduled persistence write to settle."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    def _schedule_persist(self, session: TraceSession) -> None:
        if self._sink is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            LOGGER.warning("No running event loop, trace %s was not persisted", session.id)
            return
        task = loop.create_task(self._persist(session))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _persist(self, session: TraceSession) -> None:
        assert self._sink is not None
        record = {"session": session.to_dict(), "saved_at": utcnow().isoformat()}
        try:
            await self._sink.append(record)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Failed to persist trace %s", session.id)
        else:
            LOGGER.debug("Persisted trace %s", session.id)
