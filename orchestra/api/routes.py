"""HTTP API exposing agents and their traces."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from orchestra.agents.base import Agent
from orchestra.agents.factory import AgentFactory
from orchestra.core.models import TaskRecorder, TaskStatus
from orchestra.runtime import get_agent_factory, get_trace_manager
from orchestra.tracing.manager import TraceManager
from orchestra.tracing.models import TraceFilter, TraceSession, TraceStatus

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/agents", tags=["agents"])
traces_router = APIRouter(prefix="/traces", tags=["traces"])


class AgentResponse(BaseModel):
    name: str
    kind: str
    state: str
    is_ready: bool
    tools: List[str]

    @classmethod
    def from_agent(cls, agent: Agent) -> "AgentResponse":
        return cls(
            name=agent.name,
            kind=agent.config.kind.value,
            state=agent.state.name,
            is_ready=agent.is_ready,
            tools=agent.tools.tool_names(),
        )


class RunRequest(BaseModel):
    input: str = Field(..., description="Task handed to the agent")
    trace_id: Optional[str] = Field(default=None, description="Identifier for the task recorder")


class MessageResponse(BaseModel):
    role: str
    content: str
    timestamp: datetime


class RunResponse(BaseModel):
    id: str
    input: str
    output: Optional[str]
    status: str
    error: Optional[str]
    start_time: datetime
    end_time: Optional[datetime]
    messages: List[MessageResponse]
    tool_call_count: int

    @classmethod
    def from_recorder(cls, recorder: TaskRecorder) -> "RunResponse":
        return cls(
            id=recorder.id,
            input=recorder.input,
            output=recorder.output,
            status=recorder.status.value,
            error=recorder.error,
            start_time=recorder.start_time,
            end_time=recorder.end_time,
            messages=[
                MessageResponse(role=message.role.value, content=message.content, timestamp=message.timestamp)
                for message in recorder.messages
            ],
            tool_call_count=len(recorder.tool_calls),
        )


class TraceSummary(BaseModel):
    id: str
    name: str
    status: str
    start_time: datetime
    end_time: Optional[datetime]
    event_count: int

    @classmethod
    def from_session(cls, session: TraceSession) -> "TraceSummary":
        return cls(
            id=session.id,
            name=session.name,
            status=session.status.value,
            start_time=session.start_time,
            end_time=session.end_time,
            event_count=len(session.events),
        )


class TraceDetail(TraceSummary):
    metadata: Dict[str, Any]
    events: List[Dict[str, Any]]

    @classmethod
    def from_session(cls, session: TraceSession) -> "TraceDetail":
        payload = session.to_dict()
        return cls(
            id=session.id,
            name=session.name,
            status=session.status.value,
            start_time=session.start_time,
            end_time=session.end_time,
            event_count=len(session.events),
            metadata=payload["metadata"],
            events=payload["events"],
        )


def _require_agent(factory: AgentFactory, name: str) -> Agent:
    agent = factory.get_agent(name)
    if agent is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown agent")
    return agent


@router.get("", response_model=List[AgentResponse])
async def list_agents(factory: AgentFactory = Depends(get_agent_factory)) -> List[AgentResponse]:
    return [AgentResponse.from_agent(agent) for agent in factory.list_agents()]


@router.post("/{name}/runs", response_model=RunResponse)
async def run_agent(
    name: str,
    request: RunRequest,
    factory: AgentFactory = Depends(get_agent_factory),
) -> RunResponse:
    agent = _require_agent(factory, name)
    previous = agent.last_recorder
    try:
        recorder = await agent.run(request.input, request.trace_id)
    except Exception as exc:  # noqa: BLE001
        LOGGER.error("Run on agent %s failed: %s", name, exc)
        recorder = agent.last_recorder
        # Only a recorder opened by this request carries its failure.
        if recorder is None or recorder is previous or recorder.status is not TaskStatus.FAILED:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return RunResponse.from_recorder(recorder)


@router.delete("/{name}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_agent(name: str, factory: AgentFactory = Depends(get_agent_factory)) -> None:
    if not await factory.remove_agent(name):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown agent")


@traces_router.get("", response_model=List[TraceSummary])
async def list_traces(
    status_filter: Optional[TraceStatus] = Query(default=None, alias="status"),
    agent_name: Optional[str] = None,
    event_type: Optional[str] = None,
    traces: TraceManager = Depends(get_trace_manager),
) -> List[TraceSummary]:
    sessions = traces.query_traces(
        TraceFilter(status=status_filter, agent_name=agent_name, event_type=event_type)
    )
    return [TraceSummary.from_session(session) for session in sessions]


@traces_router.get("/{trace_id}", response_model=TraceDetail)
async def get_trace(trace_id: str, traces: TraceManager = Depends(get_trace_manager)) -> TraceDetail:
    session = traces.get_trace(trace_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown trace")
    return TraceDetail.from_session(session)


@traces_router.get("/{trace_id}/export", response_class=PlainTextResponse)
async def export_trace(
    trace_id: str,
    format: Literal["json", "csv"] = "json",
    traces: TraceManager = Depends(get_trace_manager),
) -> PlainTextResponse:
    try:
        body = traces.export_trace(trace_id, format)
    except KeyError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown trace") from exc
    media_type = "application/json" if format == "json" else "text/csv"
    return PlainTextResponse(body, media_type=media_type)
