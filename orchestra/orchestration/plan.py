"""Plan records produced by the planner and the lenient parser that builds them."""
from __future__ import annotations

import json
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from orchestra.core.models import utcnow

DEFAULT_WORKER = "default"
SECONDS_PER_SUBTASK = 30

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class SubtaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True)
class Subtask:
    id: str
    name: str
    description: str
    assigned_agent: str
    dependencies: List[str] = field(default_factory=list)
    status: SubtaskStatus = SubtaskStatus.PENDING
    result: Optional[str] = None
    error: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    def start(self) -> None:
        self.status = SubtaskStatus.IN_PROGRESS
        self.start_time = utcnow()

    def complete(self, result: str) -> None:
        self.status = SubtaskStatus.COMPLETED
        self.result = result
        self.end_time = utcnow()

    def fail(self, error: str) -> None:
        self.status = SubtaskStatus.FAILED
        self.error = error
        self.end_time = utcnow()


@dataclass(slots=True)
class OrchestraPlan:
    """Dependency graph for one run; only subtask status fields change later."""

    id: str
    overall_task: str
    subtasks: List[Subtask]
    execution_order: List[str]
    estimated_duration: int
    created_at: datetime = field(default_factory=utcnow)

    def get(self, subtask_id: str) -> Optional[Subtask]:
        return next((subtask for subtask in self.subtasks if subtask.id == subtask_id), None)


class PlanParseError(ValueError):
    """The planner reply did not contain a usable plan."""


class _SubtaskPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[Union[str, int]] = None
    name: Optional[str] = None
    description: Optional[str] = None
    assigned_agent: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("assignedAgent", "assigned_agent"),
    )
    dependencies: Optional[List[Union[str, int]]] = None


class _PlanPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    subtasks: List[_SubtaskPayload]
    execution_order: Optional[List[Union[str, int]]] = Field(
        default=None,
        validation_alias=AliasChoices("executionOrder", "execution_order"),
    )


def _new_plan_id() -> str:
    return f"plan_{uuid.uuid4().hex[:12]}"


def parse_plan(reply: str, overall_task: str) -> OrchestraPlan:
    """Extract a plan from the planner's free-text ``reply``.

    The outermost ``{...}`` span is decoded as JSON of the form
    ``{"subtasks": [...], "executionOrder": [...]}``. Missing ids become
    ``task_<n>``, missing workers ``default`` and a missing execution order
    follows subtask order. Raises :class:`PlanParseError` when nothing usable
    is found.
    """
    match = _JSON_OBJECT.search(reply or "")
    if match is None:
        raise PlanParseError("No JSON object found in planner reply")

    try:
        data: Dict[str, Any] = json.loads(match.group(0))
        payload = _PlanPayload.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as exc:
        raise PlanParseError(f"Planner reply is not a valid plan: {exc}") from exc

    subtasks = [
        Subtask(
            id=str(item.id) if item.id not in (None, "") else f"task_{index}",
            name=item.name or f"Subtask {index}",
            description=item.description or "",
            assigned_agent=item.assigned_agent or DEFAULT_WORKER,
            dependencies=[str(dep) for dep in item.dependencies or []],
        )
        for index, item in enumerate(payload.subtasks, start=1)
    ]
    if payload.execution_order is None:
        execution_order = [subtask.id for subtask in subtasks]
    else:
        execution_order = [str(item) for item in payload.execution_order]

    return OrchestraPlan(
        id=_new_plan_id(),
        overall_task=overall_task,
        subtasks=subtasks,
        execution_order=execution_order,
        estimated_duration=len(subtasks) * SECONDS_PER_SUBTASK,
    )


def fallback_plan(overall_task: str) -> OrchestraPlan:
    """Single-subtask plan handing the whole task to the default worker."""
    return OrchestraPlan(
        id=_new_plan_id(),
        overall_task=overall_task,
        subtasks=[
            Subtask(
                id="task_1",
                name="Default task",
                description=overall_task,
                assigned_agent=DEFAULT_WORKER,
            )
        ],
        execution_order=["task_1"],
        estimated_duration=SECONDS_PER_SUBTASK,
    )
