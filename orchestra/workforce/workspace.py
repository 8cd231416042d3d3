"""Shared state of a workforce run: the evolving task plan and its results."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Mapping, Optional, Sequence, Tuple

LOGGER = logging.getLogger(__name__)


class WorkforceTaskStatus(str, Enum):
    NOT_STARTED = "not started"
    IN_PROGRESS = "in progress"
    COMPLETED = "completed"
    SUCCESS = "success"
    FAILED = "failed"
    PARTIAL_SUCCESS = "partial success"


@dataclass(slots=True)
class WorkforceTask:
    """One step of the plan. ``task_id`` is 1-based and matches plan position."""

    task_id: int
    name: str
    description: Optional[str] = None
    status: WorkforceTaskStatus = WorkforceTaskStatus.NOT_STARTED
    result: Optional[str] = None
    result_detailed: Optional[str] = None
    assigned_agent: Optional[str] = None

    def formatted(self) -> str:
        return f"<task_id:{self.task_id}>{self.name}</task_id:{self.task_id}>"

    def formatted_with_result(self) -> str:
        lines = [self.formatted(), f"<task_status>{self.status.value}</task_status>"]
        if self.result:
            lines.append(f"<task_result>{self.result}</task_result>")
        return "\n".join(lines)


@dataclass(slots=True)
class WorkspaceRecorder:
    """Plan, executor roster and role transcripts for a single workforce run."""

    overall_task: str
    executors: Mapping[str, str] = field(default_factory=dict)
    task_plan: List[WorkforceTask] = field(default_factory=list)
    run_results: List[Tuple[str, str]] = field(default_factory=list)
    final_output: Optional[str] = None

    @property
    def executor_agents_info(self) -> str:
        return "\n".join(f"- {name}: {description}" for name, description in self.executors.items())

    @property
    def executor_agents_names(self) -> str:
        return ", ".join(self.executors)

    @property
    def formatted_task_plan(self) -> str:
        return "\n".join(task.formatted() for task in self.task_plan)

    def formatted_task_plan_with_results(self) -> List[str]:
        return [task.formatted_with_result() for task in self.task_plan]

    def add_run_result(self, output: str, role: str) -> None:
        self.run_results.append((role, output))

    def plan_init(self, task_names: Sequence[str]) -> None:
        self.task_plan = [WorkforceTask(task_id=index, name=name) for index, name in enumerate(task_names, 1)]

    def plan_update(self, task: WorkforceTask, updated_names: Sequence[str]) -> None:
        """Keep the plan up to and including ``task``; replace everything after it."""
        kept = self.task_plan[: task.task_id]
        self.task_plan = kept + [
            WorkforceTask(task_id=task.task_id + offset, name=name)
            for offset, name in enumerate(updated_names, 1)
        ]
        LOGGER.info("Plan now has %d tasks after task %d", len(self.task_plan), task.task_id)

    @property
    def has_uncompleted_tasks(self) -> bool:
        return any(task.status is WorkforceTaskStatus.NOT_STARTED for task in self.task_plan)

    def get_next_task(self) -> Optional[WorkforceTask]:
        for task in self.task_plan:
            if task.status is WorkforceTaskStatus.NOT_STARTED:
                return task
        return None
