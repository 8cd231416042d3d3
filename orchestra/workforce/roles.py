"""Planner, assigner, executor and answerer roles of a workforce run.

Each role drives an ordinary :class:`~orchestra.agents.base.Agent` with a
role-specific prompt and reads the tagged sections of its reply.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Optional

from orchestra.core.errors import ErrorCode, LifecycleError
from orchestra.workforce.parsing import (
    AssignmentParseError,
    parse_assignment,
    parse_final_answer,
    parse_plan_decision,
    parse_task_check,
    parse_task_status,
    parse_tasks,
)
from orchestra.workforce.prompts import (
    build_assign_prompt,
    build_execute_prompt,
    build_execution_check_prompt,
    build_final_answer_prompt,
    build_plan_update_prompt,
    build_reflection_prompt,
    build_summary_prompt,
    build_task_check_prompt,
    build_task_plan_prompt,
)
from orchestra.workforce.workspace import WorkforceTask, WorkforceTaskStatus, WorkspaceRecorder

if TYPE_CHECKING:
    from orchestra.agents.base import Agent

LOGGER = logging.getLogger(__name__)


async def _ask(agent: "Agent", prompt: str) -> str:
    recorder = await agent.run(prompt)
    return recorder.output or ""


class Planner:
    """Drafts the plan, grades finished tasks and revises what is left."""

    def __init__(self, llm: "Agent") -> None:
        self.llm = llm

    async def plan_task(self, recorder: WorkspaceRecorder) -> None:
        reply = await _ask(self.llm, build_task_plan_prompt(recorder))
        recorder.add_run_result(reply, "planner")
        tasks = parse_tasks(reply)
        if not tasks:
            LOGGER.warning("Planner returned no tasks, treating the whole task as one step")
            tasks = [recorder.overall_task]
        recorder.plan_init(tasks)
        LOGGER.info("Planned %d tasks", len(tasks))

    async def plan_check(self, recorder: WorkspaceRecorder, task: WorkforceTask) -> None:
        reply = await _ask(self.llm, build_task_check_prompt(recorder, task))
        recorder.add_run_result(reply, "planner")
        task.status = parse_task_status(reply)
        LOGGER.info("Task %d graded %s", task.task_id, task.status.value)

    async def plan_update(self, recorder: WorkspaceRecorder, task: WorkforceTask) -> str:
        """Return ``continue``, ``update`` or ``stop``; apply an update in place."""
        reply = await _ask(self.llm, build_plan_update_prompt(recorder, task))
        recorder.add_run_result(reply, "planner")
        decision = parse_plan_decision(reply)
        if decision.choice == "update" and decision.updated_plan:
            recorder.plan_update(task, decision.updated_plan)
        return decision.choice


class Assigner:
    def __init__(self, llm: "Agent") -> None:
        self.llm = llm

    async def assign_task(self, recorder: WorkspaceRecorder) -> WorkforceTask:
        task = recorder.get_next_task()
        if task is None:
            raise LifecycleError("No task left to assign", ErrorCode.ASSIGNMENT_FAILED)

        reply = await _ask(self.llm, build_assign_prompt(recorder, task))
        recorder.add_run_result(reply, "assigner")
        try:
            assignment = parse_assignment(reply)
        except AssignmentParseError as exc:
            LOGGER.error("Could not parse assignment for task %d: %s", task.task_id, exc)
            raise LifecycleError(str(exc), ErrorCode.ASSIGNMENT_FAILED, exc) from exc

        task.description = assignment.description
        task.assigned_agent = assignment.agent
        LOGGER.info("Task %d assigned to %s", task.task_id, assignment.agent)
        return task


class Executor:
    """Runs a task on an executor agent, retrying with reflection when unfinished."""

    def __init__(self, agent: "Agent", *, max_tries: int = 1, return_summary: bool = False) -> None:
        self.agent = agent
        self.max_tries = max(1, max_tries)
        self.return_summary = return_summary
        self.reflections: List[str] = []

    async def execute_task(self, recorder: WorkspaceRecorder, task: WorkforceTask) -> None:
        task.status = WorkforceTaskStatus.IN_PROGRESS
        output: Optional[str] = None
        failure = ""

        for attempt in range(1, self.max_tries + 1):
            reflection = self.reflections[-1] if attempt > 1 and self.reflections else ""
            try:
                output = await _ask(self.agent, build_execute_prompt(recorder, task, reflection))
                check = await _ask(self.agent, build_execution_check_prompt(task))
                if parse_task_check(check):
                    LOGGER.info("Task %d finished on attempt %d", task.task_id, attempt)
                    break
                if attempt < self.max_tries:
                    self.reflections.append(await _ask(self.agent, build_reflection_prompt(task)))
                LOGGER.warning("Task %d unfinished after attempt %d/%d", task.task_id, attempt, self.max_tries)
            except Exception as exc:  # noqa: BLE001
                LOGGER.error("Task %d attempt %d failed: %s", task.task_id, attempt, exc)
                failure = str(exc) or type(exc).__name__

        if output is None:
            task.result = f"Task execution failed: {failure}"
            task.status = WorkforceTaskStatus.FAILED
            return

        recorder.add_run_result(output, "executor")
        task.result = output
        task.status = WorkforceTaskStatus.COMPLETED

        if self.return_summary:
            summary = await _ask(self.agent, build_summary_prompt(task))
            recorder.add_run_result(summary, "executor_summary")
            task.result_detailed = output
            task.result = summary


class Answerer:
    def __init__(self, llm: "Agent") -> None:
        self.llm = llm

    async def extract_final_answer(self, recorder: WorkspaceRecorder) -> str:
        reply = await _ask(self.llm, build_final_answer_prompt(recorder))
        recorder.add_run_result(reply, "answerer")
        return parse_final_answer(reply)
