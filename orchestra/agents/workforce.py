"""Workforce engine: plan, assign, execute and re-plan one task at a time."""
from __future__ import annotations

import logging
from contextlib import aclosing
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, Mapping, Optional

from orchestra.agents.base import Agent
from orchestra.core.errors import ErrorCode, LifecycleError
from orchestra.core.models import AgentConfig, AgentKind, Message, ModelConfig, Role, TaskRecorder, utcnow
from orchestra.orchestration.workers import WorkerAgent
from orchestra.tracing.manager import TraceManager
from orchestra.tracing.models import EventType, TraceStatus
from orchestra.workforce.prompts import ANSWERER_INSTRUCTIONS, ASSIGNER_INSTRUCTIONS, PLANNER_INSTRUCTIONS
from orchestra.workforce.roles import Answerer, Assigner, Executor, Planner
from orchestra.workforce.workspace import WorkspaceRecorder

if TYPE_CHECKING:
    from orchestra.agents.factory import AgentFactory
    from orchestra.tools.registry import ToolRegistry

LOGGER = logging.getLogger(__name__)

PREVIEW_LENGTH = 200


def _preview(text: str) -> str:
    if len(text) <= PREVIEW_LENGTH:
        return text
    return text[:PREVIEW_LENGTH] + "..."


class WorkforceAgent(Agent):
    """Agent that works through an evolving plan with a group of executors.

    The planner drafts a task list. Each round the assigner picks the next
    task and an executor, the executor carries it out, the planner grades
    the result and then continues, rewrites the remaining tasks or stops.
    The answerer finally extracts the answer from the graded results.
    Executor failures are recorded on the task and never abort the run.
    """

    def __init__(
        self,
        config: AgentConfig,
        *,
        factory: AgentFactory,
        tool_catalog: Optional[ToolRegistry] = None,
        trace_manager: Optional[TraceManager] = None,
    ) -> None:
        super().__init__(config, tool_catalog=tool_catalog, trace_manager=trace_manager or TraceManager())
        self._factory = factory
        self._executors: Dict[str, WorkerAgent] = {}
        self._executor_roles: Dict[str, Executor] = {}
        self._planner: Optional[Planner] = None
        self._assigner: Optional[Assigner] = None
        self._answerer: Optional[Answerer] = None
        self.last_workspace: Optional[WorkspaceRecorder] = None
        self.last_trace_id: Optional[str] = None
        for info in config.workers_info:
            executor_config = config.workers.get(info.name)
            if executor_config is None:
                LOGGER.warning("No configuration for executor %s on %s", info.name, self.name)
                continue
            self._executors[info.name] = WorkerAgent.from_info(info, executor_config)

    @property
    def trace_manager(self) -> TraceManager:
        assert self._trace_manager is not None
        return self._trace_manager

    @property
    def executors(self) -> Mapping[str, WorkerAgent]:
        return dict(self._executors)

    async def on_initialize(self) -> None:
        self._planner = Planner(await self._build_role("planner", self.config.planner_model, PLANNER_INSTRUCTIONS))
        self._assigner = Assigner(
            await self._build_role("assigner", self.config.assigner_model, ASSIGNER_INSTRUCTIONS)
        )
        self._answerer = Answerer(
            await self._build_role("answerer", self.config.answerer_model, ANSWERER_INSTRUCTIONS)
        )
        LOGGER.info("Workforce agent %s ready with %d executors", self.name, len(self._executors))

    async def execute(self, input: str, recorder: TaskRecorder) -> str:
        answer = ""
        async with aclosing(self._work(input, recorder, "workforce_execution")) as steps:
            async for answer in steps:
                pass
        return answer

    async def execute_stream(self, input: str, recorder: TaskRecorder) -> AsyncIterator[Message]:
        answer = ""
        try:
            async with aclosing(self._work(input, recorder, "workforce_stream")) as steps:
                async for answer in steps:
                    yield Message(role=Role.ASSISTANT, content=answer)
        except Exception as exc:
            yield Message(role=Role.ASSISTANT, content=f"Execution failed: {exc}")
            raise
        recorder.output = answer

    async def _work(self, input: str, recorder: TaskRecorder, trace_name: str) -> AsyncIterator[str]:
        """Drive one run, yielding progress lines and finally the answer."""
        assert self._planner is not None and self._assigner is not None and self._answerer is not None
        trace_id = self.trace_manager.start_trace(
            trace_name,
            {"input": input, "agent_name": self.name, "task_id": recorder.id},
        )
        self.last_trace_id = trace_id
        self.trace_manager.record_agent_start(trace_id, self.name, input)
        workspace = WorkspaceRecorder(
            overall_task=input,
            executors={name: executor.description for name, executor in self._executors.items()},
        )
        self.last_workspace = workspace

        try:
            yield "Planning the task..."
            await self._planner.plan_task(workspace)
            self._record(trace_id, EventType.PLAN_CREATED, {"plan": workspace.task_plan})
            yield f"Plan ready: {len(workspace.task_plan)} tasks"

            rounds = 0
            while workspace.has_uncompleted_tasks:
                if rounds >= self.config.max_turns:
                    LOGGER.warning("Workforce %s stopped after %d tasks", self.name, rounds)
                    break
                rounds += 1

                task = await self._assigner.assign_task(workspace)
                executor = await self._executor_for(task.assigned_agent or "")
                yield f"Running task {task.task_id}: {task.name} ({task.assigned_agent})"
                self._record(trace_id, EventType.SUBTASK_START, {"task": task, "agent_name": task.assigned_agent})

                await executor.execute_task(workspace, task)
                await self._planner.plan_check(workspace, task)
                self._record(
                    trace_id,
                    EventType.SUBTASK_COMPLETE,
                    {"task": task, "agent_name": task.assigned_agent, "result": _preview(task.result or "")},
                )
                yield f"Task {task.task_id} finished: {task.status.value}"

                if not workspace.has_uncompleted_tasks:
                    break
                choice = await self._planner.plan_update(workspace, task)
                self._record(trace_id, EventType.PLAN_UPDATED, {"choice": choice, "plan": workspace.task_plan})
                if choice == "stop":
                    yield "The task is already accomplished, skipping the remaining plan"
                    break

            yield "Extracting the final answer..."
            answer = await self._answerer.extract_final_answer(workspace)
            workspace.final_output = answer
            self._record(trace_id, EventType.REPORT_GENERATED, {"report": _preview(answer)})
        except BaseException as exc:
            self.trace_manager.record_error(trace_id, exc)
            self.trace_manager.end_trace(trace_id, TraceStatus.FAILED)
            raise

        duration = (utcnow() - recorder.start_time).total_seconds() * 1000
        self.trace_manager.record_agent_end(trace_id, self.name, answer, duration)
        self.trace_manager.end_trace(trace_id, TraceStatus.COMPLETED)
        yield answer

    async def _build_role(self, role: str, model: Optional[ModelConfig], instructions: str) -> Agent:
        return await self._factory.create_agent(
            AgentConfig(
                kind=AgentKind.SIMPLE,
                name=f"{self.name}_{role}",
                model=model or self.config.model,
                instructions=instructions,
            )
        )

    async def _executor_for(self, name: str) -> Executor:
        worker = self._executors.get(name)
        if worker is None:
            raise LifecycleError(
                f"Executor {name} is not registered on {self.name}",
                ErrorCode.WORKER_NOT_FOUND,
            )
        if name not in self._executor_roles:
            agent = await worker.get_or_build(self._factory.create_agent)
            self._executor_roles[name] = Executor(
                agent,
                max_tries=self.config.executor_max_tries,
                return_summary=self.config.executor_return_summary,
            )
        return self._executor_roles[name]

    async def on_cleanup(self) -> None:
        for worker in self._executors.values():
            if worker.instance is not None:
                await worker.instance.cleanup()
                worker.instance = None
        self._executor_roles.clear()
        for role in (self._planner, self._assigner, self._answerer):
            if role is not None:
                await role.llm.cleanup()
        self._planner = None
        self._assigner = None
        self._answerer = None

    def info(self) -> Dict[str, Any]:
        details = super().info()
        details.update(
            {
                "executor_agents": list(self._executors),
                "executor_agents_count": len(self._executors),
            }
        )
        return details

    def _record(self, trace_id: str, event_type: EventType, data: Dict[str, Any]) -> None:
        self.trace_manager.record_event(trace_id, event_type, data)
