"""Orchestration engine: plan with a planner, dispatch to workers, report."""
from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, Mapping, Optional

from orchestra.agents.base import Agent
from orchestra.core.errors import ErrorCode, LifecycleError, PlanningError
from orchestra.core.models import AgentConfig, AgentKind, Message, Role, TaskRecorder, utcnow
from orchestra.orchestration.plan import (
    OrchestraPlan,
    PlanParseError,
    Subtask,
    SubtaskStatus,
    fallback_plan,
    parse_plan,
)
from orchestra.orchestration.prompts import (
    PLANNER_INSTRUCTIONS,
    REPORTER_INSTRUCTIONS,
    build_planning_prompt,
    build_report_prompt,
)
from orchestra.orchestration.report import aggregate_results
from orchestra.orchestration.workers import WorkerAgent
from orchestra.tracing.manager import TraceManager
from orchestra.tracing.models import EventType, TraceStatus

if TYPE_CHECKING:
    from orchestra.agents.factory import AgentFactory
    from orchestra.tools.registry import ToolRegistry

LOGGER = logging.getLogger(__name__)

PREVIEW_LENGTH = 200


class OrchestraPhase(Enum):
    IDLE = "idle"
    PLANNING = "planning"
    DISPATCHING = "dispatching"
    REPORTING = "reporting"
    COMPLETED = "completed"
    FAILED = "failed"


def _progress(content: str) -> Message:
    return Message(role=Role.ASSISTANT, content=content)


def _preview(text: str) -> str:
    if len(text) <= PREVIEW_LENGTH:
        return text
    return text[:PREVIEW_LENGTH] + "..."


class OrchestraAgent(Agent):
    """Agent that decomposes a task and coordinates worker agents.

    A run goes planning -> dispatching -> reporting. Subtasks execute one at a
    time in the plan's execution order; a subtask whose dependencies did not
    complete is skipped and stays ``pending``, while a failing subtask aborts
    the rest of the run.
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
        self._workers: Dict[str, WorkerAgent] = {}
        self._planner: Optional[Agent] = None
        self._reporter: Optional[Agent] = None
        self.phase = OrchestraPhase.IDLE
        self.last_plan: Optional[OrchestraPlan] = None
        self.last_trace_id: Optional[str] = None
        self._register_configured_workers()

    @property
    def trace_manager(self) -> TraceManager:
        assert self._trace_manager is not None
        return self._trace_manager

    @property
    def workers(self) -> Mapping[str, WorkerAgent]:
        return dict(self._workers)

    def register_worker(self, worker: WorkerAgent) -> None:
        if worker.name in self._workers:
            LOGGER.warning("Worker %s already registered on %s, replacing it", worker.name, self.name)
        self._workers[worker.name] = worker
        LOGGER.info("Registered worker %s on %s", worker.name, self.name)

    async def on_initialize(self) -> None:
        if self.config.planner_model is not None:
            self._planner = await self._factory.create_agent(
                AgentConfig(
                    kind=AgentKind.SIMPLE,
                    name=f"{self.name}_planner",
                    model=self.config.planner_model,
                    instructions=PLANNER_INSTRUCTIONS,
                )
            )
        if self.config.reporter_model is not None:
            self._reporter = await self._factory.create_agent(
                AgentConfig(
                    kind=AgentKind.SIMPLE,
                    name=f"{self.name}_reporter",
                    model=self.config.reporter_model,
                    instructions=REPORTER_INSTRUCTIONS,
                )
            )
        LOGGER.info(
            "Orchestra agent %s ready with %d workers (planner=%s, reporter=%s)",
            self.name,
            len(self._workers),
            self._planner is not None,
            self._reporter is not None,
        )

    async def execute(self, input: str, recorder: TaskRecorder) -> str:
        trace_id = self._start_trace("orchestra_execution", input, recorder)
        try:
            plan = await self.plan(input)
            self._record(trace_id, EventType.PLAN_CREATED, {"plan": plan})

            self.phase = OrchestraPhase.DISPATCHING
            results = await self.execute_subtasks(plan, trace_id)
            self._record(trace_id, EventType.SUBTASKS_COMPLETED, {"results": results})

            self.phase = OrchestraPhase.REPORTING
            final_result = await self.report(plan, results, trace_id)
        except BaseException as exc:
            self._fail_trace(trace_id, exc)
            raise

        self._complete_trace(trace_id, final_result, recorder)
        return final_result

    async def execute_stream(self, input: str, recorder: TaskRecorder) -> AsyncIterator[Message]:
        trace_id = self._start_trace("orchestra_stream", input, recorder)
        try:
            yield _progress("Analysing the task and drafting an execution plan...")
            plan = await self.plan(input)
            self._record(trace_id, EventType.PLAN_CREATED, {"plan": plan})
            yield _progress(f"Plan ready: {len(plan.subtasks)} subtasks")

            self.phase = OrchestraPhase.DISPATCHING
            results: Dict[str, str] = {}
            for subtask_id in plan.execution_order:
                subtask = plan.get(subtask_id)
                if subtask is None:
                    continue
                if not self._dependencies_met(plan, subtask, results):
                    LOGGER.warning("Dependencies of subtask %s not met, skipping", subtask.name)
                    yield _progress(f"Skipping subtask {subtask.name}: dependencies not completed")
                    continue
                yield _progress(f"Running subtask: {subtask.name} ({subtask.assigned_agent})")
                results[subtask_id] = await self.execute_subtask(subtask, trace_id)
                yield _progress(f"Subtask finished: {subtask.name}\nResult: {_preview(results[subtask_id])}")
            self._record(trace_id, EventType.SUBTASKS_COMPLETED, {"results": results})

            self.phase = OrchestraPhase.REPORTING
            yield _progress("Generating the final report...")
            final_result = await self.report(plan, results, trace_id)
        except Exception as exc:
            self._fail_trace(trace_id, exc)
            yield _progress(f"Execution failed: {exc}")
            raise
        except BaseException as exc:
            self._fail_trace(trace_id, exc)
            raise

        self._complete_trace(trace_id, final_result, recorder)
        recorder.output = final_result
        yield _progress(final_result)

    async def plan(self, input: str) -> OrchestraPlan:
        """Ask the planner for a plan; fall back to a single subtask if unparsable."""
        if self._planner is None:
            raise PlanningError(f"Orchestra agent {self.name} has no planner configured")

        self.phase = OrchestraPhase.PLANNING
        prompt = build_planning_prompt(input, self._workers.values())
        planning = await self._planner.run(prompt)
        try:
            plan = parse_plan(planning.output or "", input)
        except PlanParseError as exc:
            LOGGER.error("Could not parse plan from planner reply: %s", exc)
            plan = fallback_plan(input)

        self.last_plan = plan
        LOGGER.info("Planned %d subtasks for %s", len(plan.subtasks), self.name)
        return plan

    async def execute_subtasks(self, plan: OrchestraPlan, trace_id: Optional[str] = None) -> Dict[str, str]:
        """Run subtasks in execution order; a failing subtask aborts the plan."""
        results: Dict[str, str] = {}
        for subtask_id in plan.execution_order:
            subtask = plan.get(subtask_id)
            if subtask is None:
                LOGGER.warning("Execution order names unknown subtask %s", subtask_id)
                continue
            if not self._dependencies_met(plan, subtask, results):
                LOGGER.warning("Dependencies of subtask %s not met, skipping", subtask.name)
                continue
            results[subtask_id] = await self.execute_subtask(subtask, trace_id)
        return results

    async def execute_subtask(self, subtask: Subtask, trace_id: Optional[str] = None) -> str:
        worker = self._workers.get(subtask.assigned_agent)
        if worker is None:
            raise LifecycleError(
                f"Worker {subtask.assigned_agent} is not registered on {self.name}",
                ErrorCode.WORKER_NOT_FOUND,
            )
        agent = await worker.get_or_build(self._factory.create_agent)

        subtask.start()
        LOGGER.info("Running subtask %s on %s", subtask.name, worker.name)
        self._record(trace_id, EventType.SUBTASK_START, {"subtask": subtask, "agent_name": worker.name})
        try:
            recorder = await agent.run(subtask.description)
        except BaseException as exc:
            subtask.fail(str(exc) or type(exc).__name__)
            LOGGER.error("Subtask %s failed: %s", subtask.name, exc)
            if trace_id:
                self.trace_manager.record_error(trace_id, exc, {"subtask": subtask})
            raise

        result = recorder.output or ""
        subtask.complete(result)
        self._record(
            trace_id,
            EventType.SUBTASK_COMPLETE,
            {"subtask": subtask, "agent_name": worker.name, "result": _preview(result)},
        )
        return result

    async def report(
        self,
        plan: OrchestraPlan,
        results: Mapping[str, str],
        trace_id: Optional[str] = None,
    ) -> str:
        """Synthesize the final answer; never fails when falling back to aggregation."""
        report: Optional[str] = None
        if self._reporter is not None:
            try:
                reporting = await self._reporter.run(build_report_prompt(plan, results))
                report = reporting.output
            except Exception as exc:  # noqa: BLE001
                LOGGER.error("Reporter failed, aggregating results instead: %s", exc)
                if trace_id:
                    self.trace_manager.record_error(trace_id, exc, {"phase": "report"})
        if not report:
            report = aggregate_results(plan, results)

        self._record(trace_id, EventType.REPORT_GENERATED, {"report": _preview(report)})
        return report

    async def on_cleanup(self) -> None:
        for worker in self._workers.values():
            if worker.instance is not None:
                await worker.instance.cleanup()
                worker.instance = None
        for helper in (self._planner, self._reporter):
            if helper is not None:
                await helper.cleanup()
        self._planner = None
        self._reporter = None
        self.phase = OrchestraPhase.IDLE

    def info(self) -> Dict[str, Any]:
        details = super().info()
        details.update(
            {
                "worker_count": len(self._workers),
                "workers": list(self._workers),
                "has_planner": self._planner is not None,
                "has_reporter": self._reporter is not None,
                "phase": self.phase.value,
            }
        )
        return details

    def _register_configured_workers(self) -> None:
        for info in self.config.workers_info:
            worker_config = self.config.workers.get(info.name)
            if worker_config is None:
                LOGGER.warning("No configuration for worker %s on %s", info.name, self.name)
                continue
            self.register_worker(WorkerAgent.from_info(info, worker_config))

    @staticmethod
    def _dependencies_met(plan: OrchestraPlan, subtask: Subtask, results: Mapping[str, str]) -> bool:
        for dependency_id in subtask.dependencies:
            dependency = plan.get(dependency_id)
            if dependency_id not in results or dependency is None:
                return False
            if dependency.status is not SubtaskStatus.COMPLETED:
                return False
        return True

    def _start_trace(self, name: str, input: str, recorder: TaskRecorder) -> str:
        self.phase = OrchestraPhase.PLANNING
        trace_id = self.trace_manager.start_trace(
            name,
            {"input": input, "agent_name": self.name, "task_id": recorder.id},
        )
        self.last_trace_id = trace_id
        self.trace_manager.record_agent_start(trace_id, self.name, input)
        return trace_id

    def _complete_trace(self, trace_id: str, final_result: str, recorder: TaskRecorder) -> None:
        duration = (utcnow() - recorder.start_time).total_seconds() * 1000
        self.trace_manager.record_agent_end(trace_id, self.name, final_result, duration)
        self.trace_manager.end_trace(trace_id, TraceStatus.COMPLETED)
        self.phase = OrchestraPhase.COMPLETED

    def _fail_trace(self, trace_id: str, exc: BaseException) -> None:
        self.trace_manager.record_error(trace_id, exc)
        self.trace_manager.end_trace(trace_id, TraceStatus.FAILED)
        self.phase = OrchestraPhase.FAILED

    def _record(self, trace_id: Optional[str], event_type: EventType, data: Dict[str, Any]) -> None:
        if trace_id:
            self.trace_manager.record_event(trace_id, event_type, data)

