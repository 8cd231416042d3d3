"""Prompt templates used by the planner and reporter sub-agents."""
from __future__ import annotations

import json
from typing import Iterable, Mapping

from orchestra.orchestration.plan import OrchestraPlan
from orchestra.orchestration.workers import WorkerAgent

PLANNER_INSTRUCTIONS = """You are a task planning expert who breaks complex tasks into executable subtasks.
Your responsibilities:
1. Analyse the task the user gives you
2. Identify its key components
3. Split it into logically clear subtasks
4. Assign every subtask to the most suitable worker agent
5. Work out the dependencies and the order of execution

Always think in a structured way and make sure the decomposition is complete and executable."""

REPORTER_INSTRUCTIONS = """You are a reporting expert who turns task execution results into clear, complete reports.
Your responsibilities:
1. Analyse the execution process and its results
2. Identify the key outcomes and problems
3. Produce a structured execution report
4. Offer a useful summary and recommendations

Keep the report accurate, complete and easy to read."""

_PLAN_FORMAT = """{
  "subtasks": [
    {
      "id": "task_1",
      "name": "Subtask name",
      "description": "Detailed description",
      "assignedAgent": "worker name",
      "dependencies": []
    },
    ...
  ],
  "executionOrder": ["task_1", "task_2"]
}"""


def build_planning_prompt(task: str, workers: Iterable[WorkerAgent]) -> str:
    worker_lines = "\n".join(
        f"- {worker.name}: {worker.description} (strengths: {', '.join(worker.strengths)})"
        for worker in workers
    )
    return f"""Analyse the following task and split it into subtasks.

**Task**: {task}

**Available workers**:
{worker_lines or "- default: general purpose worker"}

Return the decomposition as JSON in exactly this format:
{_PLAN_FORMAT}

Requirements:
1. Assign every subtask to the most suitable worker
2. Take the dependencies between subtasks into account
3. Keep the decomposition complete and logical
4. Use between 3 and 8 subtasks"""


def build_report_prompt(plan: OrchestraPlan, results: Mapping[str, str]) -> str:
    summary = [
        {
            "name": subtask.name,
            "status": subtask.status.value,
            "result": results.get(subtask.id) or subtask.result or "",
            "error": subtask.error,
        }
        for subtask in plan.subtasks
    ]
    return f"""Write the final execution report based on the following information.

**Original task**: {plan.overall_task}

**Subtask results**:
{json.dumps(summary, indent=2, ensure_ascii=False)}

The report should be well structured and complete, covering:
1. Task overview
2. Summary of the execution
3. Main outcomes
4. Problems met and how they were handled
5. Conclusions and recommendations"""
