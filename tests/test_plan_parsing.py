"""Tests for the lenient planner-reply parser and the aggregated report."""
from __future__ import annotations

import pytest

from orchestra.orchestration.plan import (
    DEFAULT_WORKER,
    SECONDS_PER_SUBTASK,
    PlanParseError,
    SubtaskStatus,
    fallback_plan,
    parse_plan,
)
from orchestra.orchestration.prompts import build_planning_prompt
from orchestra.orchestration.report import aggregate_results
from orchestra.orchestration.workers import WorkerAgent

from conftest import worker_config


def test_plan_is_extracted_from_surrounding_prose() -> None:
    reply = """Sure! Here is my plan:
    {"subtasks": [
        {"id": "research", "name": "Research", "description": "Collect facts", "assignedAgent": "researcher"},
        {"id": "write", "name": "Write", "description": "Draft text", "assignedAgent": "writer",
         "dependencies": ["research"]}
    ],
     "executionOrder": ["research", "write"]}
    Let me know if you need changes."""

    plan = parse_plan(reply, "Write an article")

    assert plan.overall_task == "Write an article"
    assert [subtask.id for subtask in plan.subtasks] == ["research", "write"]
    assert plan.execution_order == ["research", "write"]
    assert plan.get("write").dependencies == ["research"]
    assert plan.get("write").assigned_agent == "writer"
    assert all(subtask.status is SubtaskStatus.PENDING for subtask in plan.subtasks)
    assert plan.estimated_duration == 2 * SECONDS_PER_SUBTASK
    assert plan.id.startswith("plan_")


def test_missing_fields_get_defaults() -> None:
    plan = parse_plan('{"subtasks": [{"description": "first"}, {"name": "Named", "id": 7}]}', "task")

    first, second = plan.subtasks
    assert first.id == "task_1"
    assert first.name == "Subtask 1"
    assert first.assigned_agent == DEFAULT_WORKER
    assert first.dependencies == []
    assert second.id == "7"
    assert second.name == "Named"
    assert second.description == ""
    # Without an explicit order the subtasks run as listed.
    assert plan.execution_order == ["task_1", "7"]


def test_snake_case_keys_are_accepted() -> None:
    plan = parse_plan(
        '{"subtasks": [{"id": "a", "assigned_agent": "writer"}], "execution_order": ["a"]}',
        "task",
    )

    assert plan.get("a").assigned_agent == "writer"
    assert plan.execution_order == ["a"]


@pytest.mark.parametrize(
    "reply",
    [
        "I could not come up with a plan.",
        "{not json at all}",
        '{"steps": []}',
        "",
    ],
)
def test_unusable_replies_raise(reply: str) -> None:
    with pytest.raises(PlanParseError):
        parse_plan(reply, "task")


def test_fallback_plan_hands_everything_to_default_worker() -> None:
    plan = fallback_plan("Do the thing")

    assert len(plan.subtasks) == 1
    subtask = plan.subtasks[0]
    assert subtask.id == "task_1"
    assert subtask.description == "Do the thing"
    assert subtask.assigned_agent == DEFAULT_WORKER
    assert plan.execution_order == ["task_1"]


def test_echoed_planning_prompt_is_not_a_plan() -> None:
    """Offline models repeat the prompt; its format example must not parse."""
    worker = WorkerAgent(name="writer", description="Writes", config=worker_config("writer_agent"))
    prompt = build_planning_prompt("Write an article", [worker])

    assert "- writer: Writes" in prompt
    with pytest.raises(PlanParseError):
        parse_plan(f"Mock response: I received '{prompt}'", "Write an article")


def test_aggregate_report_lists_every_subtask() -> None:
    plan = parse_plan(
        '{"subtasks": [{"id": "a", "name": "Alpha"}, {"id": "b", "name": "Beta", "dependencies": ["a"]}]}',
        "Overall goal",
    )
    alpha, beta = plan.subtasks
    alpha.start()
    alpha.fail("worker crashed")

    report = aggregate_results(plan, {})

    assert report.startswith("# Task Execution Report")
    assert "**Original task**: Overall goal" in report
    assert "### Alpha" in report
    assert "- **Status**: failed" in report
    assert "- **Error**: worker crashed" in report
    assert "### Beta" in report
    assert "- **Status**: pending" in report
