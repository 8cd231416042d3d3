"""Extract tagged sections from the free-text replies of the workforce roles."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional

from orchestra.workforce.workspace import WorkforceTaskStatus

LOGGER = logging.getLogger(__name__)

PLAN_CHOICES = ("continue", "update", "stop")


class AssignmentParseError(ValueError):
    """Raised when an assigner reply names no agent or no task description."""


@dataclass(frozen=True, slots=True)
class Assignment:
    agent: str
    description: str


@dataclass(frozen=True, slots=True)
class PlanDecision:
    choice: str
    updated_plan: Optional[List[str]] = None


def _tag(name: str, text: str) -> Optional[str]:
    match = re.search(rf"<{name}>(.*?)</{name}>", text, re.DOTALL)
    return match.group(1).strip() if match else None


def parse_tasks(text: str) -> List[str]:
    tasks = [task.strip() for task in re.findall(r"<task>(.*?)</task>", text, re.DOTALL)]
    return [task for task in tasks if task]


def parse_task_status(text: str) -> WorkforceTaskStatus:
    """Read the planner verdict; anything unclear counts as partial success."""
    verdict = (_tag("task_status", text) or "").lower()
    if "partial" in verdict:
        return WorkforceTaskStatus.PARTIAL_SUCCESS
    if verdict == "success":
        return WorkforceTaskStatus.SUCCESS
    if verdict == "failed":
        return WorkforceTaskStatus.FAILED
    LOGGER.warning("Unexpected task status %r, assuming partial success", verdict)
    return WorkforceTaskStatus.PARTIAL_SUCCESS


def parse_plan_decision(text: str) -> PlanDecision:
    choice = (_tag("choice", text) or "").lower()
    if choice not in PLAN_CHOICES:
        LOGGER.warning("Unexpected plan choice %r, continuing", choice)
        return PlanDecision("continue")
    if choice != "update":
        return PlanDecision(choice)

    updated = parse_tasks(_tag("updated_unfinished_task_plan", text) or "")
    if not updated:
        LOGGER.warning("Update requested without any replacement tasks")
        return PlanDecision(choice)
    return PlanDecision(choice, updated)


def parse_assignment(text: str) -> Assignment:
    agent = _tag("selected_agent", text)
    description = _tag("detailed_task_description", text)
    if not agent or not description:
        raise AssignmentParseError(f"No agent assignment found in reply: {text[:200]}")
    return Assignment(agent, description)


def parse_task_check(text: str) -> bool:
    return (_tag("task_check", text) or "").lower() == "yes"


def parse_final_answer(text: str) -> str:
    answer = _tag("answer", text)
    if answer is None:
        LOGGER.warning("No answer tag in reply, using it verbatim")
        return text.strip()
    return answer
