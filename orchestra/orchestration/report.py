"""Deterministic Markdown report used when no reporter agent is available."""
from __future__ import annotations

from typing import List, Mapping

from orchestra.core.models import utcnow
from orchestra.orchestration.plan import OrchestraPlan


def aggregate_results(plan: OrchestraPlan, results: Mapping[str, str]) -> str:
    lines: List[str] = [
        "# Task Execution Report",
        "",
        f"**Original task**: {plan.overall_task}",
        "",
        f"**Generated at**: {utcnow().strftime('%Y-%m-%d %H:%M:%S %Z')}",
        "",
        "## Subtask Results",
        "",
    ]
    for subtask in plan.subtasks:
        lines.append(f"### {subtask.name}")
        lines.append(f"- **Status**: {subtask.status.value}")
        lines.append(f"- **Worker**: {subtask.assigned_agent}")
        result = results.get(subtask.id) or subtask.result
        if result:
            lines.append(f"- **Result**: {result}")
        if subtask.error:
            lines.append(f"- **Error**: {subtask.error}")
        lines.append("")
    return "\n".join(lines)
