"""Exception taxonomy shared by agents, tools and the orchestration engine."""
from __future__ import annotations

from typing import Any, Optional


class ErrorCode:
    """Machine-readable error codes carried by framework exceptions."""

    AGENT_INIT_FAILED = "AGENT_INIT_FAILED"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    LLM_CALL_FAILED = "LLM_CALL_FAILED"
    MAX_TURNS_EXCEEDED = "MAX_TURNS_EXCEEDED"
    UNKNOWN_AGENT_KIND = "UNKNOWN_AGENT_KIND"
    AGENT_CREATION_FAILED = "AGENT_CREATION_FAILED"
    WORKER_NOT_FOUND = "WORKER_NOT_FOUND"
    TOOL_NOT_FOUND = "TOOL_NOT_FOUND"
    TOOL_VALIDATION_FAILED = "TOOL_VALIDATION_FAILED"
    TOOL_EXECUTION_FAILED = "TOOL_EXECUTION_FAILED"
    PLANNER_NOT_CONFIGURED = "PLANNER_NOT_CONFIGURED"
    ASSIGNMENT_FAILED = "ASSIGNMENT_FAILED"


class OrchestraError(Exception):
    """Base class for every error raised by the framework."""


class LifecycleError(OrchestraError):
    """Raised when an agent fails to initialise, execute or change state."""

    def __init__(self, message: str, code: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.code = code
        self.cause = cause


class ToolError(OrchestraError):
    """Raised at the tool registry boundary; names the offending tool."""

    def __init__(
        self,
        message: str,
        tool_name: str,
        code: Optional[str] = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.tool_name = tool_name
        self.code = code
        self.details = details


class PlanningError(OrchestraError):
    """Raised when an orchestration run has no planner to consult."""

    code = ErrorCode.PLANNER_NOT_CONFIGURED
