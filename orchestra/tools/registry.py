"""Registry of named, schema-validated tools and the invocation protocol."""
from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Type

from pydantic import BaseModel, ValidationError

from orchestra.core.errors import ErrorCode, ToolError
from orchestra.core.events import EventHub

LOGGER = logging.getLogger(__name__)

ToolHandler = Callable[[BaseModel], Awaitable[Any]]


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    """A named capability: description, parameter model and async handler."""

    name: str
    description: str
    parameters: Type[BaseModel]
    handler: ToolHandler

    def json_schema(self) -> Dict[str, Any]:
        return self.parameters.model_json_schema()


@dataclass(slots=True)
class ToolInvocation:
    """One entry of a batch call."""

    name: str
    args: Mapping[str, Any] = field(default_factory=dict)


def _validation_details(exc: ValidationError) -> List[Dict[str, Any]]:
    return [
        {
            "field": ".".join(str(part) for part in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]


def format_tool_failure(exc: BaseException) -> str:
    return f"Error: {exc}"


class ToolRegistry:
    """Holds tool definitions and invokes them with per-call isolation."""

    def __init__(self, name: str = "tools") -> None:
        self._tools: Dict[str, ToolDefinition] = {}
        self.events = EventHub(name)

    def register_tool(self, tool: ToolDefinition) -> None:
        if tool.name in self._tools:
            LOGGER.warning("Tool %s already registered, replacing it", tool.name)
        self._tools[tool.name] = tool
        LOGGER.info("Registered tool %s", tool.name)
        self.events.emit("tool_registered", tool)

    def register_tools(self, tools: Iterable[ToolDefinition]) -> None:
        for tool in tools:
            self.register_tool(tool)

    def get_tool(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def tool_names(self) -> List[str]:
        return list(self._tools)

    def list_tools(self) -> List[ToolDefinition]:
        return list(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    async def call_tool(self, name: str, args: Optional[Mapping[str, Any]] = None) -> Any:
        """Validate ``args`` and invoke the named tool.

        Every failure surfaces as a :class:`ToolError`: an unknown name, a
        payload rejected by the tool's parameter model (``details`` then lists
        the offending fields) or an exception raised by the handler.
        """
        tool = self._tools.get(name)
        if tool is None:
            raise ToolError(f"Tool {name} does not exist", name, ErrorCode.TOOL_NOT_FOUND)

        if args is not None and not isinstance(args, Mapping):
            LOGGER.warning("Tool %s received %s arguments instead of an object", name, type(args).__name__)
            self.events.emit("tool_call_failed", {"name": name, "args": args, "error": "arguments must be an object"})
            raise ToolError(
                f"Tool {name} argument validation failed: arguments must be an object",
                name,
                ErrorCode.TOOL_VALIDATION_FAILED,
                [{"field": "", "message": "Input should be an object", "type": "dict_type"}],
            )

        payload = dict(args or {})
        LOGGER.info("Calling tool %s", name)
        self.events.emit("tool_call_start", {"name": name, "args": payload})

        try:
            validated = tool.parameters.model_validate(payload)
        except ValidationError as exc:
            details = _validation_details(exc)
            fields = ", ".join(f"{item['field']}: {item['message']}" for item in details)
            LOGGER.warning("Tool %s rejected arguments: %s", name, fields)
            self.events.emit("tool_call_failed", {"name": name, "args": payload, "error": str(exc)})
            raise ToolError(
                f"Tool {name} argument validation failed: {fields}",
                name,
                ErrorCode.TOOL_VALIDATION_FAILED,
                details,
            ) from exc

        started = time.perf_counter()
        try:
            result = tool.handler(validated)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:  # noqa: BLE001
            LOGGER.error("Tool %s failed: %s", name, exc)
            self.events.emit("tool_call_failed", {"name": name, "args": payload, "error": str(exc)})
            raise ToolError(
                f"Tool {name} execution failed: {exc}",
                name,
                ErrorCode.TOOL_EXECUTION_FAILED,
                exc,
            ) from exc
        duration = (time.perf_counter() - started) * 1000

        LOGGER.info("Tool %s finished in %.1fms", name, duration)
        self.events.emit(
            "tool_call_completed",
            {"name": name, "args": payload, "result": result, "duration": duration},
        )
        return result

    async def call_tools(self, calls: Sequence[ToolInvocation]) -> List[Any]:
        """Run calls one after another; a failure becomes an error string in its slot."""
        results: List[Any] = []
        for call in calls:
            try:
                results.append(await self.call_tool(call.name, call.args))
            except ToolError as exc:
                LOGGER.error("Batch call to %s failed: %s", call.name, exc)
                results.append(format_tool_failure(exc))
        return results

    async def call_tools_parallel(self, calls: Sequence[ToolInvocation]) -> List[Any]:
        """Run calls concurrently; each failure is isolated to its own slot."""

        async def isolated(call: ToolInvocation) -> Any:
            try:
                return await self.call_tool(call.name, call.args)
            except ToolError as exc:
                return format_tool_failure(exc)

        return list(await asyncio.gather(*(isolated(call) for call in calls)))

    def tool_schemas(self) -> List[Dict[str, Any]]:
        return [
            {"name": tool.name, "description": tool.description, "parameters": tool.json_schema()}
            for tool in self._tools.values()
        ]

    def openai_tools(self) -> List[Dict[str, Any]]:
        """Tool definitions in the function-calling format used by chat models."""
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.json_schema(),
                },
            }
            for tool in self._tools.values()
        ]

    def remove_tool(self, name: str) -> bool:
        removed = self._tools.pop(name, None) is not None
        if removed:
            LOGGER.info("Removed tool %s", name)
            self.events.emit("tool_removed", name)
        return removed

    def clear_tools(self) -> None:
        self._tools.clear()
        LOGGER.info("Cleared all tools")
        self.events.emit("tools_cleared")

    def cleanup(self) -> None:
        self.clear_tools()
        self.events.clear()
