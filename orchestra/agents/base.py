"""Base agent definition shared by every agent variant."""
from __future__ import annotations

import abc
import asyncio
import logging
from collections import deque
from contextlib import aclosing
from typing import Any, AsyncIterator, Deque, Dict, List, Optional

from orchestra.core.errors import ErrorCode, LifecycleError
from orchestra.core.events import EventHub
from orchestra.core.models import (
    AgentConfig,
    AgentState,
    Message,
    TaskRecorder,
    new_trace_id,
)
from orchestra.tools.registry import ToolRegistry
from orchestra.tracing.manager import TraceManager

LOGGER = logging.getLogger(__name__)

HISTORY_LIMIT = 50
CANCELLED = "cancelled"


class Agent(abc.ABC):
    """Abstract agent encapsulating the initialize/run/stream/cleanup lifecycle.

    Subclasses supply :meth:`on_initialize`, :meth:`execute`,
    :meth:`execute_stream` and :meth:`on_cleanup`; this class owns state
    transitions, task recorders and lifecycle notifications.
    """

    def __init__(
        self,
        config: AgentConfig,
        *,
        tool_catalog: Optional[ToolRegistry] = None,
        trace_manager: Optional[TraceManager] = None,
    ) -> None:
        self.config = config
        self.tools = ToolRegistry(f"{config.name}.tools")
        self.events = EventHub(config.name)
        self.state = AgentState.UNINITIALIZED
        self.last_recorder: Optional[TaskRecorder] = None
        self._tool_catalog = tool_catalog
        self._trace_manager = trace_manager
        self._history: Deque[TaskRecorder] = deque(maxlen=HISTORY_LIMIT)

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def is_ready(self) -> bool:
        return self.state in (AgentState.READY, AgentState.RUNNING)

    @property
    def history(self) -> List[TaskRecorder]:
        return list(self._history)

    async def initialize(self) -> None:
        """Load allow-listed tools and run the subclass hook; no-op when ready."""
        if self.is_ready:
            return
        if self.state is AgentState.INITIALIZING:
            return

        LOGGER.info("Initializing agent %s", self.name)
        self.state = AgentState.INITIALIZING
        try:
            self._load_tools()
            await self.on_initialize()
        except Exception as exc:  # noqa: BLE001
            self.state = AgentState.UNINITIALIZED
            self.tools.clear_tools()
            LOGGER.error("Agent %s failed to initialize: %s", self.name, exc)
            raise LifecycleError(
                f"Agent {self.name} failed to initialize: {exc}",
                ErrorCode.AGENT_INIT_FAILED,
                exc,
            ) from exc

        self.state = AgentState.READY
        LOGGER.info("Agent %s ready with %d tools", self.name, len(self.tools))
        self.events.emit("initialized")

    async def run(self, input: str, trace_id: Optional[str] = None) -> TaskRecorder:
        """Execute ``input`` and return the finished recorder; re-raise on failure."""
        await self._ensure_ready()
        recorder = self._start_recorder(input, trace_id)
        self.events.emit("task_start", recorder)

        self.state = AgentState.RUNNING
        try:
            output = await self.execute(input, recorder)
        except Exception as exc:
            recorder.mark_failed(str(exc) or type(exc).__name__)
            LOGGER.error("Agent %s task %s failed: %s", self.name, recorder.id, exc)
            self.events.emit("task_failed", recorder)
            raise
        except asyncio.CancelledError:
            recorder.mark_failed(CANCELLED)
            LOGGER.warning("Agent %s task %s was cancelled", self.name, recorder.id)
            self.events.emit("task_failed", recorder)
            raise
        else:
            recorder.mark_completed(output)
            LOGGER.info("Agent %s task %s completed", self.name, recorder.id)
            self.events.emit("task_completed", recorder)
        finally:
            self._finish_run()
        return recorder

    async def run_stream(self, input: str, trace_id: Optional[str] = None) -> AsyncIterator[Message]:
        """Yield each produced message after recording it on the task recorder."""
        await self._ensure_ready()
        recorder = self._start_recorder(input, trace_id)
        self.events.emit("stream_start", recorder)

        self.state = AgentState.RUNNING
        try:
            async with aclosing(self.execute_stream(input, recorder)) as messages:
                async for message in messages:
                    recorder.messages.append(message)
                    self.events.emit("stream_message", message)
                    yield message
        except Exception as exc:
            recorder.mark_failed(str(exc) or type(exc).__name__)
            LOGGER.error("Agent %s stream %s failed: %s", self.name, recorder.id, exc)
            self.events.emit("stream_failed", recorder)
            raise
        except (asyncio.CancelledError, GeneratorExit):
            # Cancelled, or the consumer closed the stream early.
            recorder.mark_failed(CANCELLED)
            LOGGER.warning("Agent %s stream %s was cancelled", self.name, recorder.id)
            self.events.emit("stream_failed", recorder)
            raise
        else:
            if recorder.output is None and recorder.messages:
                output = recorder.messages[-1].content
            else:
                output = recorder.output
            recorder.mark_completed(output)
            LOGGER.info("Agent %s stream %s completed", self.name, recorder.id)
            self.events.emit("stream_completed", recorder)
        finally:
            self._finish_run()

    async def cleanup(self) -> None:
        """Release resources; safe to call repeatedly."""
        if self.state is AgentState.RELEASED:
            return
        LOGGER.info("Cleaning up agent %s", self.name)
        try:
            await self.on_cleanup()
        except Exception:  # noqa: BLE001
            LOGGER.exception("Agent %s cleanup hook failed", self.name)
        self.tools.cleanup()
        self.state = AgentState.RELEASED
        self.events.emit("cleaned_up")

    def info(self) -> Dict[str, Any]:
        return {
            "kind": self.config.kind.value,
            "name": self.name,
            "state": self.state.name,
            "is_ready": self.is_ready,
            "tools": self.tools.tool_names(),
            "runs": len(self._history),
        }

    async def _ensure_ready(self) -> None:
        if not self.is_ready:
            await self.initialize()

    def _start_recorder(self, input: str, trace_id: Optional[str]) -> TaskRecorder:
        recorder = TaskRecorder(id=trace_id or new_trace_id(), input=input)
        recorder.mark_running()
        self.last_recorder = recorder
        self._history.append(recorder)
        LOGGER.info("Agent %s starting task %s", self.name, recorder.id)
        return recorder

    def _finish_run(self) -> None:
        if self.state is AgentState.RUNNING:
            self.state = AgentState.READY

    def _load_tools(self) -> None:
        if not self.config.tools:
            return
        for tool_name in self.config.tools:
            tool = self._tool_catalog.get_tool(tool_name) if self._tool_catalog else None
            if tool is None:
                LOGGER.warning("Agent %s requested unknown tool %s", self.name, tool_name)
                continue
            self.tools.register_tool(tool)

    @abc.abstractmethod
    async def execute(self, input: str, recorder: TaskRecorder) -> str:
        """Produce the final output for ``input``."""

    @abc.abstractmethod
    def execute_stream(self, input: str, recorder: TaskRecorder) -> AsyncIterator[Message]:
        """Produce messages lazily for ``input``."""

    async def on_initialize(self) -> None:
        """Hook executed once before the first run."""
        return None

    async def on_cleanup(self) -> None:
        """Hook executed when the agent is released."""
        return None

