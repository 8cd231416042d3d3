"""LLM-powered agent that answers a task, calling its tools when asked to."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, AsyncIterator, List, Optional

from orchestra.agents.base import Agent
from orchestra.core.errors import ErrorCode, LifecycleError
from orchestra.core.models import Message, Role, TaskRecorder
from orchestra.services.llm import ModelResponse
from orchestra.services.llm_pool import LLMPool
from orchestra.tools.registry import ToolInvocation

if TYPE_CHECKING:
    from orchestra.core.models import AgentConfig
    from orchestra.tools.registry import ToolRegistry
    from orchestra.tracing.manager import TraceManager

LOGGER = logging.getLogger(__name__)


class SimpleAgent(Agent):
    """Agent that loops model call -> tool calls until the model answers in text."""

    def __init__(
        self,
        config: AgentConfig,
        *,
        llm_pool: Optional[LLMPool] = None,
        tool_catalog: Optional[ToolRegistry] = None,
        trace_manager: Optional[TraceManager] = None,
    ) -> None:
        super().__init__(config, tool_catalog=tool_catalog, trace_manager=trace_manager)
        self._llm_pool = llm_pool or LLMPool()

    async def on_initialize(self) -> None:
        LOGGER.info("Agent %s using %s model %s", self.name, self.config.model.provider, self.config.model.model)

    async def execute(self, input: str, recorder: TaskRecorder) -> str:
        conversation = self._opening_messages(input)
        recorder.messages.extend(conversation)

        for turn in range(1, self.config.max_turns + 1):
            response = await self._invoke(conversation)
            reply = Message(role=Role.ASSISTANT, content=response.content, tool_calls=response.tool_calls)
            conversation.append(reply)
            recorder.messages.append(reply)

            if not response.tool_calls:
                return response.content

            LOGGER.info("Agent %s turn %d requested %d tool calls", self.name, turn, len(response.tool_calls))
            results = await self.tools.call_tools_parallel(
                [ToolInvocation(call.name, call.arguments) for call in response.tool_calls]
            )
            for call, result in zip(response.tool_calls, results):
                call.result = result
                recorder.tool_calls.append(call)
                if self._trace_manager and self._trace_manager.get_trace(recorder.id):
                    self._trace_manager.record_tool_call(
                        recorder.id, call.name, call.arguments, result, agent_name=self.name
                    )
                observation = Message(role=Role.TOOL, content=str(result), tool_call_id=call.id)
                conversation.append(observation)
                recorder.messages.append(observation)

        raise LifecycleError(
            f"Agent {self.name} gave no final answer within {self.config.max_turns} turns",
            ErrorCode.MAX_TURNS_EXCEEDED,
        )

    async def execute_stream(self, input: str, recorder: TaskRecorder) -> AsyncIterator[Message]:
        conversation = self._opening_messages(input)
        recorder.messages.extend(conversation)
        chunks: List[str] = []
        try:
            async with self._llm_pool.acquire(self.config.model) as client:
                async for chunk in client.stream(conversation):
                    chunks.append(chunk)
                    yield Message(role=Role.ASSISTANT, content=chunk)
        except Exception as exc:  # noqa: BLE001
            raise LifecycleError(
                f"Model call failed for {self.name}: {exc}",
                ErrorCode.LLM_CALL_FAILED,
                exc,
            ) from exc
        recorder.output = "".join(chunks)

    async def _invoke(self, conversation: List[Message]) -> ModelResponse:
        tools = self.tools.openai_tools() or None
        try:
            async with self._llm_pool.acquire(self.config.model) as client:
                response = await client.invoke(conversation, tools=tools)
        except Exception as exc:  # noqa: BLE001
            LOGGER.error("Model call failed for %s: %s", self.name, exc)
            raise LifecycleError(
                f"Model call failed for {self.name}: {exc}",
                ErrorCode.LLM_CALL_FAILED,
                exc,
            ) from exc
        if response.usage:
            LOGGER.debug("Agent %s token usage: %s", self.name, response.usage)
        return response

    def _opening_messages(self, input: str) -> List[Message]:
        messages: List[Message] = []
        if self.config.instructions:
            messages.append(Message(role=Role.SYSTEM, content=self.config.instructions))
        messages.append(Message(role=Role.USER, content=input))
        return messages
