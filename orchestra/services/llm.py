"""Model clients implementing the invoke/stream capability agents depend on."""
from __future__ import annotations

import abc
import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from orchestra.core.models import Message, ModelConfig, Role, ToolCall

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ModelResponse:
    content: str
    tool_calls: List[ToolCall] = field(default_factory=list)
    usage: Optional[Dict[str, int]] = None


class ModelClient(abc.ABC):
    """A language model reachable through ``invoke`` and ``stream``."""

    @abc.abstractmethod
    async def invoke(
        self,
        messages: Sequence[Message],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> ModelResponse:
        """Return the model's reply to ``messages``."""

    @abc.abstractmethod
    def stream(self, messages: Sequence[Message]) -> AsyncIterator[str]:
        """Yield the model's reply as text chunks."""


def to_openai_message(message: Message) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"role": message.role.value, "content": message.content}
    if message.tool_calls:
        payload["tool_calls"] = [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
            }
            for call in message.tool_calls
        ]
    if message.tool_call_id:
        payload["tool_call_id"] = message.tool_call_id
    return payload


def _parse_arguments(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        LOGGER.warning("Model produced malformed tool arguments: %s", raw)
        return {}
    return parsed if isinstance(parsed, dict) else {}


class OpenAIModelClient(ModelClient):
    """Chat-completions client for OpenAI and OpenAI-compatible endpoints."""

    def __init__(self, config: ModelConfig) -> None:
        self.config = config
        if config.provider == "azure":
            from openai import AsyncAzureOpenAI

            self._client = AsyncAzureOpenAI(
                api_key=config.api_key,
                api_version=config.api_version or "2024-02-15-preview",
                azure_endpoint=config.base_url or "",
                timeout=config.timeout,
            )
        else:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(
                api_key=config.api_key,
                base_url=config.base_url,
                timeout=config.timeout,
            )

    async def invoke(
        self,
        messages: Sequence[Message],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> ModelResponse:
        kwargs: Dict[str, Any] = {}
        if tools:
            kwargs["tools"] = tools
        response = await self._client.chat.completions.create(
            model=self.config.model,
            messages=[to_openai_message(message) for message in messages],
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            **kwargs,
        )
        choice = response.choices[0].message
        tool_calls = [
            ToolCall(
                id=call.id,
                name=call.function.name,
                arguments=_parse_arguments(call.function.arguments),
            )
            for call in (choice.tool_calls or [])
        ]
        usage = None
        if response.usage is not None:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }
        return ModelResponse(content=choice.content or "", tool_calls=tool_calls, usage=usage)

    async def stream(self, messages: Sequence[Message]) -> AsyncIterator[str]:
        response = await self._client.chat.completions.create(
            model=self.config.model,
            messages=[to_openai_message(message) for message in messages],
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            stream=True,
        )
        async for chunk in response:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta.content
            if delta:
                yield delta


class EchoModelClient(ModelClient):
    """Offline client that answers with the last user message."""

    def __init__(self, model_name: str = "echo", latency: float = 0.0) -> None:
        self.model_name = model_name
        self.latency = latency

    def _reply(self, messages: Sequence[Message]) -> str:
        user_message = next(
            (message.content for message in reversed(messages) if message.role is Role.USER),
            "",
        )
        return f"Mock response from {self.model_name}: I received '{user_message}'"

    async def invoke(
        self,
        messages: Sequence[Message],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> ModelResponse:
        await asyncio.sleep(self.latency)
        return ModelResponse(content=self._reply(messages))

    async def stream(self, messages: Sequence[Message]) -> AsyncIterator[str]:
        for word in self._reply(messages).split(" "):
            await asyncio.sleep(self.latency)
            yield word + " "
