"""LLM client pool for shared model access with concurrency control."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Dict, Tuple

from orchestra.core.models import ModelConfig
from orchestra.services.llm import EchoModelClient, ModelClient, OpenAIModelClient

LOGGER = logging.getLogger(__name__)

ClientBuilder = Callable[[ModelConfig], ModelClient]

_PoolKey = Tuple[str, str, str]


def _default_builders() -> Dict[str, ClientBuilder]:
    return {
        "openai": OpenAIModelClient,
        "azure": OpenAIModelClient,
        "deepseek": OpenAIModelClient,
        "custom": OpenAIModelClient,
        "local": OpenAIModelClient,
        "echo": lambda config: EchoModelClient(config.model),
    }


class LLMPool:
    """Manages shared model clients with per-model concurrency limiting."""

    def __init__(self) -> None:
        self._builders: Dict[str, ClientBuilder] = _default_builders()
        self._clients: Dict[_PoolKey, ModelClient] = {}
        self._semaphores: Dict[_PoolKey, asyncio.Semaphore] = {}

    def register_provider(self, provider: str, builder: ClientBuilder) -> None:
        """Teach the pool how to build clients for ``provider``."""
        self._builders[provider] = builder

    def register_client(self, config: ModelConfig, client: ModelClient) -> None:
        """Pin an already-built client for ``config``."""
        key = self._key(config)
        self._clients[key] = client
        self._semaphores[key] = asyncio.Semaphore(config.max_concurrent)

    @asynccontextmanager
    async def acquire(self, config: ModelConfig) -> AsyncIterator[ModelClient]:
        """Acquire access to a model client with concurrency control."""
        key = self._key(config)
        if key not in self._semaphores:
            self._semaphores[key] = asyncio.Semaphore(config.max_concurrent)

        semaphore = self._semaphores[key]
        await semaphore.acquire()
        try:
            # Lazy initialization on first use
            if key not in self._clients:
                self._clients[key] = self._build(config)
            yield self._clients[key]
        finally:
            semaphore.release()

    def _build(self, config: ModelConfig) -> ModelClient:
        builder = self._builders.get(config.provider)
        if builder is None:
            raise KeyError(f"Provider '{config.provider}' not registered in LLM pool")
        LOGGER.info("Creating %s client for model %s", config.provider, config.model)
        return builder(config)

    @staticmethod
    def _key(config: ModelConfig) -> _PoolKey:
        return (config.provider, config.model, config.base_url or "")
