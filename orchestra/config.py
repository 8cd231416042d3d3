"""Configuration management for the agent runtime."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from orchestra.core.models import ModelConfig

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


@dataclass(frozen=True)
class Config:
    """Application configuration loaded from environment variables."""

    model: ModelConfig
    trace_dir: Optional[str] = None
    log_level: str = "INFO"
    environment: str = "development"

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables."""
        azure_key = os.getenv("AZURE_OPENAI_KEY")
        azure_endpoint = os.getenv("AZURE_OPENAI_ENDPOINT")
        openai_key = os.getenv("OPENAI_API_KEY")
        max_concurrent = int(os.getenv("ORCHESTRA_MAX_CONCURRENT", "50"))

        if azure_key and azure_endpoint:
            model = ModelConfig(
                provider="azure",
                model=os.getenv("AZURE_OPENAI_DEPLOYMENT", "gpt-4"),
                api_key=azure_key,
                base_url=azure_endpoint,
                api_version=os.getenv("AZURE_OPENAI_API_VERSION", "2024-02-15-preview"),
                max_concurrent=max_concurrent,
            )
        elif openai_key:
            model = ModelConfig(
                provider=os.getenv("ORCHESTRA_PROVIDER", "openai"),
                model=os.getenv("ORCHESTRA_MODEL", "gpt-4o-mini"),
                api_key=openai_key,
                base_url=os.getenv("OPENAI_BASE_URL"),
                temperature=float(os.getenv("ORCHESTRA_TEMPERATURE", "0.7")),
                max_concurrent=max_concurrent,
            )
        else:
            # No credentials: answer offline with the echo client.
            model = ModelConfig(provider="echo", model=os.getenv("ORCHESTRA_MODEL", "echo"))

        return cls(
            model=model,
            trace_dir=os.getenv("ORCHESTRA_TRACE_DIR"),
            log_level=os.getenv("ORCHESTRA_LOG_LEVEL", "INFO").upper(),
            environment=os.getenv("ENVIRONMENT", "development"),
        )


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the root logger."""
    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)


# Global config instance
config = Config.from_env()
