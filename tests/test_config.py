"""Tests for environment-driven configuration."""
from __future__ import annotations

import pytest

from orchestra.config import Config

_VARIABLES = (
    "AZURE_OPENAI_KEY",
    "AZURE_OPENAI_ENDPOINT",
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "ORCHESTRA_PROVIDER",
    "ORCHESTRA_MODEL",
    "ORCHESTRA_TRACE_DIR",
    "ORCHESTRA_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _VARIABLES:
        monkeypatch.delenv(name, raising=False)


def test_without_credentials_the_echo_model_is_used() -> None:
    loaded = Config.from_env()

    assert loaded.model.provider == "echo"
    assert loaded.trace_dir is None
    assert loaded.log_level == "INFO"


def test_openai_compatible_provider(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("ORCHESTRA_PROVIDER", "deepseek")
    monkeypatch.setenv("ORCHESTRA_MODEL", "deepseek-chat")
    monkeypatch.setenv("OPENAI_BASE_URL", "https://api.deepseek.com")
    monkeypatch.setenv("ORCHESTRA_LOG_LEVEL", "debug")

    loaded = Config.from_env()

    assert loaded.model.provider == "deepseek"
    assert loaded.model.model == "deepseek-chat"
    assert loaded.model.api_key == "sk-test"
    assert loaded.model.base_url == "https://api.deepseek.com"
    assert loaded.log_level == "DEBUG"


def test_azure_takes_precedence(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("AZURE_OPENAI_KEY", "azure-key")
    monkeypatch.setenv("AZURE_OPENAI_ENDPOINT", "https://example.openai.azure.com")
    monkeypatch.setenv("ORCHESTRA_TRACE_DIR", "/tmp/traces")

    loaded = Config.from_env()

    assert loaded.model.provider == "azure"
    assert loaded.model.base_url == "https://example.openai.azure.com"
    assert loaded.trace_dir == "/tmp/traces"
