"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment defaults are set here, before anything imports settings, so no
test depends on a developer's local .env file.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"

# Set default env vars that all tests might need
os.environ.setdefault("LLM_PROVIDER", "openai")
os.environ.setdefault("LLM_MODEL", "gpt-4o")
os.environ.setdefault("LLM_API_KEY", "test-key-123")
os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-api-key-123,test-api-key-456")
os.environ.setdefault("DB_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from typing import Any

import pytest

from app.adapters.llm.base import AbstractLLMClient


class FakeClock:
    """Deterministic, manually advanced time source."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


class FakeLLMClient(AbstractLLMClient):
    """LLM client returning a canned zine and counting calls."""

    def __init__(self, payload: dict[str, Any] | None = None) -> None:
        self.payload = payload if payload is not None else sample_zine_payload()
        self.calls: list[dict[str, Any]] = []

    async def generate_json(self, prompt: str, *, system_prompt: str | None = None, **kwargs: Any) -> dict[str, Any]:
        self.calls.append({"prompt": prompt, "system_prompt": system_prompt, **kwargs})
        return self.payload


def sample_zine_payload() -> dict[str, Any]:
    return {
        "sections": [
            {"type": "banner", "content": "BEES RULE THE CITY"},
            {"type": "subheading", "content": "Rooftops are the new meadows."},
            {"type": "intro", "content": "Urban hives are everywhere."},
            {"type": "mainArticle", "content": "Paragraph one.\n\nParagraph two."},
            {"type": "opinion", "content": "Every roof should hum."},
            {"type": "funFacts", "content": ["Bees dance.", "Honey never spoils."]},
            {"type": "conclusion", "content": "Go find a hive."},
        ]
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_llm() -> FakeLLMClient:
    return FakeLLMClient()
