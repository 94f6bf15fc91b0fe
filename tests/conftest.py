from __future__ import annotations

import json
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

from plan_assistant.api.plans.plans_controller import get_plan_service
from plan_assistant.api.plans.plans_service import PlanService
from plan_assistant.config import get_settings, load_settings
from plan_assistant.generate.seed import MOCK
from plan_assistant.main import app

ENV_KEYS = [
    "OPENAI_TEMPERATURE",
    "OPENAI_TIMEOUT_SECONDS",
    "OPENAI_MAX_RETRIES",
    "MAX_PHASES",
    "MAX_TASKS_PER_PHASE",
    "GENERATE_RATE_LIMIT_MAX",
    "GENERATE_RATE_LIMIT_WINDOW_MS",
    "EXPLAIN_RATE_LIMIT_MAX",
    "EXPLAIN_RATE_LIMIT_WINDOW_MS",
    "RATE_LIMIT_CLEANUP_INTERVAL_MS",
    "EXPLAIN_COOLDOWN_MS",
    "APP_ENV",
    "DEVMODE",
]


@pytest.fixture(autouse=True)
def _env_isolation(monkeypatch):
    """Known-good upstream config; no real key, no .env leakage."""
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("OPENAI_MODEL", "gpt-4o-mini")
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
    get_plan_service.cache_clear()
    yield
    get_settings.cache_clear()
    get_plan_service.cache_clear()
    app.dependency_overrides.clear()


class FakeTextStream:
    def __init__(self, chunks: List[str], fail_after: Optional[int] = None):
        self.chunks = chunks
        self.fail_after = fail_after
        self.closed = False
        self.yielded = 0

    async def __aiter__(self):
        for i, chunk in enumerate(self.chunks):
            if self.fail_after is not None and i >= self.fail_after:
                raise RuntimeError("upstream stream broke")
            self.yielded += 1
            yield chunk

    async def aclose(self):
        self.closed = True


class FakeLLM:
    """Stands in for the upstream model; records every prompt it gets."""

    def __init__(self, text: str = MOCK, chunks: Optional[List[str]] = None):
        self.text = text
        self.chunks = chunks if chunks is not None else ["Hello ", "**world**", "!"]
        self.error: Optional[Exception] = None
        self.stream_fail_after: Optional[int] = None
        self.prompts: List[str] = []
        self.streams: List[FakeTextStream] = []

    async def complete(self, prompt: str, log_prefix: str = "") -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.text

    async def open_stream(self, prompt: str, log_prefix: str = "") -> FakeTextStream:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        stream = FakeTextStream(self.chunks, self.stream_fail_after)
        self.streams.append(stream)
        return stream


@pytest.fixture
def settings():
    return load_settings()


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def plan_service(settings, fake_llm):
    return PlanService(settings, fake_llm)


@pytest.fixture
def api(plan_service):
    app.dependency_overrides[get_plan_service] = lambda: plan_service
    with TestClient(app) as client:
        yield client


@pytest.fixture
def example_payload():
    return {
        "projectGoal": "Build a Flutter expense app",
        "experienceLevel": "beginner",
        "timeAvailability": "3-5",
    }


@pytest.fixture
def example_plan_json():
    return json.loads(MOCK)
