"""
Shared fixtures: offline scripted providers and isolated settings.
"""

import asyncio
import json
from typing import Any, Callable

import pytest

from slidegen.config import Settings
from slidegen.providers.base import BaseLLMProvider, CompletionRequest


class ScriptedProvider(BaseLLMProvider):
    """Provider double that replays scripted responses or delegates to a handler.

    A response may be a dict (serialised to JSON), a raw string, or an
    exception instance (raised). The last scripted response repeats.
    """

    name = "scripted"

    def __init__(
        self,
        responses: list[Any] | None = None,
        *,
        handler: Callable[[CompletionRequest], Any] | None = None,
        delay: float = 0.0,
        name: str | None = None,
        default_model: str = "primary-model",
        fallback_model: str | None = "fallback-model",
    ):
        if name:
            self.name = name
        self.default_model = default_model
        self.fallback_model = fallback_model
        self.responses = list(responses or [])
        self.handler = handler
        self.delay = delay
        self.calls: list[CompletionRequest] = []
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def models_called(self) -> list[str]:
        return [row.model for row in self.calls]

    @property
    def labels(self) -> list[str]:
        return [row.label for row in self.calls]

    async def complete(self, request: CompletionRequest) -> str:
        self.calls.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.handler is not None:
                result = self.handler(request)
            elif len(self.responses) > 1:
                result = self.responses.pop(0)
            else:
                result = self.responses[0]
            if isinstance(result, BaseException):
                raise result
            if isinstance(result, (dict, list)):
                return json.dumps(result)
            return result
        finally:
            self.in_flight -= 1


def user_text(request: CompletionRequest) -> str:
    return next(row["content"] for row in reversed(request.messages) if row["role"] == "user")


def brief_of(request: CompletionRequest) -> str:
    for line in user_text(request).splitlines():
        if line.startswith("BRIEF: "):
            return line[len("BRIEF: ") :]
    return ""


def previous_of(request: CompletionRequest) -> dict[str, Any]:
    """The prior stage's slide, carried as the assistant turn."""
    for row in request.messages:
        if row["role"] == "assistant":
            return json.loads(row["content"])
    return {}


def stage_of(request: CompletionRequest) -> str:
    return request.label.split("#", 1)[0]


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        default_llm_provider="mock",
        secondary_providers=[],
        ai_max_retries=3,
        ai_retry_delay_seconds=0.4,
        ai_max_backoff_seconds=8.0,
        ai_timeout_seconds=2.0,
        batch_concurrency=2,
        enable_content_analysis=False,
    )


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps: list[float]):
    async def _sleep(delay: float) -> None:
        sleeps.append(delay)

    return _sleep


@pytest.fixture
def valid_spec_payload() -> dict[str, Any]:
    return {
        "title": "Q4 Revenue Grew 34% Year Over Year",
        "layout": "title-bullets",
        "bullets": [
            "Enterprise deals drove most of the growth",
            "Churn fell to its lowest level in two years",
            "Gross margin held steady at 71%",
        ],
        "notes": "Open with the headline number, then walk through the drivers.",
        "sources": ["Finance close report, January"],
        "design": {"theme": "corporate", "accentColor": "#1A73E8", "imageStyle": "photo"},
    }
