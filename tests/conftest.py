"""
Shared fixtures: fast settings and fake provider adapters.
"""

import asyncio
from typing import Any

import pytest

from voicenotes.config import Settings
from voicenotes.models.schemas import (
    ContentResult,
    ContentSummary,
    TokenUsage,
    TranscriptionResult,
)
from voicenotes.services.ai_clients import ChatUsage
from voicenotes.services.pipeline import (
    HealthMonitor,
    JobStore,
    PipelineManager,
    ResultCache,
)
from voicenotes.services.providers import ProviderAdapter


class FakeAdapter(ProviderAdapter):
    """
    Scripted provider.

    Each call consumes the next item of ``script``; the last item repeats.
    Exceptions are raised, anything else is returned.
    """

    def __init__(
        self,
        name: str,
        script: list[Any],
        delay: float = 0.0,
        healthy: bool = True,
    ):
        super().__init__(name)
        self.script = list(script)
        self.delay = delay
        self.healthy = healthy
        self.calls: list[Any] = []
        self.closed = False

    async def _invoke(self, payload: Any, options: dict[str, Any]) -> Any:
        self.calls.append(payload)
        if self.delay:
            await asyncio.sleep(self.delay)
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, BaseException):
            raise item
        return item

    async def probe(self) -> bool:
        return self.healthy

    async def close(self) -> None:
        self.closed = True


class FakeChatClient:
    """Chat client returning canned responses keyed by prompt type."""

    def __init__(self, summary: str, insights: str, usage: ChatUsage | None = None):
        self.responses = {"summary": summary, "insights": insights}
        self.usage = usage or ChatUsage(input_tokens=100, output_tokens=50)
        self.requests: list[dict] = []

    async def chat(self, messages, model=None, temperature=0.7, num_predict=None):
        self.requests.append(
            {"messages": messages, "model": model, "temperature": temperature, "num_predict": num_predict}
        )
        system = messages[0]["content"].lower()
        key = "insights" if "insight" in system else "summary"
        return self.responses[key], self.usage

    async def check_health(self) -> bool:
        return True

    async def close(self) -> None:
        pass


def transcription_result(text: str = "hello world", confidence: float = 0.95, provider: str = "fake") -> TranscriptionResult:
    return TranscriptionResult(text=text, confidence=confidence, provider=provider)


def content_result(model: str = "tier-1", summary: str = "Meeting notes summary.") -> ContentResult:
    return ContentResult(
        summary=ContentSummary(summary=summary, key_points=["one"], confidence=0.85, word_count=3),
        model=model,
        usage=TokenUsage(input_tokens=10, output_tokens=5),
    )


@pytest.fixture
def settings() -> Settings:
    """Settings with no backoff, short timeouts and no background probing."""
    return Settings(
        max_attempts=3,
        per_attempt_timeout_ms=200,
        backoff_base_ms=0,
        backoff_cap_ms=0,
        worker_pool_size=2,
        queue_capacity=100,
        health_failure_threshold=3,
        health_probe_interval_s=0,
        stats_window_size=100,
    )


@pytest.fixture
def make_manager(settings):
    """Build a PipelineManager around fake adapters."""

    def _make(
        transcription=(), content=(), cache: bool = True, backend=None, **overrides
    ) -> PipelineManager:
        s = settings.model_copy(update=overrides)
        monitor = HealthMonitor(failure_threshold=s.health_failure_threshold)
        return PipelineManager(
            store=JobStore(backend=backend, max_attempts=s.max_attempts),
            monitor=monitor,
            transcription_providers=list(transcription),
            content_providers=list(content),
            cache=ResultCache.from_settings(s) if cache else None,
            settings=s,
        )

    return _make
