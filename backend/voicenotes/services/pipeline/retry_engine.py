"""
Retry/fallback engine.

Tries an ordered list of provider adapters until one succeeds, with
exponential backoff and full jitter between attempts (tenacity).

Example:
    engine = RetryFallbackEngine.from_settings(settings, monitor)
    outcome = await engine.execute([deepgram, assemblyai], payload, max_attempts=3)
    outcome.value     # TranscriptionResult
    outcome.provider  # "assemblyai" if deepgram failed transiently
    outcome.attempts  # 2
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Sequence, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from voicenotes.config import Settings
from voicenotes.errors import (
    AllProvidersExhaustedError,
    PermanentProviderError,
    ProviderError,
    ProviderRejectedError,
    TransientProviderError,
)
from voicenotes.models.schemas import ContentPayload, ContentResult
from voicenotes.services.pipeline.fallback_factory import (
    TRANSCRIPTION_ONLY_MODEL,
    FallbackFactory,
)
from voicenotes.services.pipeline.health_monitor import HealthMonitor
from voicenotes.services.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)

R = TypeVar("R")

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass
class EngineOutcome(Generic[R]):
    """
    Successful engine call.

    Attributes:
        value: Result returned by the winning provider (or the fallback)
        provider: Name of the provider that produced ``value``
        attempts: Provider attempts made, including the successful one
        errors: Failures of earlier attempts, in order
    """

    value: R
    provider: str
    attempts: int
    errors: list[ProviderError] = field(default_factory=list)

    @property
    def last_error(self) -> str | None:
        return str(self.errors[-1]) if self.errors else None


class RetryFallbackEngine:
    """
    Provider failover under a bounded attempt budget.

    Candidates are the healthy providers in list order. When none is
    healthy, every provider is tried, so at least one attempt is always
    made. A permanent failure stops immediately; a transient failure moves
    on to the next candidate after a backoff delay.

    Attributes:
        monitor: Health monitor consulted for ordering
        per_attempt_timeout: Upper bound per provider call, in seconds
        backoff_base: Exponential backoff multiplier, in seconds
        backoff_cap: Maximum delay between attempts, in seconds
    """

    def __init__(
        self,
        monitor: HealthMonitor,
        per_attempt_timeout: float | None = 120.0,
        backoff_base: float = 1.0,
        backoff_cap: float = 10.0,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.monitor = monitor
        self.per_attempt_timeout = per_attempt_timeout
        self.backoff_base = backoff_base
        self.backoff_cap = backoff_cap
        self.wait = wait_random_exponential(multiplier=backoff_base, max=backoff_cap)
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings, monitor: HealthMonitor) -> "RetryFallbackEngine":
        return cls(
            monitor,
            per_attempt_timeout=settings.per_attempt_timeout_ms / 1000,
            backoff_base=settings.backoff_base_ms / 1000,
            backoff_cap=settings.backoff_cap_ms / 1000,
        )

    def backoff(self, attempt: int) -> float:
        """
        Jittered delay in seconds after the given 1-based attempt.

        Uses the same tenacity wait policy as fallback between providers,
        so a job re-enqueued after exhaustion backs off the same way.
        """
        state = RetryCallState(retry_object=None, fn=None, args=(), kwargs={})
        state.attempt_number = attempt
        return self.wait(state)

    def order_candidates(self, providers: Sequence[ProviderAdapter]) -> list[ProviderAdapter]:
        """Healthy providers in order; all of them if none is healthy."""
        healthy = [p for p in providers if self.monitor.is_available(p.name)]
        if healthy:
            skipped = [p.name for p in providers if p not in healthy]
            if skipped:
                logger.debug(f"Skipping unavailable providers: {', '.join(skipped)}")
            return healthy

        if providers:
            logger.warning(
                f"No healthy providers among {[p.name for p in providers]}, trying all"
            )
        return list(providers)

    async def execute(
        self,
        providers: Sequence[ProviderAdapter[Any, R]],
        payload: Any,
        options: dict[str, Any] | None = None,
        max_attempts: int | None = None,
    ) -> EngineOutcome[R]:
        """
        Invoke providers in order until one succeeds.

        Args:
            providers: Adapters in preference order
            payload: Payload passed to each adapter
            options: Per-call overrides passed to each adapter
            max_attempts: Attempt budget (at least one attempt is made)

        Returns:
            EngineOutcome with the first successful value

        Raises:
            ProviderRejectedError: A provider failed permanently
            AllProvidersExhaustedError: Every candidate failed transiently
        """
        candidates = self.order_candidates(providers)
        if max_attempts is not None:
            candidates = candidates[: max(1, max_attempts)]

        errors: list[ProviderError] = []
        if not candidates:
            raise AllProvidersExhaustedError(errors, 0)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(len(candidates)),
            wait=self.wait,
            retry=retry_if_exception_type(TransientProviderError),
            before_sleep=self._log_fallback,
            sleep=self._sleep,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    provider = candidates[attempt.retry_state.attempt_number - 1]
                    try:
                        value = await provider.invoke(
                            payload, options, timeout=self.per_attempt_timeout
                        )
                    except ProviderError as e:
                        errors.append(e)
                        raise
        except PermanentProviderError as e:
            logger.error(f"Permanent failure, not falling back: {e}")
            raise ProviderRejectedError(e, errors, len(errors)) from e
        except TransientProviderError as e:
            raise AllProvidersExhaustedError(errors, len(errors)) from e

        if errors:
            logger.info(f"Fell back to {provider.name} after {len(errors)} failed attempt(s)")

        return EngineOutcome(
            value=value,
            provider=provider.name,
            attempts=len(errors) + 1,
            errors=errors,
        )

    @staticmethod
    def _log_fallback(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            f"Attempt {retry_state.attempt_number} failed ({error}), "
            f"next provider in {delay:.2f}s"
        )


class ContentFallbackEngine:
    """
    Fail-open wrapper for content processing.

    Exhaustion or a permanent failure yields a degraded transcription-only
    result instead of an error.

    Example:
        engine = ContentFallbackEngine(RetryFallbackEngine(monitor))
        outcome = await engine.execute(tiers, ContentPayload(transcript="..."))
        outcome.value.degraded  # True if every tier failed
    """

    def __init__(self, engine: RetryFallbackEngine, factory: FallbackFactory | None = None):
        self.engine = engine
        self.factory = factory or FallbackFactory()

    async def execute(
        self,
        providers: Sequence[ProviderAdapter[ContentPayload, ContentResult]],
        payload: ContentPayload,
        options: dict[str, Any] | None = None,
        max_attempts: int | None = None,
    ) -> EngineOutcome[ContentResult]:
        try:
            return await self.engine.execute(providers, payload, options, max_attempts)
        except AllProvidersExhaustedError as e:
            reason = f"all model tiers failed after {e.attempts} attempt(s)"
            errors, attempts = e.errors, e.attempts
        except ProviderRejectedError as e:
            reason = f"model tier rejected request: {e.error}"
            errors, attempts = e.errors, e.attempts

        logger.warning(f"Content processing degraded: {reason}")
        return EngineOutcome(
            value=self.factory.create_content_result(payload, reason),
            provider=TRANSCRIPTION_ONLY_MODEL,
            attempts=attempts,
            errors=errors,
        )
