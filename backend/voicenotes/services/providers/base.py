"""
Uniform adapter interface over external speech-to-text and LLM services.

An adapter turns a client call into either a typed result or a classified
provider error, and reports latency/outcome to the health monitor it is
attached to.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from voicenotes.errors import classify_error

if TYPE_CHECKING:
    from voicenotes.services.pipeline.health_monitor import HealthMonitor

logger = logging.getLogger(__name__)

P = TypeVar("P")
R = TypeVar("R")


class ProviderAdapter(ABC, Generic[P, R]):
    """
    Base class for provider adapters.

    Subclasses implement _invoke() and probe(); callers use invoke(),
    which adds the timeout bound, error classification and health reporting.

    Attributes:
        name: Unique provider name (used for health tracking and results)
    """

    def __init__(self, name: str):
        self.name = name
        self._monitor: "HealthMonitor | None" = None

    def attach_monitor(self, monitor: "HealthMonitor") -> None:
        self._monitor = monitor

    async def invoke(
        self,
        payload: P,
        options: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> R:
        """
        Call the provider once.

        Args:
            payload: Kind-specific input
            options: Per-call overrides
            timeout: Upper bound in seconds (None = unbounded)

        Returns:
            Typed success value

        Raises:
            TransientProviderError: Retry/fallback eligible failure
            PermanentProviderError: Non-retryable failure
        """
        start = time.monotonic()
        try:
            result = await asyncio.wait_for(
                self._invoke(payload, options or {}), timeout=timeout
            )
        except Exception as e:
            latency_ms = (time.monotonic() - start) * 1000
            error = classify_error(e, self.name)
            logger.warning(
                f"{self.name} failed after {latency_ms:.0f}ms "
                f"({type(error).__name__}): {error.message}"
            )
            if self._monitor is not None:
                self._monitor.record_failure(self.name, error.message, latency_ms)
            if error is e:
                raise
            raise error from e

        latency_ms = (time.monotonic() - start) * 1000
        logger.debug(f"{self.name} succeeded in {latency_ms:.0f}ms")
        if self._monitor is not None:
            self._monitor.record_success(self.name, latency_ms)
        return result

    @abstractmethod
    async def _invoke(self, payload: P, options: dict[str, Any]) -> R:
        """Provider-specific call; may raise any client exception."""

    @abstractmethod
    async def probe(self) -> bool:
        """Lightweight health check, independent of real work."""

    async def close(self) -> None:
        """Release underlying client resources."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
