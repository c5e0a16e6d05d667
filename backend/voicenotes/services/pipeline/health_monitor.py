"""
Provider health tracking.

Keeps a last-known-good flag per provider, fed by probe() calls and by the
outcome of real invocations. Health is advisory: the retry/fallback engine
uses it to order and skip providers, it never fails a job by itself.

Example:
    monitor = HealthMonitor(failure_threshold=3)
    monitor.register(deepgram_adapter)
    await monitor.probe_all()
    monitor.is_available("deepgram")  # True / False
"""

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING

from voicenotes.models.schemas import ProviderHealth

if TYPE_CHECKING:
    from voicenotes.services.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)


class HealthMonitor:
    """
    Per-provider health state with on-demand and periodic probing.

    Each update replaces the provider's frozen ProviderHealth snapshot, so
    readers never see a half-written record and never wait on writers.

    Attributes:
        failure_threshold: Consecutive failures before a provider is
            marked unavailable
        probe_timeout: Upper bound for a single probe, in seconds
    """

    def __init__(self, failure_threshold: int = 3, probe_timeout: float = 5.0):
        self.failure_threshold = failure_threshold
        self.probe_timeout = probe_timeout
        self._health: dict[str, ProviderHealth] = {}
        self._adapters: dict[str, "ProviderAdapter"] = {}
        self._task: asyncio.Task | None = None

    def register(self, adapter: "ProviderAdapter") -> None:
        """Track an adapter and let it report invocation outcomes here."""
        self._adapters[adapter.name] = adapter
        self._health.setdefault(adapter.name, ProviderHealth(provider=adapter.name))
        adapter.attach_monitor(self)

    @property
    def providers(self) -> list[str]:
        return list(self._health)

    def get(self, provider: str) -> ProviderHealth:
        """Current health snapshot (unknown providers count as available)."""
        return self._health.get(provider) or ProviderHealth(provider=provider)

    def is_available(self, provider: str) -> bool:
        return self.get(provider).available

    def snapshot(self) -> dict[str, ProviderHealth]:
        return dict(self._health)

    def health_check(self) -> dict[str, bool]:
        """Map provider name to last-known availability."""
        return {name: health.available for name, health in self._health.items()}

    def record_success(self, provider: str, latency_ms: float | None = None) -> None:
        """A successful probe or invoke re-admits the provider."""
        previous = self.get(provider)
        if not previous.available:
            logger.info(f"Provider {provider} re-admitted after successful call")

        self._health[provider] = ProviderHealth(
            provider=provider,
            available=True,
            last_checked_at=datetime.now(),
            consecutive_failures=0,
            last_latency_ms=latency_ms,
            last_error=None,
        )

    def record_failure(
        self,
        provider: str,
        error: str | None = None,
        latency_ms: float | None = None,
    ) -> None:
        """Count a failure; mark unavailable at the threshold."""
        previous = self.get(provider)
        failures = previous.consecutive_failures + 1
        available = failures < self.failure_threshold

        if previous.available and not available:
            logger.warning(
                f"Provider {provider} marked unavailable after "
                f"{failures} consecutive failures: {error}"
            )

        self._health[provider] = ProviderHealth(
            provider=provider,
            available=available,
            last_checked_at=datetime.now(),
            consecutive_failures=failures,
            last_latency_ms=latency_ms,
            last_error=error,
        )

    async def probe(self, provider: str) -> bool:
        """
        Probe one registered provider and record the outcome.

        Args:
            provider: Adapter name

        Returns:
            True if the probe succeeded
        """
        adapter = self._adapters.get(provider)
        if adapter is None:
            raise KeyError(f"Unknown provider: {provider}")

        loop = asyncio.get_running_loop()
        start = loop.time()
        try:
            ok = await asyncio.wait_for(adapter.probe(), timeout=self.probe_timeout)
            error = None if ok else "probe returned unhealthy"
        except asyncio.TimeoutError:
            ok, error = False, f"probe timeout after {self.probe_timeout}s"
        except Exception as e:
            ok, error = False, f"{type(e).__name__}: {e}"

        latency_ms = (loop.time() - start) * 1000
        if ok:
            self.record_success(provider, latency_ms)
        else:
            logger.debug(f"Probe failed for {provider}: {error}")
            self.record_failure(provider, error, latency_ms)
        return ok

    async def probe_all(self) -> dict[str, bool]:
        """Probe all registered providers concurrently."""
        names = list(self._adapters)
        results = await asyncio.gather(*(self.probe(name) for name in names))
        return dict(zip(names, results))

    def start(self, interval: float) -> None:
        """Start periodic probing in the background."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._probe_loop(interval))
            logger.info(f"Health probing every {interval:.0f}s for {len(self._adapters)} provider(s)")

    async def stop(self) -> None:
        """Stop periodic probing."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _probe_loop(self, interval: float) -> None:
        while True:
            await self.probe_all()
            await asyncio.sleep(interval)
