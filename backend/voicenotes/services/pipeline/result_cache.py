"""
In-process cache for content-processing results.

Results are keyed by a fingerprint of the normalized transcript and the
processing options, so re-submitting the same note does not pay for the
same LLM calls twice.

Example:
    cache = ResultCache.from_settings(settings)
    key = generate_cache_key(transcript, {"model": "claude-haiku-4-5"})

    result = await cache.get_or_compute(key, lambda: process(transcript))
    cache.get(key).cached  # True
"""

import asyncio
import hashlib
import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from voicenotes.config import Settings
from voicenotes.models.schemas import ContentResult
from voicenotes.utils.text_utils import normalize_text

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "ai:result:"


def generate_cache_key(transcript: str, options: dict[str, Any] | None = None) -> str:
    """
    Fingerprint a transcript and its processing options.

    Case, punctuation and whitespace differences map to the same key.
    """
    material = normalize_text(transcript)
    if options:
        material += "|" + json.dumps(options, sort_keys=True, default=str)
    digest = hashlib.sha256(material.encode("utf-8")).hexdigest()
    return f"{CACHE_KEY_PREFIX}{digest}"


@dataclass
class CacheEntry:
    """Stored result with its expiry (monotonic seconds)."""

    value: ContentResult
    stored_at: float
    expires_at: float


class ResultCache:
    """
    TTL cache with single-flight computation.

    Concurrent get_or_compute() calls for the same key share one in-flight
    computation; the others await its result. Size is bounded: expired
    entries are purged first, then the oldest entries are evicted.
    Degraded results are kept for ``degraded_ttl_ms`` only, so a recovered
    model tier is used again soon.

    Attributes:
        ttl_ms: Lifetime of regular results
        degraded_ttl_ms: Lifetime of transcription-only results
        max_entries: Maximum number of stored results
    """

    def __init__(
        self,
        ttl_ms: float = 7 * 24 * 3600 * 1000,
        degraded_ttl_ms: float = 5 * 60 * 1000,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_ms = ttl_ms
        self.degraded_ttl_ms = degraded_ttl_ms
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._inflight: dict[str, asyncio.Future] = {}
        self._hits = 0
        self._misses = 0
        self._coalesced = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResultCache":
        return cls(
            ttl_ms=settings.cache_ttl_ms,
            degraded_ttl_ms=settings.degraded_cache_ttl_ms,
            max_entries=settings.cache_max_entries,
        )

    def get(self, key: str) -> ContentResult | None:
        """
        Look up a live entry.

        Returns:
            Copy of the stored result marked ``cached=True``, or None
        """
        entry = self._entries.get(key)
        if entry is not None and entry.expires_at <= self._clock():
            del self._entries[key]
            entry = None

        if entry is None:
            self._misses += 1
            return None

        self._hits += 1
        return entry.value.model_copy(update={"cached": True}, deep=True)

    def put(self, key: str, result: ContentResult, ttl_ms: float | None = None) -> None:
        """
        Store a result.

        Args:
            key: Cache key (see generate_cache_key)
            result: Result to store
            ttl_ms: Lifetime override; defaults by ``result.degraded``
        """
        if ttl_ms is None:
            ttl_ms = self.degraded_ttl_ms if result.degraded else self.ttl_ms
        if ttl_ms <= 0:
            return

        now = self._clock()
        self._entries[key] = CacheEntry(
            value=result.model_copy(deep=True),
            stored_at=now,
            expires_at=now + ttl_ms / 1000,
        )
        self._entries.move_to_end(key)

        if len(self._entries) > self.max_entries:
            self.purge_expired()
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted cache entry {evicted}")

    def invalidate(self, key: str) -> bool:
        """Remove one entry; returns False if it was not cached."""
        return self._entries.pop(key, None) is not None

    def purge_expired(self) -> int:
        """Remove expired entries and return how many were dropped."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.expires_at <= now]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Purged {len(expired)} expired cache entries")
        return len(expired)

    def stats(self) -> dict[str, Any]:
        lookups = self._hits + self._misses
        return {
            "entries": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "coalesced": self._coalesced,
            "in_flight": len(self._inflight),
            "hit_rate": self._hits / lookups if lookups else 0.0,
        }

    async def get_or_compute(
        self,
        key: str,
        factory: Callable[[], Awaitable[ContentResult]],
        ttl_ms: float | None = None,
    ) -> ContentResult:
        """
        Return the cached result or compute and store it.

        A caller arriving while the same key is being computed awaits that
        computation instead of starting another one. If the computation
        fails, waiting callers compute on their own.

        Args:
            key: Cache key
            factory: Coroutine function producing the result
            ttl_ms: Lifetime override for the stored result

        Returns:
            The result (``cached=True`` when it did not come from this call)
        """
        cached = self.get(key)
        if cached is not None:
            return cached

        inflight = self._inflight.get(key)
        if inflight is not None:
            self._coalesced += 1
            shared = await asyncio.shield(inflight)
            if shared is not None:
                return shared.model_copy(update={"cached": True}, deep=True)
            logger.debug(f"In-flight computation for {key} failed, computing again")
            return await factory()

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            result = await factory()
        except BaseException:
            # None tells waiters to compute themselves
            future.set_result(None)
            raise
        else:
            self.put(key, result, ttl_ms)
            future.set_result(result)
            return result
        finally:
            self._inflight.pop(key, None)
