"""
Pipeline module for voice note processing.

This package contains the pipeline components:
- manager: Public entry point (submit, status, stats, health)
- job_store / job_queue: Job records, state machine and priority queue
- retry_engine: Provider failover with backoff
- health_monitor: Per-provider availability
- result_cache: Content result memoization
- fallback_factory: Transcription-only results
- processing_strategy: Provider construction and content tier selection

Example:
    from voicenotes.services.pipeline import PipelineManager

    manager = PipelineManager.from_settings(settings)
    await manager.start()
    job_id = await manager.submit("content_processing", {"transcript": text})
"""

from .fallback_factory import FallbackFactory
from .health_monitor import HealthMonitor
from .job_queue import PriorityJobQueue
from .job_store import InMemoryKeyValueStore, JobStore, KeyValueStore
from .manager import PipelineManager
from .processing_strategy import ContentTier, ProcessingStrategy, ProviderType
from .result_cache import ResultCache, generate_cache_key
from .retry_engine import ContentFallbackEngine, EngineOutcome, RetryFallbackEngine
from .stats import StatsTracker

__all__ = [
    # Entry point
    "PipelineManager",
    # Jobs
    "JobStore",
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "PriorityJobQueue",
    "StatsTracker",
    # Execution
    "RetryFallbackEngine",
    "ContentFallbackEngine",
    "EngineOutcome",
    "FallbackFactory",
    "HealthMonitor",
    # Caching
    "ResultCache",
    "generate_cache_key",
    # Provider selection
    "ProcessingStrategy",
    "ProviderType",
    "ContentTier",
]
