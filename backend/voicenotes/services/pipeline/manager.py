"""
Pipeline manager: the public entry point of the voice note pipeline.

Accepts job submissions, runs them on a bounded worker pool through the
retry/fallback engine, and exposes status, statistics, provider health
and per-job push notifications.

Example:
    manager = PipelineManager.from_settings(settings)
    await manager.start()

    job_id = await manager.submit("transcription", {"audio": audio_bytes})
    snapshot = await manager.wait_for(job_id, timeout=60)
    snapshot.result.text

    await manager.close()
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Iterable, Mapping, Sequence

from pydantic import BaseModel

from voicenotes.config import Settings, get_settings
from voicenotes.errors import (
    AllProvidersExhaustedError,
    InvalidPayloadError,
    InvalidTransitionError,
    JobNotFoundError,
    ProviderRejectedError,
    QueueFullError,
)
from voicenotes.models.schemas import (
    ContentPayload,
    ContentResult,
    CostEstimate,
    Job,
    JobKind,
    JobSnapshot,
    JobStatus,
    PipelineStats,
    TranscriptionPayload,
)
from voicenotes.services.pipeline.health_monitor import HealthMonitor
from voicenotes.services.pipeline.job_queue import PriorityJobQueue
from voicenotes.services.pipeline.job_store import JobStore
from voicenotes.services.pipeline.processing_strategy import ProcessingStrategy
from voicenotes.services.pipeline.result_cache import ResultCache, generate_cache_key
from voicenotes.services.pipeline.retry_engine import (
    ContentFallbackEngine,
    EngineOutcome,
    RetryFallbackEngine,
)
from voicenotes.services.pipeline.stats import StatsTracker
from voicenotes.services.providers.base import ProviderAdapter
from voicenotes.utils.pricing_utils import estimate_tokens

logger = logging.getLogger(__name__)

CACHE_PROVIDER = "cache"

PAYLOAD_TYPES: dict[JobKind, type[BaseModel]] = {
    JobKind.TRANSCRIPTION: TranscriptionPayload,
    JobKind.CONTENT_PROCESSING: ContentPayload,
}


class PipelineManager:
    """
    Job submission, execution and status for both pipeline stages.

    All collaborators are injected, so tests can run the manager against
    fake adapters. Only the manager writes to the job store.

    Transcription jobs fail once their attempt budget is spent. Content
    jobs never fail for provider reasons: when every model tier fails they
    complete with a degraded transcription-only result.

    Attributes:
        store: Job records
        monitor: Provider health
        transcription_providers: Speech-to-text adapters, primary first
        content_providers: Content tiers, best first
        engine: Retry/fallback engine
        cache: Content result cache (None disables caching)
        strategy: Content tier ordering (None keeps provider order)
        queue: Bounded priority queue of pending job IDs
        stats: Running counters and latency window
    """

    def __init__(
        self,
        store: JobStore,
        monitor: HealthMonitor,
        transcription_providers: Sequence[ProviderAdapter],
        content_providers: Sequence[ProviderAdapter] = (),
        engine: RetryFallbackEngine | None = None,
        cache: ResultCache | None = None,
        strategy: ProcessingStrategy | None = None,
        settings: Settings | None = None,
        queue: PriorityJobQueue | None = None,
        stats: StatsTracker | None = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.monitor = monitor
        self.transcription_providers = list(transcription_providers)
        self.content_providers = list(content_providers)
        self.engine = engine or RetryFallbackEngine.from_settings(self.settings, monitor)
        self.content_engine = ContentFallbackEngine(self.engine)
        self.cache = cache
        self.strategy = strategy
        self.queue = queue or PriorityJobQueue(self.settings.queue_capacity)
        self.stats = stats or StatsTracker(self.settings.stats_window_size)

        for provider in (*self.transcription_providers, *self.content_providers):
            monitor.register(provider)

        self._subscribers: dict[str, list[asyncio.Queue]] = {}
        self._terminal: dict[str, asyncio.Future] = {}
        self._workers: list[asyncio.Task] = []
        self._retry_tasks: set[asyncio.Task] = set()

        store.add_listener(self.stats.on_transition)
        store.add_listener(self._publish)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "PipelineManager":
        """Build a manager with real providers configured from settings."""
        settings = settings or get_settings()
        strategy = ProcessingStrategy(settings)
        monitor = HealthMonitor(
            failure_threshold=settings.health_failure_threshold,
            probe_timeout=settings.health_probe_timeout_s,
        )
        return cls(
            store=JobStore(max_attempts=settings.max_attempts),
            monitor=monitor,
            transcription_providers=strategy.build_transcription_providers(),
            content_providers=strategy.build_content_providers(),
            engine=RetryFallbackEngine.from_settings(settings, monitor),
            cache=ResultCache.from_settings(settings),
            strategy=strategy,
            settings=settings,
        )

    # ═══════════════════════════════════════════════════════════════════════
    # Lifecycle
    # ═══════════════════════════════════════════════════════════════════════

    async def start(self) -> None:
        """
        Start the worker pool and periodic health probing.

        Jobs left pending or retrying outside the queue by an earlier
        ``stop()`` are enqueued again first.
        """
        if self._workers:
            return

        await self._requeue_stranded()
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"pipeline-worker-{i}")
            for i in range(self.settings.worker_pool_size)
        ]
        if self.settings.health_probe_interval_s > 0:
            self.monitor.start(self.settings.health_probe_interval_s)

        logger.info(f"Pipeline started with {len(self._workers)} worker(s)")

    async def stop(self) -> None:
        """
        Stop workers, pending re-enqueues and health probing.

        A job interrupted mid-attempt goes back to retrying, and jobs
        waiting for a re-enqueue stay retrying; ``start()`` resumes both.
        """
        tasks = [*self._workers, *self._retry_tasks]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self._workers = []
        self._retry_tasks.clear()
        await self.monitor.stop()
        logger.info("Pipeline stopped")

    async def close(self) -> None:
        """Stop the pipeline and release provider clients."""
        await self.stop()
        for provider in (*self.transcription_providers, *self.content_providers):
            await provider.close()

    async def __aenter__(self) -> "PipelineManager":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ═══════════════════════════════════════════════════════════════════════
    # Submission
    # ═══════════════════════════════════════════════════════════════════════

    async def submit(
        self,
        kind: JobKind | str,
        payload: Mapping[str, Any] | BaseModel,
        options: Mapping[str, Any] | None = None,
        priority: int | None = None,
    ) -> str:
        """
        Create a pending job and enqueue it. Does not wait for processing.

        Args:
            kind: "transcription" or "content_processing"
            payload: Payload model or dict
            options: Overrides merged into the payload's options
            priority: Higher is dequeued first (default per kind)

        Returns:
            Job ID

        Raises:
            InvalidPayloadError: Malformed payload (no job is created)
            QueueFullError: Queue is at capacity
        """
        job_kind, validated = self._validate(kind, payload, options)
        if self.queue.full():
            raise QueueFullError(self.queue.capacity)

        job = await self.store.create(
            job_kind, validated, self._default_priority(job_kind, priority)
        )
        try:
            self.queue.put_nowait(job.id, job.priority, job.seq)
        except QueueFullError:
            await self.store.delete(job.id)
            raise

        logger.info(f"Submitted {job_kind.value} job {job.id} (priority {job.priority})")
        return job.id

    async def submit_batch(self, items: Iterable[Mapping[str, Any]]) -> list[str]:
        """
        Submit several jobs; all are validated before any is created.

        Args:
            items: Dicts with ``kind``, ``payload`` and optional
                ``options`` / ``priority``

        Returns:
            Job IDs in input order

        Raises:
            InvalidPayloadError: Any item is malformed
            QueueFullError: The queue cannot take every item
        """
        validated = []
        for item in items:
            if "kind" not in item or "payload" not in item:
                raise InvalidPayloadError("Batch item requires 'kind' and 'payload'")
            job_kind, payload = self._validate(item["kind"], item["payload"], item.get("options"))
            validated.append((job_kind, payload, self._default_priority(job_kind, item.get("priority"))))

        if self.queue.qsize() + len(validated) > self.queue.capacity:
            raise QueueFullError(self.queue.capacity)

        jobs = [
            await self.store.create(job_kind, payload, priority)
            for job_kind, payload, priority in validated
        ]

        # Other submissions may have been admitted while the jobs were created
        if self.queue.qsize() + len(jobs) > self.queue.capacity:
            for job in jobs:
                await self.store.delete(job.id)
            raise QueueFullError(self.queue.capacity)

        for job in jobs:
            self.queue.put_nowait(job.id, job.priority, job.seq)

        logger.info(f"Submitted batch of {len(jobs)} job(s)")
        return [job.id for job in jobs]

    async def process(
        self,
        kind: JobKind | str,
        payload: Mapping[str, Any] | BaseModel,
        options: Mapping[str, Any] | None = None,
        priority: int | None = None,
        timeout: float | None = None,
    ) -> JobSnapshot:
        """Submit a job and wait for its terminal snapshot."""
        job_id = await self.submit(kind, payload, options, priority)
        return await self.wait_for(job_id, timeout)

    def _default_priority(self, kind: JobKind, priority: int | None) -> int:
        if priority is not None:
            return priority
        if kind == JobKind.TRANSCRIPTION:
            return self.settings.transcription_priority
        return self.settings.content_priority

    def _validate(
        self,
        kind: JobKind | str,
        payload: Mapping[str, Any] | BaseModel,
        options: Mapping[str, Any] | None,
    ) -> tuple[JobKind, TranscriptionPayload | ContentPayload]:
        try:
            job_kind = JobKind(kind)
        except ValueError as e:
            raise InvalidPayloadError(f"Unknown job kind: {kind}") from e

        try:
            data = payload.model_dump() if isinstance(payload, BaseModel) else dict(payload)
            if options:
                data["options"] = {**(data.get("options") or {}), **options}
            validated = PAYLOAD_TYPES[job_kind].model_validate(data)
            if isinstance(validated, ContentPayload):
                self._content_order(validated)
        except (TypeError, ValueError) as e:
            raise InvalidPayloadError(f"Invalid {job_kind.value} payload: {e}") from e

        return job_kind, validated

    # ═══════════════════════════════════════════════════════════════════════
    # Queries
    # ═══════════════════════════════════════════════════════════════════════

    async def get_status(self, job_id: str) -> JobSnapshot:
        """
        Raises:
            JobNotFoundError: Unknown job ID
        """
        return await self.store.snapshot(job_id)

    async def list_jobs(self, status: JobStatus | None = None) -> list[JobSnapshot]:
        return [JobSnapshot.from_job(job) for job in await self.store.list(status)]

    def get_stats(self) -> PipelineStats:
        return self.stats.snapshot()

    def health_check(self) -> dict[str, bool]:
        return self.monitor.health_check()

    def estimate_content(self, transcript: str, model: str | None = None) -> CostEstimate:
        """
        Predict which tier would process a transcript and what it would cost.

        Raises:
            InvalidPayloadError: Blank transcript or unknown model
        """
        if not transcript.strip():
            raise InvalidPayloadError("Transcript is empty")
        if self.strategy is None:
            if model is not None and model not in {p.name for p in self.content_providers}:
                raise InvalidPayloadError(f"Unknown content model: {model}")
            return CostEstimate(model=model, input_tokens=estimate_tokens(transcript) * 2)

        try:
            return self.strategy.estimate(transcript, model)
        except ValueError as e:
            raise InvalidPayloadError(str(e)) from e

    async def clear_finished(self) -> int:
        """Drop completed and failed jobs from the store."""
        return await self.store.clear_finished()

    # ═══════════════════════════════════════════════════════════════════════
    # Push notifications
    # ═══════════════════════════════════════════════════════════════════════

    async def subscribe(self, job_id: str) -> asyncio.Queue:
        """
        Subscribe to a job's state changes.

        The queue receives one JobSnapshot per transition. The terminal
        snapshot is delivered exactly once and is always the last item.

        Raises:
            JobNotFoundError: Unknown job ID
        """
        snapshot = await self.store.snapshot(job_id)
        queue: asyncio.Queue = asyncio.Queue()

        if snapshot.status.is_terminal:
            queue.put_nowait(snapshot)
        else:
            self._subscribers.setdefault(job_id, []).append(queue)
            logger.debug(f"Subscribed to job {job_id}")
        return queue

    def unsubscribe(self, job_id: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(job_id, [])
        if queue in queues:
            queues.remove(queue)

    async def wait_for(self, job_id: str, timeout: float | None = None) -> JobSnapshot:
        """
        Wait until a job completes or fails.

        Raises:
            JobNotFoundError: Unknown job ID
            TimeoutError: Job not terminal within ``timeout`` seconds
        """
        snapshot = await self.store.snapshot(job_id)
        if snapshot.status.is_terminal:
            return snapshot

        future = self._terminal.get(job_id)
        if future is None:
            future = asyncio.get_running_loop().create_future()
            self._terminal[job_id] = future
        return await asyncio.wait_for(asyncio.shield(future), timeout)

    async def wait_for_batch(
        self, job_ids: Iterable[str], timeout: float | None = None
    ) -> list[JobSnapshot]:
        """
        Wait until every job in a batch completes or fails.

        Returns:
            Terminal snapshots in the order of ``job_ids``

        Raises:
            JobNotFoundError: Any job ID is unknown
            TimeoutError: Some job not terminal within ``timeout`` seconds
        """
        return list(
            await asyncio.wait_for(
                asyncio.gather(*(self.wait_for(job_id) for job_id in job_ids)), timeout
            )
        )

    def _publish(self, previous: JobStatus | None, current: JobStatus | None, job: Job) -> None:
        if current is None:
            return

        snapshot = JobSnapshot.from_job(job)
        if not current.is_terminal:
            for queue in self._subscribers.get(job.id, []):
                queue.put_nowait(snapshot)
            return

        for queue in self._subscribers.pop(job.id, []):
            queue.put_nowait(snapshot)
        future = self._terminal.pop(job.id, None)
        if future is not None and not future.done():
            future.set_result(snapshot)

    # ═══════════════════════════════════════════════════════════════════════
    # Execution
    # ═══════════════════════════════════════════════════════════════════════

    async def _worker(self, index: int) -> None:
        while True:
            job_id = await self.queue.get()
            try:
                await self._run(job_id)
            except Exception:
                logger.exception(f"Worker {index} could not finish job {job_id}")

    async def _run(self, job_id: str) -> None:
        try:
            job = await self.store.transition(
                job_id, JobStatus.PROCESSING, started_at=datetime.now()
            )
        except (JobNotFoundError, InvalidTransitionError) as e:
            logger.warning(f"Skipping job {job_id}: {e.message}")
            return

        budget = job.max_attempts - job.attempts
        logger.info(
            f"Processing {job.kind.value} job {job.id} "
            f"(attempts {job.attempts}/{job.max_attempts})"
        )

        try:
            if job.kind == JobKind.TRANSCRIPTION:
                outcome = await self.engine.execute(
                    self.transcription_providers, job.payload, max_attempts=budget
                )
            else:
                outcome = await self._process_content(job, budget)
        except asyncio.CancelledError:
            await self._interrupted(job)
            raise
        except AllProvidersExhaustedError as e:
            await self._exhausted(job, e)
        except ProviderRejectedError as e:
            await self._fail(job, job.attempts + e.attempts, str(e.error))
        except Exception as e:
            logger.exception(f"Job {job.id} failed unexpectedly")
            await self._fail(job, job.attempts, f"{type(e).__name__}: {e}")
        else:
            await self._complete(job, outcome)

    async def _process_content(self, job: Job, budget: int) -> EngineOutcome[ContentResult]:
        payload: ContentPayload = job.payload
        providers = self._content_order(payload)

        if self.cache is None:
            return await self.content_engine.execute(providers, payload, max_attempts=budget)

        computed: list[EngineOutcome[ContentResult]] = []

        async def compute() -> ContentResult:
            outcome = await self.content_engine.execute(providers, payload, max_attempts=budget)
            computed.append(outcome)
            return outcome.value

        key = payload.cache_key or generate_cache_key(
            payload.transcript, payload.options.model_dump(exclude_none=True)
        )
        result = await self.cache.get_or_compute(key, compute)
        if computed:
            return computed[0]

        logger.info(f"Job {job.id}: content result served from cache")
        return EngineOutcome(value=result, provider=CACHE_PROVIDER, attempts=0)

    def _content_order(self, payload: ContentPayload) -> list[ProviderAdapter]:
        model = payload.options.model
        if self.strategy is not None:
            return self.strategy.content_tiers_for(
                payload.transcript, self.content_providers, model
            )
        if model is None:
            return list(self.content_providers)
        for i, provider in enumerate(self.content_providers):
            if provider.name == model:
                return self.content_providers[i:]
        raise ValueError(f"Unknown content model: {model}")

    async def _complete(self, job: Job, outcome: EngineOutcome) -> None:
        completed_at = datetime.now()
        elapsed_ms = (completed_at - job.started_at).total_seconds() * 1000

        await self.store.transition(
            job.id,
            JobStatus.COMPLETED,
            result=outcome.value,
            attempts=job.attempts + outcome.attempts,
            last_error=outcome.last_error or job.last_error,
            completed_at=completed_at,
            processing_time_ms=elapsed_ms,
        )

        degraded = isinstance(outcome.value, ContentResult) and outcome.value.degraded
        logger.info(
            f"Job {job.id} completed via {outcome.provider} in {elapsed_ms:.0f}ms"
            + (" (degraded)" if degraded else "")
        )

    async def _exhausted(self, job: Job, error: AllProvidersExhaustedError) -> None:
        attempts = min(job.max_attempts, job.attempts + error.attempts)
        if error.attempts == 0 or attempts >= job.max_attempts:
            await self._fail(job, attempts, str(error))
            return

        delay = self.engine.backoff(attempts)
        await self.store.transition(
            job.id, JobStatus.RETRYING, attempts=attempts, last_error=str(error)
        )
        logger.warning(
            f"Job {job.id} retrying in {delay:.2f}s "
            f"(attempts {attempts}/{job.max_attempts}): {error.message}"
        )

        task = asyncio.create_task(self._requeue_after(job, delay))
        self._retry_tasks.add(task)
        task.add_done_callback(self._retry_tasks.discard)

    async def _requeue_after(self, job: Job, delay: float) -> None:
        await asyncio.sleep(delay)
        # Already admitted once, so capacity does not apply
        self.queue.put_nowait(job.id, job.priority, job.seq, force=True)

    async def _requeue_stranded(self) -> None:
        stranded = [
            job
            for job in await self.store.list()
            if job.status in (JobStatus.PENDING, JobStatus.RETRYING) and job.id not in self.queue
        ]
        for job in stranded:
            self.queue.put_nowait(job.id, job.priority, job.seq, force=True)

        if stranded:
            logger.info(f"Re-enqueued {len(stranded)} job(s) left by a previous stop")

    async def _interrupted(self, job: Job) -> None:
        # The cut-short attempt is not counted
        await self.store.transition(
            job.id, JobStatus.RETRYING, last_error="Interrupted by pipeline stop"
        )
        logger.warning(f"Job {job.id} interrupted, resumes on next start")

    async def _fail(self, job: Job, attempts: int, error: str) -> None:
        completed_at = datetime.now()
        await self.store.transition(
            job.id,
            JobStatus.FAILED,
            attempts=min(attempts, job.max_attempts),
            last_error=error,
            completed_at=completed_at,
            processing_time_ms=(completed_at - job.started_at).total_seconds() * 1000,
        )
        logger.error(f"Job {job.id} failed after {attempts} attempt(s): {error}")
