"""
Job records and their state machine.

JobStore owns every Job. Records live in a pluggable key-value store;
state changes go through transition(), which validates the edge and
replaces the record atomically with respect to other workers.

Example:
    store = JobStore()
    job = await store.create(JobKind.TRANSCRIPTION, payload, priority=10)
    await store.transition(job.id, JobStatus.PROCESSING, started_at=datetime.now())
    snapshot = await store.snapshot(job.id)
"""

import asyncio
import itertools
import logging
import uuid
from typing import Any, Callable, Protocol

from voicenotes.errors import InvalidTransitionError, JobNotFoundError
from voicenotes.models.schemas import (
    ContentPayload,
    Job,
    JobKind,
    JobSnapshot,
    JobStatus,
    TranscriptionPayload,
)

logger = logging.getLogger(__name__)

# Allowed state changes
TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset(
        {JobStatus.COMPLETED, JobStatus.RETRYING, JobStatus.FAILED}
    ),
    JobStatus.RETRYING: frozenset({JobStatus.PROCESSING}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}

# Called under the store lock as listener(previous, current, job);
# previous is None on create, current is None on delete
TransitionListener = Callable[[JobStatus | None, JobStatus | None, Job], None]


class KeyValueStore(Protocol):
    """Minimal keyed storage the job store needs."""

    async def get(self, key: str) -> Job | None: ...

    async def set(self, key: str, value: Job) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def list(self) -> list[Job]: ...


class InMemoryKeyValueStore:
    """Dict-backed KeyValueStore (process lifetime)."""

    def __init__(self):
        self._data: dict[str, Job] = {}

    async def get(self, key: str) -> Job | None:
        return self._data.get(key)

    async def set(self, key: str, value: Job) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def list(self) -> list[Job]:
        return list(self._data.values())


class JobStore:
    """
    Job records with validated, atomic state transitions.

    Records are replaced, never mutated in place, so a Job obtained from
    get() does not change under the caller.

    Attributes:
        max_attempts: Attempt budget given to new jobs
    """

    def __init__(
        self,
        backend: KeyValueStore | None = None,
        max_attempts: int = 3,
    ):
        self.backend = backend or InMemoryKeyValueStore()
        self.max_attempts = max_attempts
        self._lock = asyncio.Lock()
        self._seq = itertools.count(1)
        self._listeners: list[TransitionListener] = []

    def add_listener(self, listener: TransitionListener) -> None:
        """Register a callback run inside the critical section of every change."""
        self._listeners.append(listener)

    async def create(
        self,
        kind: JobKind,
        payload: TranscriptionPayload | ContentPayload,
        priority: int = 0,
    ) -> Job:
        """
        Create a pending job.

        Args:
            kind: Job kind
            payload: Validated payload
            priority: Higher is dequeued first

        Returns:
            The stored Job
        """
        async with self._lock:
            job = Job(
                id=str(uuid.uuid4()),
                kind=kind,
                payload=payload,
                priority=priority,
                seq=next(self._seq),
                max_attempts=self.max_attempts,
            )
            await self.backend.set(job.id, job)
            self._notify(None, job.status, job)

        logger.debug(f"Created {kind.value} job {job.id} (priority {priority})")
        return job

    async def get(self, job_id: str) -> Job:
        """
        Raises:
            JobNotFoundError: Unknown job ID
        """
        job = await self.backend.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def snapshot(self, job_id: str) -> JobSnapshot:
        return JobSnapshot.from_job(await self.get(job_id))

    async def list(self, status: JobStatus | None = None) -> list[Job]:
        jobs = await self.backend.list()
        if status is not None:
            jobs = [j for j in jobs if j.status == status]
        return sorted(jobs, key=lambda j: j.seq)

    async def transition(self, job_id: str, to_status: JobStatus, **changes: Any) -> Job:
        """
        Move a job to a new status and apply field changes atomically.

        Args:
            job_id: Job identifier
            to_status: Target status
            **changes: Other Job fields to set (result, attempts, ...)

        Returns:
            The updated Job

        Raises:
            JobNotFoundError: Unknown job ID
            InvalidTransitionError: Edge not allowed, or job is terminal
        """
        async with self._lock:
            job = await self.get(job_id)
            if to_status not in TRANSITIONS[job.status]:
                raise InvalidTransitionError(job_id, job.status.value, to_status.value)

            updated = job.model_copy(update={**changes, "status": to_status})
            if updated.attempts > updated.max_attempts:
                raise ValueError(
                    f"Job {job_id}: attempts {updated.attempts} exceed max {updated.max_attempts}"
                )

            await self.backend.set(job_id, updated)
            self._notify(job.status, to_status, updated)

        logger.debug(f"Job {job_id}: {job.status.value} -> {to_status.value}")
        return updated

    async def delete(self, job_id: str) -> None:
        """Remove a job that was never admitted to the queue."""
        async with self._lock:
            job = await self.get(job_id)
            if job.status != JobStatus.PENDING:
                raise InvalidTransitionError(job_id, job.status.value, "deleted")
            await self.backend.delete(job_id)
            self._notify(job.status, None, job)

    async def clear_finished(self) -> int:
        """
        Drop completed and failed jobs.

        Returns:
            Number of jobs removed
        """
        async with self._lock:
            finished = [j for j in await self.backend.list() if j.status.is_terminal]
            for job in finished:
                await self.backend.delete(job.id)

        if finished:
            logger.info(f"Cleared {len(finished)} finished job(s)")
        return len(finished)

    def _notify(self, previous: JobStatus | None, current: JobStatus | None, job: Job) -> None:
        for listener in self._listeners:
            listener(previous, current, job)
