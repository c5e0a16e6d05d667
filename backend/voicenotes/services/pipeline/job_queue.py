"""
Bounded priority queue of job IDs.

Higher priority is dequeued first; equal priorities keep submission order.
"""

import asyncio

from voicenotes.errors import QueueFullError


class PriorityJobQueue:
    """
    asyncio.PriorityQueue keyed by (-priority, seq) with an admission limit.

    ``put_nowait`` fails fast with QueueFullError at capacity. Jobs that
    were already admitted and are coming back for another attempt pass
    ``force=True`` and are never rejected. A job ID is held at most once.

    Example:
        queue = PriorityJobQueue(capacity=100)
        queue.put_nowait("a1", priority=5, seq=1)
        queue.put_nowait("b2", priority=10, seq=2)
        "a1" in queue      # True
        await queue.get()  # "b2"
    """

    def __init__(self, capacity: int = 100):
        self.capacity = capacity
        # Unbounded underneath; capacity is enforced in put_nowait
        self._queue: asyncio.PriorityQueue[tuple[int, int, str]] = asyncio.PriorityQueue()
        self._queued: set[str] = set()

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._queued

    def qsize(self) -> int:
        return self._queue.qsize()

    def empty(self) -> bool:
        return self._queue.empty()

    def full(self) -> bool:
        return self._queue.qsize() >= self.capacity

    def put_nowait(self, job_id: str, priority: int, seq: int, force: bool = False) -> None:
        """
        Enqueue a job ID without waiting. An ID already queued is ignored.

        Raises:
            QueueFullError: Queue is at capacity and ``force`` is False
        """
        if job_id in self._queued:
            return
        if not force and self.full():
            raise QueueFullError(self.capacity)
        self._queue.put_nowait((-priority, seq, job_id))
        self._queued.add(job_id)

    async def get(self) -> str:
        """Wait for and remove the highest-priority job ID."""
        _, _, job_id = await self._queue.get()
        self._queued.discard(job_id)
        return job_id
