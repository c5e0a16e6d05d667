"""
Pipeline manager tests: job lifecycle, failover, degradation and queries.
"""

import asyncio

import pytest

from conftest import FakeAdapter, content_result, transcription_result
from voicenotes.errors import InvalidPayloadError, JobNotFoundError, QueueFullError
from voicenotes.models.schemas import JobKind, JobStatus
from voicenotes.services.ai_clients import AIClientConnectionError, AIClientResponseError
from voicenotes.services.pipeline import InMemoryKeyValueStore, ProcessingStrategy

THIRTY_SECONDS_OF_AUDIO = b"\x00" * 960000


async def _collect_until_terminal(queue: asyncio.Queue) -> list:
    snapshots = []
    while True:
        snapshot = await asyncio.wait_for(queue.get(), timeout=2)
        snapshots.append(snapshot)
        if snapshot.status.is_terminal:
            return snapshots


# ═══════════════════════════════════════════════════════════════════════════
# Transcription
# ═══════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_hung_primary_fails_over_to_secondary(make_manager):
    primary = FakeAdapter("deepgram", [transcription_result("too late")], delay=5.0)
    secondary = FakeAdapter("assemblyai", [transcription_result("hello world", 0.95)])
    manager = make_manager(transcription=[primary, secondary], per_attempt_timeout_ms=50)

    async with manager:
        snapshot = await manager.process(
            "transcription", {"audio": THIRTY_SECONDS_OF_AUDIO}, timeout=5
        )

    assert snapshot.status == JobStatus.COMPLETED
    assert snapshot.result.text == "hello world"
    assert snapshot.result.confidence == 0.95
    assert snapshot.attempts == 2
    assert "timeout" in snapshot.last_error
    assert primary.closed and secondary.closed


@pytest.mark.asyncio
async def test_job_fails_when_attempts_exhausted(make_manager):
    primary = FakeAdapter("deepgram", [AIClientConnectionError("refused")])
    secondary = FakeAdapter("assemblyai", [AIClientConnectionError("refused")])
    manager = make_manager(transcription=[primary, secondary])

    async with manager:
        snapshot = await manager.process("transcription", {"audio": b"\x01"}, timeout=5)

    assert snapshot.status == JobStatus.FAILED
    assert snapshot.attempts == 3
    assert "refused" in snapshot.last_error
    assert snapshot.completed_at is not None
    assert len(primary.calls) == 2
    assert len(secondary.calls) == 1


@pytest.mark.asyncio
async def test_job_passes_through_retrying(make_manager):
    primary = FakeAdapter(
        "deepgram",
        [AIClientConnectionError("refused"), transcription_result("second pass")],
    )
    secondary = FakeAdapter("assemblyai", [AIClientConnectionError("refused")])
    manager = make_manager(transcription=[primary, secondary])
    job_id = await manager.submit("transcription", {"audio": b"\x01"})
    updates = await manager.subscribe(job_id)

    async with manager:
        snapshots = await _collect_until_terminal(updates)

    assert [s.status for s in snapshots] == [
        JobStatus.PROCESSING,
        JobStatus.RETRYING,
        JobStatus.PROCESSING,
        JobStatus.COMPLETED,
    ]
    assert snapshots[-1].result.text == "second pass"
    assert snapshots[-1].attempts == 3


@pytest.mark.asyncio
async def test_permanent_transcription_error_fails_immediately(make_manager):
    primary = FakeAdapter("deepgram", [AIClientResponseError("bad audio", status_code=400)])
    secondary = FakeAdapter("assemblyai", [transcription_result()])
    manager = make_manager(transcription=[primary, secondary])

    async with manager:
        snapshot = await manager.process("transcription", {"audio": b"\x01"}, timeout=5)

    assert snapshot.status == JobStatus.FAILED
    assert snapshot.attempts == 1
    assert "bad audio" in snapshot.last_error
    assert secondary.calls == []


@pytest.mark.asyncio
async def test_no_providers_fails_without_retry(make_manager):
    manager = make_manager()

    async with manager:
        snapshot = await manager.process("transcription", {"audio": b"\x01"}, timeout=5)

    assert snapshot.status == JobStatus.FAILED
    assert snapshot.attempts == 0


# ═══════════════════════════════════════════════════════════════════════════
# Content processing
# ═══════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_content_degrades_when_all_tiers_fail(make_manager):
    tier1 = FakeAdapter("tier-1", [AIClientResponseError("unavailable", status_code=503)])
    tier2 = FakeAdapter("tier-2", [AIClientResponseError("unavailable", status_code=503)])
    manager = make_manager(content=[tier1, tier2])

    async with manager:
        snapshot = await manager.process(
            "content_processing", {"transcript": "Call the dentist. Buy milk."}, timeout=5
        )

    assert snapshot.status == JobStatus.COMPLETED
    assert snapshot.degraded
    assert snapshot.result.model == "transcription-only"
    assert snapshot.result.summary.confidence == 0.3
    assert snapshot.attempts == 2


@pytest.mark.asyncio
async def test_content_degrades_on_rejected_request(make_manager):
    tier1 = FakeAdapter("tier-1", [AIClientResponseError("unauthorized", status_code=401)])
    tier2 = FakeAdapter("tier-2", [content_result("tier-2")])
    manager = make_manager(content=[tier1, tier2])

    async with manager:
        snapshot = await manager.process(
            "content_processing", {"transcript": "Call the dentist."}, timeout=5
        )

    assert snapshot.status == JobStatus.COMPLETED
    assert snapshot.degraded
    assert snapshot.attempts == 1
    assert tier2.calls == []


@pytest.mark.asyncio
async def test_content_falls_back_to_next_tier(make_manager):
    tier1 = FakeAdapter("tier-1", [AIClientResponseError("overloaded", status_code=529)])
    tier2 = FakeAdapter("tier-2", [content_result("tier-2")])
    manager = make_manager(content=[tier1, tier2])

    async with manager:
        snapshot = await manager.process(
            "content_processing", {"transcript": "Call the dentist."}, timeout=5
        )

    assert snapshot.result.model == "tier-2"
    assert not snapshot.degraded
    assert snapshot.attempts == 2


@pytest.mark.asyncio
async def test_requested_model_skips_better_tiers(make_manager):
    tier1 = FakeAdapter("tier-1", [content_result("tier-1")])
    tier2 = FakeAdapter("tier-2", [content_result("tier-2")])
    manager = make_manager(content=[tier1, tier2])

    async with manager:
        snapshot = await manager.process(
            "content_processing",
            {"transcript": "Call the dentist."},
            options={"model": "tier-2"},
            timeout=5,
        )

    assert snapshot.result.model == "tier-2"
    assert tier1.calls == []


@pytest.mark.asyncio
async def test_identical_transcript_is_served_from_cache(make_manager):
    tier = FakeAdapter("tier-1", [content_result("tier-1")])
    manager = make_manager(content=[tier])

    async with manager:
        first = await manager.process(
            "content_processing", {"transcript": "Buy milk and eggs."}, timeout=5
        )
        second = await manager.process(
            "content_processing", {"transcript": "buy milk, and eggs"}, timeout=5
        )

    assert not first.result.cached
    assert second.result.cached
    assert second.attempts == 0
    assert len(tier.calls) == 1


@pytest.mark.asyncio
async def test_cache_can_be_disabled(make_manager):
    tier = FakeAdapter("tier-1", [content_result("tier-1")])
    manager = make_manager(content=[tier], cache=False)

    async with manager:
        for _ in range(2):
            await manager.process("content_processing", {"transcript": "Buy milk."}, timeout=5)

    assert len(tier.calls) == 2


# ═══════════════════════════════════════════════════════════════════════════
# Submission and validation
# ═══════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kind, payload",
    [
        ("transcription", {}),
        ("transcription", {"audio": b""}),
        ("transcription", {"audio": b"\x01", "audio_url": "https://example.com/a.webm"}),
        ("content_processing", {"transcript": "   "}),
        ("content_processing", {}),
        ("summarize", {"transcript": "hello"}),
    ],
)
async def test_invalid_submissions_create_no_job(make_manager, kind, payload):
    manager = make_manager()

    with pytest.raises(InvalidPayloadError) as exc_info:
        await manager.submit(kind, payload)

    assert exc_info.value.code == "INVALID_PAYLOAD"
    assert await manager.list_jobs() == []


@pytest.mark.asyncio
async def test_unknown_content_model_is_rejected(make_manager):
    manager = make_manager(content=[FakeAdapter("tier-1", [content_result()])])

    with pytest.raises(InvalidPayloadError):
        await manager.submit(
            "content_processing", {"transcript": "hello"}, options={"model": "gpt-99"}
        )


@pytest.mark.asyncio
async def test_full_queue_rejects_submission(make_manager):
    manager = make_manager(queue_capacity=1)
    await manager.submit("transcription", {"audio": b"\x01"})

    with pytest.raises(QueueFullError):
        await manager.submit("transcription", {"audio": b"\x02"})

    jobs = await manager.list_jobs()
    assert len(jobs) == 1
    assert manager.get_stats().pending == 1


@pytest.mark.asyncio
async def test_new_job_is_pending_with_defaults(make_manager):
    manager = make_manager()

    job_id = await manager.submit(JobKind.CONTENT_PROCESSING, {"transcript": "hello"})
    snapshot = await manager.get_status(job_id)

    assert snapshot.status == JobStatus.PENDING
    assert snapshot.attempts == 0
    assert snapshot.max_attempts == 3
    assert snapshot.priority == manager.settings.content_priority
    assert snapshot.result is None


@pytest.mark.asyncio
async def test_unknown_job_id(make_manager):
    manager = make_manager()

    with pytest.raises(JobNotFoundError):
        await manager.get_status("missing")
    with pytest.raises(JobNotFoundError):
        await manager.subscribe("missing")


@pytest.mark.asyncio
async def test_higher_priority_jobs_run_first(make_manager):
    adapter = FakeAdapter("deepgram", [transcription_result()])
    manager = make_manager(transcription=[adapter], worker_pool_size=1)
    job_ids = [
        await manager.submit("transcription", {"audio": b"\x01", "note_id": note_id}, priority=priority)
        for note_id, priority in [("low", 1), ("high", 10), ("mid", 5), ("low-2", 1)]
    ]

    async with manager:
        for job_id in job_ids:
            await manager.wait_for(job_id, timeout=5)

    assert [p.note_id for p in adapter.calls] == ["high", "mid", "low", "low-2"]


@pytest.mark.asyncio
async def test_submit_batch_is_all_or_nothing(make_manager):
    manager = make_manager(content=[FakeAdapter("tier-1", [content_result()])])

    with pytest.raises(InvalidPayloadError):
        await manager.submit_batch(
            [
                {"kind": "content_processing", "payload": {"transcript": "ok"}},
                {"kind": "content_processing", "payload": {"transcript": ""}},
            ]
        )
    assert await manager.list_jobs() == []

    job_ids = await manager.submit_batch(
        [
            {"kind": "content_processing", "payload": {"transcript": "first"}},
            {"kind": "content_processing", "payload": {"transcript": "second"}, "priority": 9},
        ]
    )
    assert len(job_ids) == 2
    assert (await manager.get_status(job_ids[1])).priority == 9


@pytest.mark.asyncio
async def test_batch_larger_than_free_capacity_is_rejected(make_manager):
    manager = make_manager(queue_capacity=2)

    with pytest.raises(QueueFullError):
        await manager.submit_batch(
            [{"kind": "transcription", "payload": {"audio": b"\x01"}} for _ in range(3)]
        )
    assert await manager.list_jobs() == []


class YieldingStore(InMemoryKeyValueStore):
    """Backend whose writes yield to the event loop, like a networked store."""

    async def set(self, key, value):
        await asyncio.sleep(0)
        await super().set(key, value)


@pytest.mark.asyncio
async def test_concurrent_submit_does_not_strand_batch_jobs(make_manager):
    manager = make_manager(backend=YieldingStore(), queue_capacity=2)
    batch = [
        {"kind": "content_processing", "payload": {"transcript": transcript}}
        for transcript in ("one", "two")
    ]

    results = await asyncio.gather(
        manager.submit_batch(batch),
        manager.submit("content_processing", {"transcript": "three"}),
        return_exceptions=True,
    )

    assert isinstance(results[0], QueueFullError)
    jobs = await manager.list_jobs()
    assert [j.job_id for j in jobs] == [results[1]]
    assert manager.queue.qsize() == 1
    assert results[1] in manager.queue


@pytest.mark.asyncio
async def test_wait_for_batch_returns_snapshots_in_order(make_manager):
    manager = make_manager(content=[FakeAdapter("tier-1", [content_result()], delay=0.01)])
    job_ids = await manager.submit_batch(
        [
            {"kind": "content_processing", "payload": {"transcript": transcript}}
            for transcript in ("first", "second", "third")
        ]
    )

    with pytest.raises(asyncio.TimeoutError):
        await manager.wait_for_batch(job_ids, timeout=0.01)

    async with manager:
        snapshots = await manager.wait_for_batch(job_ids, timeout=5)

    assert [s.job_id for s in snapshots] == job_ids
    assert all(s.status == JobStatus.COMPLETED for s in snapshots)


# ═══════════════════════════════════════════════════════════════════════════
# Stop and restart
# ═══════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_restart_resumes_job_waiting_for_retry(make_manager):
    primary = FakeAdapter(
        "deepgram",
        [AIClientConnectionError("refused"), transcription_result("after restart")],
    )
    manager = make_manager(transcription=[primary])
    manager.engine.backoff = lambda attempt: 60.0
    job_id = await manager.submit("transcription", {"audio": b"\x01"})
    updates = await manager.subscribe(job_id)

    await manager.start()
    while (await asyncio.wait_for(updates.get(), timeout=2)).status != JobStatus.RETRYING:
        pass
    await manager.stop()

    assert (await manager.get_status(job_id)).status == JobStatus.RETRYING
    assert job_id not in manager.queue

    async with manager:
        snapshot = await manager.wait_for(job_id, timeout=5)

    assert snapshot.status == JobStatus.COMPLETED
    assert snapshot.result.text == "after restart"
    assert snapshot.attempts == 2


@pytest.mark.asyncio
async def test_stop_mid_attempt_returns_job_to_retrying(make_manager):
    primary = FakeAdapter("deepgram", [transcription_result("finished")], delay=0.3)
    manager = make_manager(transcription=[primary], per_attempt_timeout_ms=5000)
    job_id = await manager.submit("transcription", {"audio": b"\x01"})
    updates = await manager.subscribe(job_id)

    await manager.start()
    assert (await asyncio.wait_for(updates.get(), timeout=2)).status == JobStatus.PROCESSING
    await manager.stop()

    interrupted = await manager.get_status(job_id)
    assert interrupted.status == JobStatus.RETRYING
    assert interrupted.attempts == 0
    assert manager.get_stats().processing == 0

    async with manager:
        snapshot = await manager.wait_for(job_id, timeout=5)

    assert snapshot.status == JobStatus.COMPLETED
    assert snapshot.result.text == "finished"
    assert snapshot.attempts == 1


# ═══════════════════════════════════════════════════════════════════════════
# Notifications and statistics
# ═══════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_subscriber_receives_each_transition_once(make_manager):
    tier = FakeAdapter("tier-1", [content_result()], delay=0.05)
    manager = make_manager(content=[tier])
    job_id = await manager.submit("content_processing", {"transcript": "hello"})
    updates = await manager.subscribe(job_id)

    async with manager:
        snapshots = await _collect_until_terminal(updates)
        await asyncio.sleep(0.05)

    assert [s.status for s in snapshots] == [JobStatus.PROCESSING, JobStatus.COMPLETED]
    assert updates.empty()


@pytest.mark.asyncio
async def test_subscribe_to_finished_job_gets_final_snapshot(make_manager):
    manager = make_manager(content=[FakeAdapter("tier-1", [content_result()])])

    async with manager:
        snapshot = await manager.process("content_processing", {"transcript": "hello"}, timeout=5)
        updates = await manager.subscribe(snapshot.job_id)

    assert updates.qsize() == 1
    assert (await updates.get()).status == JobStatus.COMPLETED


@pytest.mark.asyncio
async def test_wait_for_times_out_on_idle_pipeline(make_manager):
    manager = make_manager()
    job_id = await manager.submit("transcription", {"audio": b"\x01"})

    with pytest.raises(asyncio.TimeoutError):
        await manager.wait_for(job_id, timeout=0.01)

    assert (await manager.get_status(job_id)).status == JobStatus.PENDING


@pytest.mark.asyncio
async def test_stats_and_clear_finished(make_manager):
    good = FakeAdapter("deepgram", [transcription_result()])
    manager = make_manager(transcription=[good], content=[FakeAdapter("tier-1", [content_result()])])

    async with manager:
        await manager.process("transcription", {"audio": b"\x01"}, timeout=5)
        await manager.process("content_processing", {"transcript": "hello"}, timeout=5)
        await manager.process("content_processing", {"transcript": "bye"}, timeout=5)

    stats = manager.get_stats()
    assert stats.completed == 3
    assert stats.failed == 0
    assert stats.pending == 0
    assert stats.window_size == 3
    assert stats.average_processing_time >= 0.0
    assert stats.p95_processing_time >= stats.p50_processing_time

    assert await manager.clear_finished() == 3
    assert await manager.list_jobs() == []
    assert manager.get_stats().completed == 3


@pytest.mark.asyncio
async def test_list_jobs_filters_by_status(make_manager):
    manager = make_manager(content=[FakeAdapter("tier-1", [content_result()])])

    async with manager:
        done = await manager.process("content_processing", {"transcript": "one"}, timeout=5)
    pending_id = await manager.submit("content_processing", {"transcript": "two"})

    completed = await manager.list_jobs(JobStatus.COMPLETED)
    pending = await manager.list_jobs(JobStatus.PENDING)

    assert [s.job_id for s in completed] == [done.job_id]
    assert [s.job_id for s in pending] == [pending_id]


@pytest.mark.asyncio
async def test_health_check_lists_registered_providers(make_manager):
    manager = make_manager(
        transcription=[FakeAdapter("deepgram", [None])],
        content=[FakeAdapter("tier-1", [None])],
    )

    assert manager.health_check() == {"deepgram": True, "tier-1": True}


@pytest.mark.asyncio
async def test_estimate_content_prices_selected_tier(make_manager, settings):
    manager = make_manager()
    manager.strategy = ProcessingStrategy(settings)

    estimate = manager.estimate_content("a" * 400, "claude-haiku-4-5")

    assert estimate.model == "claude-haiku-4-5"
    assert estimate.estimated_cost == pytest.approx(0.0042)
    with pytest.raises(InvalidPayloadError):
        manager.estimate_content("hello", "gpt-99")
    with pytest.raises(InvalidPayloadError):
        manager.estimate_content("  ")
