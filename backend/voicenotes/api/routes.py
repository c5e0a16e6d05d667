"""
HTTP API routes for the voice note pipeline.

Provides endpoints for:
- Submitting transcription and content-processing jobs
- Estimating the cost of processing a transcript
- Querying job status and aggregate statistics
- Waiting for a job's terminal state
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile

from voicenotes.models.schemas import (
    ContentRequest,
    CostEstimate,
    EstimateRequest,
    JobAccepted,
    JobKind,
    JobSnapshot,
    JobStatus,
    PipelineStats,
)
from voicenotes.services.pipeline import PipelineManager

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["pipeline"])


def get_manager(request: Request) -> PipelineManager:
    """Pipeline manager created by the application lifespan."""
    return request.app.state.manager


@router.post("/transcriptions", response_model=JobAccepted, status_code=202)
async def submit_transcription(
    file: UploadFile | None = File(None),
    audio_url: str | None = Form(None),
    language: str | None = Form(None),
    note_id: str = Form(""),
    user_id: str = Form(""),
    priority: int | None = Form(None),
    manager: PipelineManager = Depends(get_manager),
) -> JobAccepted:
    """
    Submit recorded audio for transcription.

    Send either a multipart ``file`` or an ``audio_url``.

    Returns:
        JobAccepted with job_id for tracking

    Raises:
        400: Malformed payload
        429: Queue is full
    """
    audio = await file.read() if file is not None else None
    mime_type = file.content_type if file is not None and file.content_type else "audio/webm"

    job_id = await manager.submit(
        JobKind.TRANSCRIPTION,
        {
            "audio": audio,
            "audio_url": audio_url,
            "mime_type": mime_type,
            "note_id": note_id,
            "user_id": user_id,
        },
        options={"language": language} if language else None,
        priority=priority,
    )

    logger.info(f"Accepted transcription job {job_id} ({len(audio or b'')} bytes)")
    return JobAccepted(job_id=job_id)


@router.post("/content", response_model=JobAccepted, status_code=202)
async def submit_content(
    request: ContentRequest,
    manager: PipelineManager = Depends(get_manager),
) -> JobAccepted:
    """
    Submit a transcript for summarization and insight extraction.

    Raises:
        400: Malformed payload or unknown model
        429: Queue is full
    """
    job_id = await manager.submit(
        JobKind.CONTENT_PROCESSING,
        request.model_dump(exclude={"priority"}),
        priority=request.priority,
    )
    return JobAccepted(job_id=job_id)


@router.post("/content/estimate", response_model=CostEstimate)
async def estimate_content(
    request: EstimateRequest,
    manager: PipelineManager = Depends(get_manager),
) -> CostEstimate:
    """
    Predict the model tier and USD cost of processing a transcript.

    Raises:
        400: Blank transcript or unknown model
    """
    return manager.estimate_content(request.transcript, request.model)


@router.get("/jobs", response_model=list[JobSnapshot])
async def list_jobs(
    status: JobStatus | None = None,
    manager: PipelineManager = Depends(get_manager),
) -> list[JobSnapshot]:
    """List jobs, optionally filtered by status."""
    return await manager.list_jobs(status)


@router.delete("/jobs/finished")
async def clear_finished_jobs(manager: PipelineManager = Depends(get_manager)) -> dict:
    """Drop completed and failed jobs."""
    return {"cleared": await manager.clear_finished()}


@router.get("/jobs/{job_id}", response_model=JobSnapshot)
async def get_job_status(
    job_id: str,
    manager: PipelineManager = Depends(get_manager),
) -> JobSnapshot:
    """
    Get job status.

    Raises:
        404: Job not found
    """
    return await manager.get_status(job_id)


@router.get("/jobs/{job_id}/wait", response_model=JobSnapshot)
async def wait_for_job(
    job_id: str,
    timeout: float = 60.0,
    manager: PipelineManager = Depends(get_manager),
) -> JobSnapshot:
    """
    Block until the job completes or fails.

    Raises:
        404: Job not found
        408: Job still running after ``timeout`` seconds
    """
    try:
        return await manager.wait_for(job_id, timeout)
    except asyncio.TimeoutError:
        raise HTTPException(
            status_code=408,
            detail=f"Job {job_id} not finished after {timeout:.0f}s",
        )


@router.get("/stats", response_model=PipelineStats)
async def get_stats(manager: PipelineManager = Depends(get_manager)) -> PipelineStats:
    """Aggregate pipeline counters and processing times."""
    return manager.get_stats()
