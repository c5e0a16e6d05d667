"""
Pydantic models for the voice note pipeline.
"""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, computed_field, model_validator


class JobKind(str, Enum):
    """Kind of pipeline work."""
    TRANSCRIPTION = "transcription"
    CONTENT_PROCESSING = "content_processing"


class JobStatus(str, Enum):
    """Status of a pipeline job.

    pending → processing → completed | retrying | failed
    retrying → processing
    """
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


# ═══════════════════════════════════════════════════════════════════════════
# Payloads
# ═══════════════════════════════════════════════════════════════════════════


class TranscriptionOptions(BaseModel):
    """Options forwarded to speech-to-text providers."""

    language: str | None = None
    model: str | None = None
    enable_speaker_diarization: bool = True
    enable_punctuation: bool = True


class TranscriptionPayload(BaseModel):
    """Input for a transcription job: raw audio or a fetchable URL."""

    note_id: str = ""
    user_id: str = ""
    audio: bytes | None = Field(default=None, repr=False)
    audio_url: str | None = None
    mime_type: str = "audio/webm"
    options: TranscriptionOptions = Field(default_factory=TranscriptionOptions)

    @model_validator(mode="after")
    def _check_audio_source(self) -> "TranscriptionPayload":
        if self.audio is None and not self.audio_url:
            raise ValueError("either audio or audio_url is required")
        if self.audio is not None and self.audio_url:
            raise ValueError("audio and audio_url are mutually exclusive")
        if self.audio is not None and len(self.audio) == 0:
            raise ValueError("audio buffer is empty")
        return self


class ContentOptions(BaseModel):
    """Options for LLM content processing."""

    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None


class ContentPayload(BaseModel):
    """Input for a content-processing job."""

    note_id: str = ""
    user_id: str = ""
    transcript: str
    cache_key: str | None = None
    options: ContentOptions = Field(default_factory=ContentOptions)

    @model_validator(mode="after")
    def _check_transcript(self) -> "ContentPayload":
        if not self.transcript.strip():
            raise ValueError("transcript is empty")
        return self


# ═══════════════════════════════════════════════════════════════════════════
# Transcription results
# ═══════════════════════════════════════════════════════════════════════════


class WordTiming(BaseModel):
    """Single recognized word with timing."""

    word: str
    start: float
    end: float
    confidence: float = 0.0
    speaker: int | None = None


class SpeakerSegment(BaseModel):
    """Contiguous speech by one speaker."""

    speaker: int
    text: str
    start: float
    end: float
    confidence: float = 0.0


class TranscriptionResult(BaseModel):
    """Successful speech-to-text output."""

    kind: Literal["transcription"] = "transcription"
    text: str
    confidence: float
    words: list[WordTiming] = Field(default_factory=list)
    speakers: list[SpeakerSegment] = Field(default_factory=list)
    provider: str = ""
    processing_time_ms: float = 0.0
    duration_seconds: float | None = None
    language: str | None = None
    model: str | None = None


# ═══════════════════════════════════════════════════════════════════════════
# Content results
# ═══════════════════════════════════════════════════════════════════════════


class ActionItem(BaseModel):
    """Task extracted from a transcript."""

    text: str
    priority: Literal["high", "medium", "low"] = "medium"
    due_date: str | None = None
    completed: bool = False


class ImportantDate(BaseModel):
    """Date mentioned in a transcript, with context."""

    date: str
    context: str = ""


class Entity(BaseModel):
    """Named entity found in a transcript."""

    type: Literal["person", "organization", "location", "other"] = "other"
    value: str
    confidence: float = 0.0


class ContentSummary(BaseModel):
    """Summary section of a content result."""

    summary: str
    key_points: list[str] = Field(default_factory=list)
    action_items: list[ActionItem] = Field(default_factory=list)
    important_dates: list[str] = Field(default_factory=list)
    confidence: float = 0.0
    word_count: int = 0


class ContentInsights(BaseModel):
    """Insight section of a content result."""

    key_topics: list[str] = Field(default_factory=list)
    action_items: list[ActionItem] = Field(default_factory=list)
    important_dates: list[ImportantDate] = Field(default_factory=list)
    sentiment: Literal["positive", "neutral", "negative"] = "neutral"
    entities: list[Entity] = Field(default_factory=list)


class TokenUsage(BaseModel):
    """Token accounting for a content result."""

    input_tokens: int = 0
    output_tokens: int = 0

    @computed_field
    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class ContentResult(BaseModel):
    """LLM content-processing output.

    ``degraded`` marks a transcription-only result produced when no model
    tier could process the transcript.
    """

    kind: Literal["content_processing"] = "content_processing"
    summary: ContentSummary
    insights: ContentInsights = Field(default_factory=ContentInsights)
    model: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    cost: float = 0.0
    cached: bool = False
    degraded: bool = False
    degraded_reason: str | None = None
    processing_time_ms: float = 0.0


JobResult = TranscriptionResult | ContentResult


# ═══════════════════════════════════════════════════════════════════════════
# Jobs
# ═══════════════════════════════════════════════════════════════════════════


class Job(BaseModel):
    """Job record owned by the job store."""

    id: str
    kind: JobKind
    status: JobStatus = JobStatus.PENDING
    payload: TranscriptionPayload | ContentPayload
    priority: int = 0
    seq: int = 0
    attempts: int = 0
    max_attempts: int = 3
    last_error: str | None = None
    result: JobResult | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    processing_time_ms: float | None = None


class JobSnapshot(BaseModel):
    """Read-only view of a job handed to callers."""

    model_config = {"frozen": True}

    job_id: str
    kind: JobKind
    status: JobStatus
    priority: int
    attempts: int
    max_attempts: int
    result: JobResult | None = None
    last_error: str | None = None
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    processing_time_ms: float | None = None

    @computed_field
    @property
    def degraded(self) -> bool:
        """True when the job completed with reduced functionality."""
        return isinstance(self.result, ContentResult) and self.result.degraded

    @classmethod
    def from_job(cls, job: Job) -> "JobSnapshot":
        return cls(
            job_id=job.id,
            kind=job.kind,
            status=job.status,
            priority=job.priority,
            attempts=job.attempts,
            max_attempts=job.max_attempts,
            result=job.result.model_copy(deep=True) if job.result else None,
            last_error=job.last_error,
            created_at=job.created_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
            processing_time_ms=job.processing_time_ms,
        )


# ═══════════════════════════════════════════════════════════════════════════
# Health and statistics
# ═══════════════════════════════════════════════════════════════════════════


class ProviderHealth(BaseModel):
    """Last-known health of one provider."""

    model_config = {"frozen": True}

    provider: str
    available: bool = True
    last_checked_at: datetime | None = None
    consecutive_failures: int = 0
    last_latency_ms: float | None = None
    last_error: str | None = None


class PipelineStats(BaseModel):
    """Aggregate pipeline counters and latency figures (milliseconds)."""

    pending: int = 0
    processing: int = 0
    retrying: int = 0
    completed: int = 0
    failed: int = 0
    total_processing_time: float = 0.0
    average_processing_time: float = 0.0
    p50_processing_time: float = 0.0
    p95_processing_time: float = 0.0
    window_size: int = 0


class CacheStats(BaseModel):
    """Content result cache counters."""

    entries: int = 0
    hits: int = 0
    misses: int = 0
    coalesced: int = 0
    in_flight: int = 0
    hit_rate: float = 0.0


class CostEstimate(BaseModel):
    """Predicted tier and USD cost of processing a transcript."""

    model: str | None = None
    input_tokens: int = 0
    estimated_cost: float = 0.0


# ═══════════════════════════════════════════════════════════════════════════
# API
# ═══════════════════════════════════════════════════════════════════════════


class ContentRequest(BaseModel):
    """Request to process a transcript."""

    transcript: str = Field(..., description="Transcript text to summarize")
    note_id: str = ""
    user_id: str = ""
    cache_key: str | None = None
    options: ContentOptions = Field(default_factory=ContentOptions)
    priority: int | None = None


class EstimateRequest(BaseModel):
    """Request to price a transcript before submitting it."""

    transcript: str = Field(..., min_length=1)
    model: str | None = None


class JobAccepted(BaseModel):
    """Response to an accepted submission."""

    job_id: str
    status: JobStatus = JobStatus.PENDING


class ErrorResponse(BaseModel):
    """Error body returned by the HTTP layer."""

    code: str
    message: str
    retryable: bool = False
    details: dict = Field(default_factory=dict)
