"""Pydantic models for the voice note pipeline."""

from voicenotes.models.schemas import (
    ActionItem,
    CacheStats,
    ContentInsights,
    ContentOptions,
    ContentPayload,
    ContentRequest,
    ContentResult,
    ContentSummary,
    CostEstimate,
    Entity,
    ErrorResponse,
    EstimateRequest,
    ImportantDate,
    Job,
    JobAccepted,
    JobKind,
    JobResult,
    JobSnapshot,
    JobStatus,
    PipelineStats,
    ProviderHealth,
    SpeakerSegment,
    TokenUsage,
    TranscriptionOptions,
    TranscriptionPayload,
    TranscriptionResult,
    WordTiming,
)

__all__ = [
    "ActionItem",
    "CacheStats",
    "ContentInsights",
    "ContentOptions",
    "ContentPayload",
    "ContentRequest",
    "ContentResult",
    "ContentSummary",
    "CostEstimate",
    "Entity",
    "ErrorResponse",
    "EstimateRequest",
    "ImportantDate",
    "Job",
    "JobAccepted",
    "JobKind",
    "JobResult",
    "JobSnapshot",
    "JobStatus",
    "PipelineStats",
    "ProviderHealth",
    "SpeakerSegment",
    "TokenUsage",
    "TranscriptionOptions",
    "TranscriptionPayload",
    "TranscriptionResult",
    "WordTiming",
]
