"""
Provider adapters: uniform invoke/probe over external services.

- DeepgramAdapter / AssemblyAIAdapter: speech-to-text
- LLMTierAdapter: one content-processing model tier
"""

from voicenotes.services.providers.base import ProviderAdapter
from voicenotes.services.providers.content import LLMTierAdapter, calculate_confidence
from voicenotes.services.providers.transcription import (
    AssemblyAIAdapter,
    DeepgramAdapter,
    TranscriptionAdapter,
)

__all__ = [
    "ProviderAdapter",
    "TranscriptionAdapter",
    "DeepgramAdapter",
    "AssemblyAIAdapter",
    "LLMTierAdapter",
    "calculate_confidence",
]
