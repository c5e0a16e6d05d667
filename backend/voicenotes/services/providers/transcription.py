"""
Speech-to-text provider adapters.

DeepgramAdapter is the primary provider, AssemblyAIAdapter the secondary.
Both map their service's response into TranscriptionResult.
"""

import logging
import time
from typing import Any

from voicenotes.models.schemas import (
    SpeakerSegment,
    TranscriptionPayload,
    TranscriptionResult,
    WordTiming,
)
from voicenotes.services.ai_clients import (
    AIClientOutputError,
    AssemblyAIClient,
    DeepgramClient,
)
from voicenotes.services.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)


class TranscriptionAdapter(ProviderAdapter[TranscriptionPayload, TranscriptionResult]):
    """Adapter for speech-to-text providers."""


class DeepgramAdapter(TranscriptionAdapter):
    """Primary transcription provider (Deepgram Nova-2)."""

    def __init__(self, client: DeepgramClient, name: str = "deepgram"):
        super().__init__(name)
        self.client = client

    async def probe(self) -> bool:
        return await self.client.check_health()

    async def close(self) -> None:
        await self.client.close()

    async def _invoke(
        self, payload: TranscriptionPayload, options: dict[str, Any]
    ) -> TranscriptionResult:
        opts = payload.options.model_copy(update=options)
        start = time.monotonic()

        raw = await self.client.transcribe(
            audio=payload.audio,
            audio_url=payload.audio_url,
            mime_type=payload.mime_type,
            language=opts.language,
            model=opts.model,
            diarize=opts.enable_speaker_diarization,
            punctuate=opts.enable_punctuation,
        )

        try:
            alternative = raw["results"]["channels"][0]["alternatives"][0]
        except (KeyError, IndexError, TypeError) as e:
            raise AIClientOutputError(
                "No transcription result returned from Deepgram",
                provider=self.name,
                original_error=e,
            ) from e

        words = [
            WordTiming(
                word=w.get("punctuated_word") or w.get("word", ""),
                start=float(w.get("start", 0.0)),
                end=float(w.get("end", 0.0)),
                confidence=float(w.get("confidence", 0.0)),
                speaker=w.get("speaker"),
            )
            for w in alternative.get("words", [])
        ]

        speakers: list[SpeakerSegment] = []
        if opts.enable_speaker_diarization:
            speakers = [
                SpeakerSegment(
                    speaker=int(u.get("speaker", 0)),
                    text=u.get("transcript", ""),
                    start=float(u.get("start", 0.0)),
                    end=float(u.get("end", 0.0)),
                    confidence=float(u.get("confidence", 0.0)),
                )
                for u in raw["results"].get("utterances") or []
            ]

        metadata = raw.get("metadata", {})
        return TranscriptionResult(
            text=alternative.get("transcript", ""),
            confidence=float(alternative.get("confidence", 0.0)),
            words=words,
            speakers=speakers,
            provider=self.name,
            processing_time_ms=(time.monotonic() - start) * 1000,
            duration_seconds=metadata.get("duration"),
            language=opts.language or self.client.default_language,
            model=opts.model or self.client.default_model,
        )


class AssemblyAIAdapter(TranscriptionAdapter):
    """Secondary transcription provider (AssemblyAI)."""

    def __init__(self, client: AssemblyAIClient, name: str = "assemblyai"):
        super().__init__(name)
        self.client = client

    async def probe(self) -> bool:
        return await self.client.check_health()

    async def close(self) -> None:
        await self.client.close()

    async def _invoke(
        self, payload: TranscriptionPayload, options: dict[str, Any]
    ) -> TranscriptionResult:
        opts = payload.options.model_copy(update=options)
        start = time.monotonic()

        raw = await self.client.transcribe(
            audio=payload.audio,
            audio_url=payload.audio_url,
            language=opts.language,
            speaker_labels=opts.enable_speaker_diarization,
            punctuate=opts.enable_punctuation,
        )

        # AssemblyAI reports times in milliseconds and speakers as letters
        words = [
            WordTiming(
                word=w.get("text", ""),
                start=w.get("start", 0) / 1000,
                end=w.get("end", 0) / 1000,
                confidence=float(w.get("confidence", 0.0)),
                speaker=_speaker_index(w.get("speaker")),
            )
            for w in raw.get("words") or []
        ]
        speakers = [
            SpeakerSegment(
                speaker=_speaker_index(u.get("speaker")) or 0,
                text=u.get("text", ""),
                start=u.get("start", 0) / 1000,
                end=u.get("end", 0) / 1000,
                confidence=float(u.get("confidence", 0.0)),
            )
            for u in raw.get("utterances") or []
        ]

        return TranscriptionResult(
            text=raw.get("text") or "",
            confidence=float(raw.get("confidence") or 0.0),
            words=words,
            speakers=speakers,
            provider=self.name,
            processing_time_ms=(time.monotonic() - start) * 1000,
            duration_seconds=raw.get("audio_duration"),
            language=raw.get("language_code") or opts.language,
            model="assemblyai",
        )


def _speaker_index(label: str | None) -> int | None:
    """Map AssemblyAI speaker labels ("A", "B", ...) to 0-based ints."""
    if not label:
        return None
    return ord(label.upper()[0]) - ord("A")
