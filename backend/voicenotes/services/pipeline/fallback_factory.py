"""
Fallback result factory for content processing.

Creates minimal valid results when no model tier could process a
transcript, so the job can complete in transcription-only mode.
"""

import logging

from voicenotes.models.schemas import ContentPayload, ContentResult, ContentSummary
from voicenotes.utils.text_utils import count_words, split_sentences

logger = logging.getLogger(__name__)

TRANSCRIPTION_ONLY_MODEL = "transcription-only"
TRANSCRIPTION_ONLY_NOTICE = "AI processing unavailable - showing transcription only"
TRANSCRIPTION_ONLY_CONFIDENCE = 0.3


class FallbackFactory:
    """
    Factory for degraded content results.

    The result has the regular ContentResult structure with minimal content
    and ``degraded=True``, so callers can show a reduced-functionality notice
    without sniffing the model name.

    Example:
        factory = FallbackFactory()
        result = factory.create_content_result(payload, reason="all tiers failed")
        result.degraded  # True
    """

    def create_content_result(
        self,
        payload: ContentPayload,
        reason: str | None = None,
    ) -> ContentResult:
        """
        Create transcription-only result from the transcript itself.

        The summary is the first three sentences of the transcript, or its
        first 200 characters when no sentence boundary is found.

        Args:
            payload: Content payload that could not be processed
            reason: Why AI processing was skipped

        Returns:
            Degraded ContentResult
        """
        transcript = payload.transcript
        logger.info(
            f"Creating transcription-only result for note {payload.note_id or '-'}: {reason}"
        )

        return ContentResult(
            summary=ContentSummary(
                summary=self._summarize(transcript),
                key_points=[TRANSCRIPTION_ONLY_NOTICE],
                confidence=TRANSCRIPTION_ONLY_CONFIDENCE,
                word_count=count_words(transcript),
            ),
            model=TRANSCRIPTION_ONLY_MODEL,
            degraded=True,
            degraded_reason=reason,
        )

    @staticmethod
    def _summarize(transcript: str) -> str:
        sentences = split_sentences(transcript)
        if sentences:
            return ". ".join(sentences[:3]).strip() + "."

        essence = transcript[:200]
        if len(transcript) > 200:
            essence += "..."
        return essence
