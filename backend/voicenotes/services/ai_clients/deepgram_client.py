"""
Deepgram transcription client implementation.

Async HTTP client for Deepgram's prerecorded /v1/listen API.
Retries are not done here: the retry/fallback engine owns them.
"""

import logging
import time

import httpx

from voicenotes.config import Settings
from voicenotes.services.ai_clients.base import (
    AIClientConfig,
    AIClientConnectionError,
    AIClientResponseError,
    AIClientTimeoutError,
    BaseAIClientImpl,
)

logger = logging.getLogger(__name__)

DEFAULT_DEEPGRAM_MODEL = "nova-2"


class DeepgramClient(BaseAIClientImpl):
    """
    Async HTTP client for Deepgram speech-to-text.

    Example:
        async with DeepgramClient.from_settings(settings) as client:
            available = await client.check_health()
            result = await client.transcribe(audio_bytes, mime_type="audio/webm")
    """

    def __init__(
        self,
        config: AIClientConfig,
        default_model: str = DEFAULT_DEEPGRAM_MODEL,
        default_language: str = "en",
    ):
        """
        Initialize Deepgram client.

        Args:
            config: Client configuration with API key
            default_model: Default recognition model
            default_language: Default language code
        """
        super().__init__(config)
        self.default_model = default_model
        self.default_language = default_language
        # No global timeout - each request sets its own timeout explicitly
        self.http_client = httpx.AsyncClient(timeout=None)

    @classmethod
    def from_settings(cls, settings: Settings) -> "DeepgramClient":
        """Create DeepgramClient from application settings."""
        config = AIClientConfig(
            base_url=settings.deepgram_url,
            api_key=settings.deepgram_api_key,
            timeout=settings.per_attempt_timeout_ms / 1000,
        )
        return cls(
            config=config,
            default_model=settings.deepgram_model,
            default_language=settings.transcription_language,
        )

    @property
    def _headers(self) -> dict:
        return {"Authorization": f"Token {self.config.api_key}"}

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.http_client.aclose()

    async def check_health(self) -> bool:
        """
        Check Deepgram availability and key validity.

        Returns:
            True if the projects endpoint answers 200
        """
        try:
            response = await self.http_client.get(
                f"{self.config.base_url}/v1/projects",
                headers=self._headers,
                timeout=5.0,
            )
            if response.status_code == 200:
                logger.debug("Deepgram available")
                return True
            logger.debug(f"Deepgram health check: HTTP {response.status_code}")
        except httpx.HTTPError as e:
            logger.debug(f"Deepgram not available: {e}")
        return False

    async def transcribe(
        self,
        audio: bytes | None = None,
        audio_url: str | None = None,
        mime_type: str = "audio/webm",
        language: str | None = None,
        model: str | None = None,
        diarize: bool = True,
        punctuate: bool = True,
    ) -> dict:
        """
        Transcribe audio bytes or a remote URL.

        Args:
            audio: Raw audio buffer
            audio_url: Publicly fetchable audio URL (used if audio is None)
            mime_type: Content type of the audio buffer
            language: Language code (default: from settings)
            model: Recognition model (default: nova-2)
            diarize: Enable speaker diarization
            punctuate: Enable punctuation

        Returns:
            Raw Deepgram response JSON

        Raises:
            AIClientError: If transcription fails
        """
        model = model or self.default_model
        language = language or self.default_language

        params = {
            "model": model,
            "language": language,
            "punctuate": str(punctuate).lower(),
            "diarize": str(diarize).lower(),
            "utterances": "true",
            "smart_format": "true",
        }
        url = f"{self.config.base_url}/v1/listen"
        start_time = time.monotonic()

        try:
            if audio is not None:
                logger.info(f"Deepgram: transcribing {len(audio) / 1024:.1f} KB ({mime_type})")
                response = await self.http_client.post(
                    url,
                    params=params,
                    headers={**self._headers, "Content-Type": mime_type},
                    content=audio,
                    timeout=self.config.timeout,
                )
            else:
                logger.info(f"Deepgram: transcribing URL {audio_url}")
                response = await self.http_client.post(
                    url,
                    params=params,
                    headers=self._headers,
                    json={"url": audio_url},
                    timeout=self.config.timeout,
                )

            response.raise_for_status()
            result = response.json()

            elapsed = time.monotonic() - start_time
            duration = result.get("metadata", {}).get("duration") or 0
            logger.info(f"Deepgram complete: duration {duration:.0f}s, elapsed {elapsed:.1f}s")
            return result

        except httpx.TimeoutException as e:
            elapsed = time.monotonic() - start_time
            logger.error(f"Deepgram timeout after {elapsed:.1f}s: {e}")
            raise AIClientTimeoutError(
                f"Transcription timeout after {elapsed:.1f}s",
                provider="deepgram",
                model=model,
                original_error=e,
            ) from e

        except httpx.HTTPStatusError as e:
            logger.error(
                f"Deepgram HTTP error: {e.response.status_code} - {e.response.text[:200]}"
            )
            raise AIClientResponseError(
                f"Transcription failed: HTTP {e.response.status_code}",
                provider="deepgram",
                model=model,
                status_code=e.response.status_code,
                response_body=e.response.text[:500],
                original_error=e,
            ) from e

        except httpx.HTTPError as e:
            logger.error(f"Cannot reach Deepgram: {type(e).__name__}: {e}")
            raise AIClientConnectionError(
                f"Cannot connect to Deepgram at {self.config.base_url}",
                provider="deepgram",
                original_error=e,
            ) from e
