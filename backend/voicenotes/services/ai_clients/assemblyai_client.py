"""
AssemblyAI transcription client implementation.

AssemblyAI is asynchronous on its side: audio is uploaded, a transcript
is created, then polled until it completes or errors.
"""

import asyncio
import logging
import time

import httpx

from voicenotes.config import Settings
from voicenotes.services.ai_clients.base import (
    AIClientConfig,
    AIClientConnectionError,
    AIClientOutputError,
    AIClientResponseError,
    AIClientTimeoutError,
    BaseAIClientImpl,
)

logger = logging.getLogger(__name__)


class AssemblyAIClient(BaseAIClientImpl):
    """
    Async HTTP client for AssemblyAI speech-to-text.

    Example:
        async with AssemblyAIClient.from_settings(settings) as client:
            result = await client.transcribe(audio_bytes)
            print(result["text"])
    """

    def __init__(
        self,
        config: AIClientConfig,
        default_language: str = "en",
        poll_interval: float = 3.0,
    ):
        """
        Initialize AssemblyAI client.

        Args:
            config: Client configuration with API key
            default_language: Default language code
            poll_interval: Seconds between transcript status polls
        """
        super().__init__(config)
        self.default_language = default_language
        self.poll_interval = poll_interval
        self.http_client = httpx.AsyncClient(timeout=None)

    @classmethod
    def from_settings(cls, settings: Settings) -> "AssemblyAIClient":
        """Create AssemblyAIClient from application settings."""
        config = AIClientConfig(
            base_url=settings.assemblyai_url,
            api_key=settings.assemblyai_api_key,
            timeout=30.0,
        )
        return cls(
            config=config,
            default_language=settings.transcription_language,
            poll_interval=settings.assemblyai_poll_interval,
        )

    @property
    def _headers(self) -> dict:
        return {"authorization": self.config.api_key or ""}

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.http_client.aclose()

    async def check_health(self) -> bool:
        """
        Check AssemblyAI availability and key validity.

        Returns:
            True if the transcript listing endpoint answers 200
        """
        try:
            response = await self.http_client.get(
                f"{self.config.base_url}/v2/transcript",
                params={"limit": 1},
                headers=self._headers,
                timeout=5.0,
            )
            if response.status_code == 200:
                logger.debug("AssemblyAI available")
                return True
            logger.debug(f"AssemblyAI health check: HTTP {response.status_code}")
        except httpx.HTTPError as e:
            logger.debug(f"AssemblyAI not available: {e}")
        return False

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        """Send one request and map httpx failures to AIClientError."""
        try:
            response = await self.http_client.request(
                method,
                f"{self.config.base_url}{path}",
                headers={**self._headers, **kwargs.pop("headers", {})},
                timeout=self.config.timeout,
                **kwargs,
            )
            response.raise_for_status()
            return response.json()

        except httpx.TimeoutException as e:
            logger.error(f"AssemblyAI timeout on {path}: {e}")
            raise AIClientTimeoutError(
                f"AssemblyAI request timeout ({path})",
                provider="assemblyai",
                original_error=e,
            ) from e

        except httpx.HTTPStatusError as e:
            logger.error(
                f"AssemblyAI HTTP error on {path}: "
                f"{e.response.status_code} - {e.response.text[:200]}"
            )
            raise AIClientResponseError(
                f"AssemblyAI failed: HTTP {e.response.status_code}",
                provider="assemblyai",
                status_code=e.response.status_code,
                response_body=e.response.text[:500],
                original_error=e,
            ) from e

        except httpx.HTTPError as e:
            logger.error(f"Cannot reach AssemblyAI: {type(e).__name__}: {e}")
            raise AIClientConnectionError(
                f"Cannot connect to AssemblyAI at {self.config.base_url}",
                provider="assemblyai",
                original_error=e,
            ) from e

    async def transcribe(
        self,
        audio: bytes | None = None,
        audio_url: str | None = None,
        language: str | None = None,
        speaker_labels: bool = True,
        punctuate: bool = True,
    ) -> dict:
        """
        Upload (if needed), create and poll a transcript.

        Args:
            audio: Raw audio buffer
            audio_url: Publicly fetchable audio URL (used if audio is None)
            language: Language code (default: from settings)
            speaker_labels: Enable speaker diarization
            punctuate: Enable punctuation and text formatting

        Returns:
            Completed AssemblyAI transcript JSON

        Raises:
            AIClientError: If any step fails
        """
        language = language or self.default_language
        start_time = time.monotonic()

        if audio is not None:
            logger.info(f"AssemblyAI: uploading {len(audio) / 1024:.1f} KB")
            upload = await self._request(
                "POST",
                "/v2/upload",
                content=audio,
                headers={"Content-Type": "application/octet-stream"},
            )
            audio_url = upload["upload_url"]

        created = await self._request(
            "POST",
            "/v2/transcript",
            json={
                "audio_url": audio_url,
                "language_code": language,
                "speaker_labels": speaker_labels,
                "punctuate": punctuate,
                "format_text": punctuate,
            },
        )
        transcript_id = created["id"]
        logger.debug(f"AssemblyAI transcript created: {transcript_id}")

        while True:
            result = await self._request("GET", f"/v2/transcript/{transcript_id}")
            status = result.get("status")

            if status == "completed":
                elapsed = time.monotonic() - start_time
                logger.info(f"AssemblyAI complete: {transcript_id}, elapsed {elapsed:.1f}s")
                return result

            if status == "error":
                raise AIClientOutputError(
                    f"AssemblyAI transcription error: {result.get('error', 'unknown')}",
                    provider="assemblyai",
                )

            await asyncio.sleep(self.poll_interval)
