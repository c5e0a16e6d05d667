"""
Ollama AI client implementation.

Async HTTP client for a local Ollama server, used as the last-resort
content tier. Ollama doesn't report token usage, so ChatUsage(0, 0) is
returned.
"""

import logging

import httpx

from voicenotes.config import Settings
from voicenotes.services.ai_clients.base import (
    AIClientConfig,
    AIClientConnectionError,
    AIClientOutputError,
    AIClientResponseError,
    AIClientTimeoutError,
    BaseAIClientImpl,
    ChatUsage,
)

logger = logging.getLogger(__name__)


class OllamaClient(BaseAIClientImpl):
    """
    Async HTTP client for Ollama's OpenAI-compatible chat endpoint.

    Example:
        async with OllamaClient.from_settings(settings, "qwen2.5:14b") as client:
            available = await client.check_health()
            content, _ = await client.chat([{"role": "user", "content": "Hi"}])
    """

    def __init__(
        self,
        config: AIClientConfig,
        default_model: str = "qwen2.5:14b",
    ):
        """
        Initialize Ollama client.

        Args:
            config: AI client configuration with Ollama URL
            default_model: Default model for chat
        """
        super().__init__(config)
        self.default_model = default_model
        self.http_client = httpx.AsyncClient(timeout=None)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        default_model: str = "qwen2.5:14b",
    ) -> "OllamaClient":
        """Create OllamaClient from application settings."""
        config = AIClientConfig(
            base_url=settings.ollama_url,
            timeout=settings.llm_timeout,
        )
        return cls(config=config, default_model=default_model)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.http_client.aclose()

    async def check_health(self) -> bool:
        """
        Check availability of Ollama service.

        Returns:
            True if /api/version answers 200
        """
        try:
            response = await self.http_client.get(
                f"{self.config.base_url}/api/version",
                timeout=5.0,
            )
            if response.status_code == 200:
                logger.debug(f"Ollama available, version: {response.json().get('version')}")
                return True
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Ollama not available: {e}")
        return False

    async def chat(
        self,
        messages: list[dict],
        model: str | None = None,
        temperature: float = 0.7,
        num_predict: int | None = None,
    ) -> tuple[str, ChatUsage]:
        """
        Chat completion using Ollama OpenAI-compatible endpoint.

        Args:
            messages: List of chat messages [{"role": "user", "content": "..."}]
            model: Model name (default: from constructor)
            temperature: Sampling temperature (default: 0.7)
            num_predict: Max tokens to generate (default: None = model default)

        Returns:
            Tuple of (response_content, ChatUsage(0, 0))

        Raises:
            AIClientError: If chat completion fails
        """
        model = model or self.default_model

        logger.debug(f"Chat with {model}, {len(messages)} messages")

        request_body: dict = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
        }
        if num_predict is not None:
            request_body["max_tokens"] = num_predict

        try:
            response = await self.http_client.post(
                f"{self.config.base_url}/v1/chat/completions",
                json=request_body,
                timeout=self.config.timeout,
            )
            response.raise_for_status()
            result = response.json()

        except httpx.TimeoutException as e:
            logger.error(f"Chat timeout with {model}: {e}")
            raise AIClientTimeoutError(
                "Chat timeout",
                provider="ollama",
                model=model,
                original_error=e,
            ) from e

        except httpx.HTTPStatusError as e:
            logger.error(f"Chat HTTP error: {e.response.status_code}")
            raise AIClientResponseError(
                f"Chat failed: HTTP {e.response.status_code}",
                provider="ollama",
                model=model,
                status_code=e.response.status_code,
                response_body=e.response.text[:500],
                original_error=e,
            ) from e

        except httpx.HTTPError as e:
            logger.error(f"Cannot connect to Ollama: {e}")
            raise AIClientConnectionError(
                f"Cannot connect to Ollama at {self.config.base_url}",
                provider="ollama",
                model=model,
                original_error=e,
            ) from e

        try:
            content = result["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise AIClientOutputError(
                "Malformed chat response from Ollama",
                provider="ollama",
                model=model,
                original_error=e,
            ) from e

        if not content or not content.strip():
            logger.error(f"Empty response from LLM! Model: {model}")
            raise AIClientOutputError("Empty response from Ollama", provider="ollama", model=model)

        logger.debug(f"Chat response: {len(content)} chars")
        return content, ChatUsage()
