"""
Base client protocol and error types for external AI services.

Speech-to-text clients (Deepgram, AssemblyAI) and LLM clients (Claude,
Ollama) raise the same AIClientError family so provider adapters can
classify failures uniformly.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass
class AIClientConfig:
    """
    Configuration for AI client instances.

    Attributes:
        base_url: API endpoint URL
        timeout: Request timeout in seconds
        api_key: Optional API key for authenticated services
        max_retries: SDK-level retries for transient errors (0 = none)
    """

    base_url: str
    timeout: float = 300.0
    api_key: str | None = None
    max_retries: int = 0


@dataclass
class ChatUsage:
    """
    Token usage statistics from LLM response.

    For providers without usage tracking, returns zeros.

    Attributes:
        input_tokens: Tokens in the input prompt
        output_tokens: Tokens generated in response
    """

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        """Total tokens used."""
        return self.input_tokens + self.output_tokens


@runtime_checkable
class BaseAIClient(Protocol):
    """
    Protocol for LLM chat clients used by content-processing tiers.

    Example:
        async def summarize(client: BaseAIClient, text: str) -> str:
            content, usage = await client.chat(
                [{"role": "user", "content": text}], model="claude-haiku-4-5"
            )
            return content
    """

    async def chat(
        self,
        messages: list[dict],
        model: str | None = None,
        temperature: float = 0.7,
        num_predict: int | None = None,
    ) -> tuple[str, ChatUsage]:
        """
        Chat completion with message history.

        Returns:
            Tuple of (response_content, ChatUsage)

        Raises:
            AIClientError: If chat completion fails
        """
        ...

    async def check_health(self) -> bool:
        """Lightweight availability check."""
        ...

    async def close(self) -> None:
        """Close the client and release resources."""
        ...


class AIClientError(Exception):
    """
    Base exception for AI client errors.

    Attributes:
        message: Error description
        provider: AI provider name (deepgram, claude, etc.)
        model: Model that caused the error
        original_error: Underlying exception if available
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        model: str | None = None,
        original_error: Exception | None = None,
    ):
        self.message = message
        self.provider = provider
        self.model = model
        self.original_error = original_error
        super().__init__(message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.provider:
            parts.append(f"provider={self.provider}")
        if self.model:
            parts.append(f"model={self.model}")
        return " | ".join(parts)


class AIClientTimeoutError(AIClientError):
    """Raised when a request times out."""

    pass


class AIClientConnectionError(AIClientError):
    """Raised when connection to AI service fails."""

    pass


class AIClientResponseError(AIClientError):
    """
    Raised when AI service returns an error response.

    Attributes:
        status_code: HTTP status code if available
        response_body: Response body if available
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.response_body = response_body


class AIClientOutputError(AIClientError):
    """Raised when a service answers 2xx but the payload is unusable."""

    pass


class BaseAIClientImpl(ABC):
    """
    Abstract base class for AI client implementations.

    Provides the async context manager protocol.
    """

    def __init__(self, config: AIClientConfig):
        self.config = config

    @abstractmethod
    async def close(self) -> None:
        """Close the client and release resources."""
        pass

    @abstractmethod
    async def check_health(self) -> bool:
        """Lightweight availability check."""
        pass

    async def __aenter__(self) -> "BaseAIClientImpl":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
