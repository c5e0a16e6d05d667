"""
Claude API client implementation.

Async client for Anthropic's Claude API used by cloud content tiers.
SDK retries are disabled by default so that every call the pipeline makes
is one provider attempt.
"""

import logging

from anthropic import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncAnthropic,
)

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

# Default Claude model (using alias for auto-updates)
DEFAULT_CLAUDE_MODEL = "claude-sonnet-4-5"


class ClaudeClient(BaseAIClientImpl):
    """
    Async client for Anthropic's Claude API.

    Example:
        async with ClaudeClient.from_settings(settings) as client:
            content, usage = await client.chat([
                {"role": "system", "content": "Respond with JSON."},
                {"role": "user", "content": "Summarize: ..."},
            ])
    """

    def __init__(
        self,
        config: AIClientConfig,
        default_model: str = DEFAULT_CLAUDE_MODEL,
    ):
        """
        Initialize Claude client.

        Args:
            config: AI client configuration with API key
            default_model: Default Claude model to use

        Raises:
            ValueError: If API key is not provided
        """
        super().__init__(config)
        self.default_model = default_model

        if not config.api_key:
            raise ValueError(
                "ClaudeClient requires API key. "
                "Set ANTHROPIC_API_KEY environment variable."
            )

        self.client = AsyncAnthropic(
            api_key=config.api_key,
            timeout=config.timeout,
            max_retries=config.max_retries,
        )

        logger.info(f"ClaudeClient initialized, model: {default_model}")

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        default_model: str = DEFAULT_CLAUDE_MODEL,
    ) -> "ClaudeClient":
        """
        Create ClaudeClient from application settings.

        Raises:
            ValueError: If ANTHROPIC_API_KEY not set
        """
        config = AIClientConfig(
            base_url="https://api.anthropic.com",
            api_key=settings.anthropic_api_key,
            timeout=settings.llm_timeout,
        )
        return cls(config=config, default_model=default_model)

    async def close(self) -> None:
        """Close the client and release resources."""
        await self.client.close()
        logger.debug("ClaudeClient closed")

    async def chat(
        self,
        messages: list[dict],
        model: str | None = None,
        temperature: float = 0.7,
        num_predict: int | None = None,
    ) -> tuple[str, ChatUsage]:
        """
        Chat completion using Claude Messages API.

        "system" messages become the system parameter; "user" and
        "assistant" messages are passed as-is.

        Args:
            messages: List of chat messages [{"role": "user", "content": "..."}]
            model: Model name (default: claude-sonnet)
            temperature: Sampling temperature (default: 0.7)
            num_predict: Max tokens to generate (default: 4096)

        Returns:
            Tuple of (response_content, ChatUsage)

        Raises:
            AIClientError: If chat completion fails
        """
        model = model or self.default_model
        num_predict = num_predict or 4096

        system_content = None
        chat_messages = []

        for msg in messages:
            if msg["role"] == "system":
                system_content = msg["content"]
            else:
                chat_messages.append({"role": msg["role"], "content": msg["content"]})

        logger.debug(
            f"Claude chat: model={model}, messages={len(chat_messages)}, "
            f"system={'yes' if system_content else 'no'}, max_tokens={num_predict}"
        )

        kwargs = {
            "model": model,
            "max_tokens": num_predict,
            "temperature": temperature,
            "messages": chat_messages,
        }
        if system_content:
            kwargs["system"] = system_content

        try:
            response = await self.client.messages.create(**kwargs)

        except APITimeoutError as e:
            logger.error(f"Claude timeout: {e}")
            raise AIClientTimeoutError(
                "Claude request timeout",
                provider="claude",
                model=model,
                original_error=e,
            ) from e

        except APIConnectionError as e:
            logger.error(f"Claude connection error: {e}")
            raise AIClientConnectionError(
                f"Cannot connect to Claude API: {e}",
                provider="claude",
                model=model,
                original_error=e,
            ) from e

        except APIStatusError as e:
            logger.error(f"Claude API error: {e.status_code} - {e.message}")
            raise AIClientResponseError(
                f"Claude API error: {e.message}",
                provider="claude",
                model=model,
                status_code=e.status_code,
                response_body=str(e.body) if e.body else None,
                original_error=e,
            ) from e

        if not response.content:
            raise AIClientOutputError("Empty response from Claude", provider="claude", model=model)

        content = response.content[0].text
        usage = ChatUsage(
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )

        logger.info(
            f"Claude response: {len(content)} chars, "
            f"tokens: {usage.input_tokens} in / {usage.output_tokens} out"
        )
        return content, usage

    async def check_health(self) -> bool:
        """
        Verify the API key by listing models, which is not billed.

        Returns:
            True if Claude answered
        """
        try:
            await self.client.models.list(limit=1)
            return True
        except (APIConnectionError, APIStatusError) as e:
            logger.debug(f"Claude health check failed: {e}")
            return False
