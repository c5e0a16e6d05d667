"""
Content-processing (LLM tier) adapter.

Each LLMTierAdapter wraps one chat client + model. An invocation runs the
summary and insight prompts concurrently and returns a ContentResult with
token usage and cost.

Example:
    adapter = LLMTierAdapter(ClaudeClient.from_settings(settings), "claude-haiku-4-5")
    result = await adapter.invoke(ContentPayload(transcript="..."))
"""

import asyncio
import logging
import time
from typing import Any

from voicenotes.config import Settings, get_settings, load_prompt
from voicenotes.models.schemas import (
    ContentInsights,
    ContentPayload,
    ContentResult,
    ContentSummary,
    TokenUsage,
)
from voicenotes.services.ai_clients import AIClientOutputError, BaseAIClient
from voicenotes.services.providers.base import ProviderAdapter
from voicenotes.utils.json_utils import parse_json_object
from voicenotes.utils.pricing_utils import calculate_cost
from voicenotes.utils.text_utils import count_words

logger = logging.getLogger(__name__)

SUMMARY_TEMPERATURE = 0.3
INSIGHTS_TEMPERATURE = 0.2


class LLMTierAdapter(ProviderAdapter[ContentPayload, ContentResult]):
    """
    One content-processing model tier.

    Attributes:
        client: Chat client (Claude or Ollama)
        model: Model identifier sent to the client
        max_tokens: Default output token limit per prompt
    """

    def __init__(
        self,
        client: BaseAIClient,
        model: str,
        name: str | None = None,
        max_tokens: int = 1500,
        settings: Settings | None = None,
    ):
        super().__init__(name or model)
        self.client = client
        self.model = model
        self.max_tokens = max_tokens
        self.settings = settings or get_settings()

    async def probe(self) -> bool:
        return await self.client.check_health()

    async def close(self) -> None:
        await self.client.close()

    async def _invoke(self, payload: ContentPayload, options: dict[str, Any]) -> ContentResult:
        opts = payload.options.model_copy(update=options)
        start = time.monotonic()

        summary_temperature = SUMMARY_TEMPERATURE if opts.temperature is None else opts.temperature
        insights_temperature = INSIGHTS_TEMPERATURE if opts.temperature is None else opts.temperature

        (summary_data, summary_usage), (insights_data, insights_usage) = await asyncio.gather(
            self._ask("summary", payload.transcript, summary_temperature, opts.max_tokens),
            self._ask("insights", payload.transcript, insights_temperature, opts.max_tokens),
        )

        try:
            summary = ContentSummary(
                summary=summary_data.get("summary") or "",
                key_points=summary_data.get("keyPoints") or [],
                action_items=summary_data.get("actionItems") or [],
                important_dates=summary_data.get("importantDates") or [],
                confidence=calculate_confidence(summary_data, payload.transcript),
                word_count=count_words(payload.transcript),
            )
            insights = ContentInsights(
                key_topics=insights_data.get("keyTopics") or [],
                action_items=insights_data.get("actionItems") or [],
                important_dates=insights_data.get("importantDates") or [],
                sentiment=insights_data.get("sentiment") or "neutral",
                entities=insights_data.get("entities") or [],
            )
        except ValueError as e:
            # pydantic ValidationError is a ValueError; bad shape from the model
            raise AIClientOutputError(
                f"Unexpected response structure: {e}",
                provider=self.name,
                model=self.model,
                original_error=e,
            ) from e

        usage = TokenUsage(
            input_tokens=summary_usage.input_tokens + insights_usage.input_tokens,
            output_tokens=summary_usage.output_tokens + insights_usage.output_tokens,
        )
        cost = calculate_cost(self.model, usage.input_tokens, usage.output_tokens)

        logger.info(
            f"{self.name}: processed {summary.word_count} words, "
            f"{usage.total_tokens} tokens, ${cost:.4f}"
        )

        return ContentResult(
            summary=summary,
            insights=insights,
            model=self.model,
            usage=usage,
            cost=cost,
            processing_time_ms=(time.monotonic() - start) * 1000,
        )

    async def _ask(
        self,
        prompt_name: str,
        transcript: str,
        temperature: float,
        max_tokens: int | None,
    ):
        system = load_prompt("content", f"{prompt_name}_system", self.settings)
        user = load_prompt("content", f"{prompt_name}_user", self.settings).replace(
            "{transcript}", transcript
        )

        content, usage = await self.client.chat(
            [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            model=self.model,
            temperature=temperature,
            num_predict=max_tokens or self.max_tokens,
        )

        try:
            return parse_json_object(content), usage
        except ValueError as e:
            raise AIClientOutputError(
                f"Invalid JSON for {prompt_name}: {e}",
                provider=self.name,
                model=self.model,
                original_error=e,
            ) from e


def calculate_confidence(parsed: dict, transcript: str) -> float:
    """
    Heuristic confidence of a summary response, in [0, 1].

    Starts at 0.5; rewards a real summary, key points and action items;
    penalizes very short transcripts.
    """
    confidence = 0.5

    if len(parsed.get("summary") or "") > 20:
        confidence += 0.2
    if parsed.get("keyPoints"):
        confidence += 0.15
    if parsed.get("actionItems"):
        confidence += 0.1
    if len(transcript) < 100:
        confidence -= 0.1

    return max(0.0, min(1.0, confidence))
