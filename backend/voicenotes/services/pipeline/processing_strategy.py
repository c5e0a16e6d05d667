"""
Processing strategy: which providers handle which work.

Builds provider adapters from settings and picks the content-processing
tier for a transcript by its complexity.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

from voicenotes.config import Settings, get_content_tiers
from voicenotes.models.schemas import CostEstimate
from voicenotes.services.ai_clients import (
    AssemblyAIClient,
    BaseAIClient,
    ClaudeClient,
    DeepgramClient,
    OllamaClient,
)
from voicenotes.services.providers import (
    AssemblyAIAdapter,
    DeepgramAdapter,
    LLMTierAdapter,
    TranscriptionAdapter,
)
from voicenotes.utils.pricing_utils import calculate_cost, estimate_tokens
from voicenotes.utils.text_utils import calculate_complexity, count_words

logger = logging.getLogger(__name__)

# Rough output size of the summary + insights responses
EXPECTED_OUTPUT_TOKENS = 800


class ProviderType(str, Enum):
    """AI provider types."""

    LOCAL = "local"  # Ollama
    CLOUD = "cloud"  # Claude API


@dataclass
class ContentTier:
    """
    One entry of ``content_tiers`` in models.yaml.

    A tier is chosen when the transcript's complexity exceeds
    ``complexity`` or its word count exceeds ``min_words``.
    """

    id: str
    provider: ProviderType
    max_tokens: int = 1500
    complexity: float = 0.0
    min_words: int = 0
    pricing: dict = field(default_factory=dict)

    def accepts(self, complexity: float, word_count: int) -> bool:
        if self.complexity <= 0 and self.min_words <= 0:
            return True
        return complexity > self.complexity or word_count > self.min_words


class ProcessingStrategy:
    """
    Strategy for building providers and ordering content tiers.

    Transcription order is fixed: Deepgram (primary), then AssemblyAI.
    Content tiers are ordered best first in models.yaml; a transcript
    starts at the best tier its complexity calls for and falls back to
    cheaper ones.

    Example:
        strategy = ProcessingStrategy(settings)
        stt = strategy.build_transcription_providers()
        tiers = strategy.build_content_providers()

        strategy.select_model(transcript)              # "claude-haiku-4-5"
        strategy.content_tiers_for(transcript, tiers)  # [haiku, qwen]
    """

    # Known cloud models (prefix-based matching)
    CLOUD_MODEL_PREFIXES = ("claude",)

    def __init__(self, settings: Settings, tiers: list[ContentTier] | None = None):
        self.settings = settings
        self.tiers = tiers if tiers is not None else self._load_tiers()

    def _load_tiers(self) -> list[ContentTier]:
        tiers = []
        for raw in get_content_tiers(self.settings):
            provider = raw.get("provider")
            tiers.append(
                ContentTier(
                    id=raw["id"],
                    provider=(
                        ProviderType.CLOUD if provider == "claude"
                        else ProviderType.LOCAL if provider == "ollama"
                        else self.get_provider_type(raw["id"])
                    ),
                    max_tokens=raw.get("max_tokens", 1500),
                    complexity=raw.get("complexity", 0.0),
                    min_words=raw.get("min_words", 0),
                    pricing=raw.get("pricing") or {},
                )
            )
        return tiers

    def get_provider_type(self, model: str) -> ProviderType:
        """
        Determine provider type for a model.

        Args:
            model: Model name (e.g., "claude-sonnet-4-5", "qwen2.5:14b")

        Returns:
            ProviderType.CLOUD for Claude models, ProviderType.LOCAL otherwise
        """
        model_lower = model.lower()
        for prefix in self.CLOUD_MODEL_PREFIXES:
            if model_lower.startswith(prefix):
                return ProviderType.CLOUD
        return ProviderType.LOCAL

    # ═══════════════════════════════════════════════════════════════════════
    # Provider construction
    # ═══════════════════════════════════════════════════════════════════════

    def build_transcription_providers(self) -> list[TranscriptionAdapter]:
        """Primary and secondary speech-to-text adapters, in order."""
        return [
            DeepgramAdapter(DeepgramClient.from_settings(self.settings)),
            AssemblyAIAdapter(AssemblyAIClient.from_settings(self.settings)),
        ]

    def build_content_providers(self) -> list[LLMTierAdapter]:
        """
        One adapter per configured content tier, best first.

        Cloud tiers are skipped when no API key is configured.
        """
        adapters = []
        for tier in self.tiers:
            try:
                client = self.create_client(tier.id)
            except ValueError as e:
                logger.warning(f"Content tier {tier.id} disabled: {e}")
                continue
            adapters.append(LLMTierAdapter(client, tier.id, max_tokens=tier.max_tokens, settings=self.settings))

        logger.info(f"Content tiers: {', '.join(a.name for a in adapters) or 'none'}")
        return adapters

    def create_client(self, model: str) -> BaseAIClient:
        """
        Create AI client for specified model.

        Raises:
            ValueError: If cloud model requested but no API key set
        """
        tier = self.get_tier(model)
        provider = tier.provider if tier else self.get_provider_type(model)

        if provider == ProviderType.CLOUD:
            return ClaudeClient.from_settings(self.settings, default_model=model)
        return OllamaClient.from_settings(self.settings, default_model=model)

    # ═══════════════════════════════════════════════════════════════════════
    # Tier selection
    # ═══════════════════════════════════════════════════════════════════════

    def get_tier(self, model: str) -> ContentTier | None:
        return next((t for t in self.tiers if t.id == model), None)

    def select_model(self, transcript: str) -> str | None:
        """
        Pick the starting tier for a transcript.

        Complex or long transcripts go to the strongest model; short and
        simple ones to the cheapest.

        Returns:
            Tier ID, or None when no tiers are configured
        """
        complexity = calculate_complexity(transcript)
        word_count = count_words(transcript)

        for tier in self.tiers:
            if tier.accepts(complexity, word_count):
                logger.debug(
                    f"Selected {tier.id} (complexity {complexity:.2f}, {word_count} words)"
                )
                return tier.id

        return self.tiers[-1].id if self.tiers else None

    def content_tiers_for(
        self,
        transcript: str,
        providers: list[LLMTierAdapter],
        model: str | None = None,
    ) -> list[LLMTierAdapter]:
        """
        Order content adapters for one transcript.

        Starts at ``model`` if given, otherwise at select_model(), and keeps
        the cheaper tiers after it as fallbacks.

        Raises:
            ValueError: ``model`` is not a configured tier
        """
        if model is not None and not any(p.model == model for p in providers):
            raise ValueError(f"Unknown content model: {model}")

        start = model or self.select_model(transcript)
        for i, provider in enumerate(providers):
            if provider.model == start:
                return providers[i:]

        # Selected tier is not available (e.g. no API key): next cheaper ones
        start_index = next((i for i, t in enumerate(self.tiers) if t.id == start), 0)
        cheaper = {t.id for t in self.tiers[start_index:]}
        return [p for p in providers if p.model in cheaper] or list(providers)

    def estimate(self, transcript: str, model: str | None = None) -> CostEstimate:
        """
        Estimate the starting tier and USD cost of processing a transcript.

        Both prompts include the transcript, so input tokens count twice.

        Raises:
            ValueError: ``model`` is not a configured tier
        """
        if model is not None and self.get_tier(model) is None:
            raise ValueError(f"Unknown content model: {model}")

        model = model or self.select_model(transcript)
        input_tokens = estimate_tokens(transcript) * 2
        cost = calculate_cost(model, input_tokens, EXPECTED_OUTPUT_TOKENS) if model else 0.0
        return CostEstimate(model=model, input_tokens=input_tokens, estimated_cost=cost)
