"""
Pricing utilities for LLM cost calculation.

Pricing per 1M tokens is read from the content tiers in config/models.yaml.

Example:
    from voicenotes.utils.pricing_utils import calculate_cost

    cost = calculate_cost("claude-sonnet-4-5", input_tokens=1000, output_tokens=500)
    # 0.0105 (= 1000 * 3/1M + 500 * 15/1M)
"""

import logging
from typing import TypedDict

import yaml

from voicenotes.config import get_content_tiers

logger = logging.getLogger(__name__)

# Cache for model pricing (loaded once)
_pricing_cache: dict[str, "ModelPricing"] | None = None


class ModelPricing(TypedDict):
    """Pricing per 1M tokens."""

    input: float
    output: float


def get_model_pricing(model_name: str) -> ModelPricing | None:
    """
    Get pricing for a model.

    Returns:
        Pricing dict, or None for free/local models
    """
    global _pricing_cache

    if _pricing_cache is None:
        _pricing_cache = _load_pricing_config()

    return _pricing_cache.get(model_name)


def calculate_cost(model_name: str, input_tokens: int, output_tokens: int) -> float:
    """
    Calculate cost for a model API call.

    Returns:
        Cost in USD (0.0 for free/local models)
    """
    pricing = get_model_pricing(model_name)
    if pricing is None:
        return 0.0

    input_cost = (input_tokens / 1_000_000) * pricing["input"]
    output_cost = (output_tokens / 1_000_000) * pricing["output"]
    return round(input_cost + output_cost, 6)


def estimate_tokens(text: str) -> int:
    """Rough token estimate (~4 characters per token)."""
    return max(1, -(-len(text) // 4))


def _load_pricing_config() -> dict[str, ModelPricing]:
    pricing: dict[str, ModelPricing] = {}

    try:
        tiers = get_content_tiers()
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Failed to load pricing config: {e}")
        return pricing

    for tier in tiers:
        model_id = tier.get("id")
        model_pricing = tier.get("pricing")
        if model_id and model_pricing:
            pricing[model_id] = {
                "input": float(model_pricing.get("input", 0)),
                "output": float(model_pricing.get("output", 0)),
            }

    return pricing


def clear_pricing_cache() -> None:
    """Clear the pricing cache (for testing)."""
    global _pricing_cache
    _pricing_cache = None
