"""
Shared utilities.

Modules:
    json_utils: JSON extraction and parsing from LLM responses
    pricing_utils: LLM cost calculation
    text_utils: word counts, normalization and complexity scoring
"""

from voicenotes.utils.json_utils import extract_json_object, parse_json_object
from voicenotes.utils.pricing_utils import (
    calculate_cost,
    estimate_tokens,
    get_model_pricing,
)
from voicenotes.utils.text_utils import (
    calculate_complexity,
    count_words,
    normalize_text,
    split_sentences,
)

__all__ = [
    # json_utils
    "extract_json_object",
    "parse_json_object",
    # pricing_utils
    "calculate_cost",
    "estimate_tokens",
    "get_model_pricing",
    # text_utils
    "calculate_complexity",
    "count_words",
    "normalize_text",
    "split_sentences",
]
