"""
JSON extraction from LLM responses.

Models are asked for JSON but often wrap it in markdown code fences or
surround it with prose. extract_json_object() finds the first balanced
object; parse_json_object() also decodes it.

Example:
    >>> parse_json_object('```json\\n{"summary": "hi"}\\n```')
    {'summary': 'hi'}
"""

import json
import logging
import re

logger = logging.getLogger(__name__)

_CODE_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


def extract_json_object(text: str) -> str:
    """
    Extract the first balanced JSON object from text.

    Args:
        text: Raw LLM response

    Returns:
        JSON object string (empty string if none found)
    """
    if not text:
        return ""

    cleaned = text.strip()
    match = _CODE_BLOCK.search(cleaned)
    if match:
        cleaned = match.group(1).strip()

    start = cleaned.find("{")
    if start == -1:
        return ""

    depth = 0
    in_string = False
    escape_next = False

    for i, char in enumerate(cleaned[start:], start):
        if escape_next:
            escape_next = False
        elif char == "\\":
            escape_next = True
        elif char == '"':
            in_string = not in_string
        elif not in_string:
            if char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return cleaned[start : i + 1]

    # Unbalanced - let the JSON parser report it
    return cleaned[start:]


def parse_json_object(text: str) -> dict:
    """
    Extract and decode a JSON object from an LLM response.

    Args:
        text: Raw LLM response

    Returns:
        Decoded dict

    Raises:
        ValueError: If no valid JSON object is present
    """
    json_str = extract_json_object(text)
    if not json_str:
        raise ValueError("No JSON object in response")

    try:
        data = json.loads(json_str)
    except json.JSONDecodeError as e:
        preview = json_str[:200] + "..." if len(json_str) > 200 else json_str
        logger.warning(f"Failed to parse JSON: {e}. Input: {preview}")
        raise ValueError(f"Invalid JSON in response: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Expected JSON object, got {type(data).__name__}")
    return data
