"""
Text helpers shared by model selection, caching and fallback results.
"""

import re

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")
_SENTENCE_END = re.compile(r"[.!?]+")


def count_words(text: str) -> int:
    return len(text.split())


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_END.split(text) if s.strip()]


def normalize_text(text: str) -> str:
    """Lowercase, drop punctuation and collapse whitespace."""
    lowered = _NON_WORD.sub("", text.lower())
    return _WHITESPACE.sub(" ", lowered).strip()


def calculate_complexity(text: str) -> float:
    """
    Score content complexity in [0, 1].

    Average of three normalized metrics: word length (/10), sentence
    length (/30 words) and unique-word ratio.
    """
    words = text.split()
    if not words:
        return 0.0

    sentences = split_sentences(text) or [text]

    avg_word_length = sum(len(w) for w in words) / len(words)
    avg_sentence_length = len(words) / len(sentences)
    unique_ratio = len({w.lower() for w in words}) / len(words)

    word_length_score = min(avg_word_length / 10, 1.0)
    sentence_length_score = min(avg_sentence_length / 30, 1.0)

    return (word_length_score + sentence_length_score + unique_ratio) / 3
