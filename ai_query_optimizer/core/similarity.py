"""
Query normalization and word-set similarity.

Used by the response cache to treat near-duplicate phrasings as one slot.
"""

import re

_WHITESPACE = re.compile(r"\s+")
_PUNCTUATION = re.compile(r"[^\w\s]")


def normalize_query(query: str) -> str:
    """Lowercase, collapse whitespace and strip punctuation."""
    if not query:
        return ""
    collapsed = _WHITESPACE.sub(" ", query.lower()).strip()
    return _PUNCTUATION.sub("", collapsed)


def word_set_similarity(first: str, second: str) -> float:
    """Intersection-over-union of the space-separated word sets.

    Args:
        first: Normalized query
        second: Normalized query

    Returns:
        Similarity between 0.0 and 1.0
    """
    if first == second:
        return 1.0
    if not first or not second:
        return 0.0

    first_words = set(first.split())
    second_words = set(second.split())
    union = first_words | second_words
    if not union:
        return 0.0
    return len(first_words & second_words) / len(union)
