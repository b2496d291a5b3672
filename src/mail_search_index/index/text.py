"""Text processing for the search index.

Provides:
- tokenize(): Normalize free text into search tokens
- create_ngrams(): Character shingles for typo-tolerant candidate lookup
- levenshtein_distance() / is_similar(): Fuzzy token comparison
"""

from __future__ import annotations

import re

# Anything that is not a word char, whitespace, or part of an address
# (@ . -) becomes a separator.
_NON_TOKEN_CHARS = re.compile(r"[^\w\s@.\-]")
_WHITESPACE = re.compile(r"\s+")

STOP_WORDS = frozenset(
    [
        "a", "an", "the", "and", "or", "but", "in", "on", "at", "to",
        "for", "of", "with", "by", "from", "as", "is", "was", "are",
        "were", "been", "be", "have", "has", "had", "do", "does", "did",
        "will", "would", "could", "should", "may", "might", "must",
        "shall", "can", "need", "dare", "ought", "used", "i", "me", "my",
        "myself", "we", "our", "ours", "ourselves", "you", "your",
        "yours", "yourself", "yourselves", "he", "him", "his", "himself",
        "she", "her", "hers", "herself", "it", "its", "itself", "they",
        "them", "their", "theirs", "themselves", "what", "which", "who",
        "whom", "this", "that", "these", "those", "am", "being",
        "having", "doing", "if", "because", "until", "while", "about",
        "against", "between", "into", "through", "during", "before",
        "after", "above", "below", "up", "down", "out", "off", "over",
        "under", "again", "further", "then", "once",
    ]
)


def tokenize(text: str | None) -> list[str]:
    """Split text into normalized search tokens.

    Lowercases, turns punctuation (except ``@``, ``.`` and ``-``) into
    separators, and drops single characters and stop words. Order and
    duplicates are preserved; callers dedupe when they need a set.

    Args:
        text: Arbitrary text, may be empty or None

    Returns:
        List of tokens (empty for empty input)
    """
    if not text:
        return []

    cleaned = _NON_TOKEN_CHARS.sub(" ", text.lower())
    return [
        token
        for token in cleaned.split()
        if len(token) > 1 and token not in STOP_WORDS
    ]


def create_ngrams(text: str | None, n: int = 3) -> list[str]:
    """Return every contiguous n-character substring of ``text``.

    The text is lowercased and all whitespace removed first. Text shorter
    than ``n`` yields no n-grams (no padding).
    """
    if not text or n <= 0:
        return []

    cleaned = _WHITESPACE.sub("", text.lower())
    return [cleaned[i : i + n] for i in range(len(cleaned) - n + 1)]


def levenshtein_distance(a: str, b: str) -> int:
    """Calculate Levenshtein edit distance (case-sensitive)."""
    if len(a) < len(b):
        return levenshtein_distance(b, a)

    if not b:
        return len(a)

    previous_row = list(range(len(b) + 1))
    for i, ca in enumerate(a):
        current_row = [i + 1]
        for j, cb in enumerate(b):
            insertions = previous_row[j + 1] + 1
            deletions = current_row[j] + 1
            substitutions = previous_row[j] + (ca != cb)
            current_row.append(min(insertions, deletions, substitutions))
        previous_row = current_row

    return previous_row[-1]


def is_similar(a: str, b: str, threshold: float = 0.3) -> bool:
    """Check whether two strings are within a normalized edit distance.

    Comparison is case-insensitive. Two empty strings are similar.

    Args:
        a: First string
        b: Second string
        threshold: Maximum ``distance / max(len(a), len(b))``

    Returns:
        True if the strings are similar
    """
    max_len = max(len(a), len(b))
    if max_len == 0:
        return True

    # The length gap alone is a lower bound on the distance
    if abs(len(a) - len(b)) / max_len > threshold:
        return False

    distance = levenshtein_distance(a.lower(), b.lower())
    return distance / max_len <= threshold
