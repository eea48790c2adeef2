"""
Keyword extraction and presence scoring for lexical search.

Only CJK ideographs, ASCII letters/digits and whitespace survive
extraction; everything else becomes a separator.
"""

from __future__ import annotations

import re
from typing import Final

_NON_KEYWORD_CHARS = re.compile(r"[^一-龥a-zA-Z0-9\s]")

STOPWORDS: Final[frozenset[str]] = frozenset(
    {
        # Chinese particles
        "的", "了", "是", "在", "有", "和", "与",
        # English
        "an", "and", "are", "as", "at", "be", "by", "for", "from", "in",
        "is", "it", "of", "on", "or", "that", "the", "this", "to", "was",
        "what", "with",
    }
)  # fmt: skip


def extract_keywords(query: str) -> list[str]:
    """
    Extract search keywords from a free-text query.

    Tokens of a single character and stopwords are dropped; duplicates
    are removed keeping the first occurrence.
    """
    cleaned = _NON_KEYWORD_CHARS.sub(" ", query)
    keywords: list[str] = []
    for word in cleaned.split():
        if len(word) <= 1 or word.lower() in STOPWORDS:
            continue
        if word not in keywords:
            keywords.append(word)
    return keywords


def keyword_score(content: str, keywords: list[str]) -> float:
    """
    Share of distinct keywords present in ``content``, in [0, 1].

    Matching is a case-insensitive substring test; repeated occurrences
    do not add weight.
    """
    if not keywords:
        return 0.0
    content_lower = content.lower()
    matched = sum(1 for keyword in keywords if keyword.lower() in content_lower)
    return min(matched / len(keywords), 1.0)
