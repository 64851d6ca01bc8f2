"""Topic and keyword extraction from free-text queries.

Both functions are plain heuristics: an ordered list of regular expressions
for the topic, a stop-word filter for keywords. Finding no topic is a normal
outcome and callers treat ``None`` as "cannot proceed".
"""

from __future__ import annotations

import re
from typing import Optional

#: Topic patterns, most specific first. The first capture group is the topic.
_TOPIC_PATTERNS: list[re.Pattern[str]] = [
    re.compile(
        r"\b(spindletop|beaumont|port arthur|orange|lumber|oil|shipbuilding|cajun)\b",
        re.IGNORECASE,
    ),
    re.compile(r"tell me about (.*?)(?:\?|$)", re.IGNORECASE),
    re.compile(r"what (?:is|was|were) (.*?)(?:\?|$)", re.IGNORECASE),
    re.compile(r"how did (.*?)(?:\?|$)", re.IGNORECASE),
]

_STOP_WORDS: frozenset[str] = frozenset([
    "tell", "me", "about", "what", "is", "was", "were", "how", "did",
    "the", "a", "an",
])

_PUNCTUATION = re.compile(r"[?!.,]")
_NON_SLUG = re.compile(r"[^a-z0-9]+")

#: Keywords kept per query.
MAX_KEYWORDS = 5


def extract_topic(text: str) -> Optional[str]:
    """Return a best-guess topic for *text*, or ``None``.

    Examples:
        >>> extract_topic("Tell me about the Spindletop oil discovery")
        'Spindletop'
        >>> extract_topic("What was the Battle of Sabine Pass?")
        'the Battle of Sabine Pass'
        >>> extract_topic("hello there") is None
        True
    """
    for pattern in _TOPIC_PATTERNS:
        match = pattern.search(text)
        if match:
            topic = match.group(1).strip()
            return topic or None
    return None


def extract_keywords(text: str) -> list[str]:
    """Return up to five search keywords from *text*, in original order.

    Lowercases, splits on whitespace, drops stop-words and tokens of three
    characters or fewer, and strips sentence punctuation. No stemming and no
    deduplication.

    Examples:
        >>> extract_keywords("Tell me about the Spindletop oil discovery in 1901")
        ['spindletop', 'discovery', '1901']
    """
    keywords: list[str] = []
    for word in text.lower().split():
        if len(word) <= 3 or word in _STOP_WORDS:
            continue
        word = _PUNCTUATION.sub("", word)
        if word:
            keywords.append(word)
    return keywords[:MAX_KEYWORDS]


def slugify(text: str) -> str:
    """Lowercase *text* and collapse every run of other characters to ``-``.

    Used for file names of downloaded media and generated pages.

    Examples:
        >>> slugify("Oil & Energy")
        'oil-energy'
    """
    return _NON_SLUG.sub("-", text.lower()).strip("-")
