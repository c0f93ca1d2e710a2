"""
Keyword topic extraction for session context.
"""

import re
from typing import Iterable, List


TOPIC_KEYWORDS = (
    "creation", "genesis", "exodus", "commandments", "mitzvot",
    "shabbat", "prayer", "tefilah", "torah", "talmud",
    "halakha", "kabbalah", "messiah", "temple", "sacrifice",
    "covenant", "israel", "jerusalem", "righteousness", "justice",
    "charity", "tzedakah", "repentance", "teshuvah", "faith",
    "emunah", "wisdom", "chochmah", "understanding", "binah",
)

_KEYWORD_PATTERN = re.compile(r"\b(" + "|".join(TOPIC_KEYWORDS) + r")\b", re.IGNORECASE)


def extract_topics(text: str, limit: int = 5) -> List[str]:
    """Known keywords found in ``text``, lower-cased, first occurrence first"""
    topics: List[str] = []
    for match in _KEYWORD_PATTERN.finditer(text or ""):
        topic = match.group(1).lower()
        if topic not in topics:
            topics.append(topic)
            if len(topics) >= limit:
                break
    return topics


def merge_capped(existing: List[str], new_items: Iterable[str], cap: int) -> List[str]:
    """
    Set-merge keeping most-recent-last order, then keep the last ``cap`` entries.

    An item seen again moves to the end.
    """
    merged = list(existing)
    for item in new_items:
        if item in merged:
            merged.remove(item)
        merged.append(item)
    return merged[-cap:] if cap > 0 else []
