"""
Reference parsing, validation, normalization and detection.

Pure functions; nothing here touches the network.
"""

import re
from typing import List, Optional

from services.reference_service.books import BOOK_SLUGS, books_longest_first, canonical_book_name
from services.reference_service.models import ParsedReference


_BOOK_ALTERNATION = "|".join(
    r"\s+".join(re.escape(word) for word in name.split()) for name in books_longest_first()
)

_REFERENCE_PATTERN = re.compile(
    rf"^\s*({_BOOK_ALTERNATION})\s+(\d+)(?::(\d+)(?:\s*-\s*(\d+))?)?\s*$",
    re.IGNORECASE,
)

# Verse is mandatory when scanning free text, otherwise "Job 3 times" would match
_DETECTION_PATTERN = re.compile(
    rf"(?<![A-Za-z])({_BOOK_ALTERNATION})\s+(\d+):(\d+)(?:-(\d+))?(?!\d)",
    re.IGNORECASE,
)


def _build(book: str, chapter: str, start: Optional[str], end: Optional[str]) -> Optional[ParsedReference]:
    canonical = canonical_book_name(book)
    if canonical is None:
        return None

    chapter_num = int(chapter)
    start_num = int(start) if start is not None else None
    end_num = int(end) if end is not None else None

    if chapter_num < 1 or (start_num is not None and start_num < 1):
        return None
    if start_num is not None and end_num is not None and end_num < start_num:
        return None

    return ParsedReference(canonical, chapter_num, start_num, end_num)


def parse_reference(reference: str) -> Optional[ParsedReference]:
    """
    Parse "Book chapter", "Book chapter:verse" or "Book chapter:verse-verse"

    Returns None for a bare book, an unknown book, a reversed range or anything else malformed.
    """
    if not reference or not isinstance(reference, str):
        return None

    match = _REFERENCE_PATTERN.match(reference)
    if match is None:
        return None
    return _build(*match.groups())


def validate_reference(reference: str) -> bool:
    return parse_reference(reference) is not None


def normalize_reference(reference: str) -> Optional[str]:
    """Canonical display form, e.g. "genesis 1:1-1" becomes "Genesis 1:1" """
    parsed = parse_reference(reference)
    return parsed.normalized if parsed else None


def canonical_path(parsed: ParsedReference) -> str:
    """Provider path such as ``Song_of_Songs.2.1-3``"""
    path = f"{BOOK_SLUGS[parsed.book]}.{parsed.chapter}"
    if parsed.start_verse is not None:
        path += f".{parsed.start_verse}"
        if parsed.end_verse is not None and parsed.end_verse != parsed.start_verse:
            path += f"-{parsed.end_verse}"
    return path


def detect_references(text: str) -> List[str]:
    """
    Find verse references in free text

    Matches are normalized and deduplicated, keeping first-occurrence order.
    """
    if not text:
        return []

    found: List[str] = []
    for match in _DETECTION_PATTERN.finditer(text):
        parsed = _build(*match.groups())
        if parsed is not None and parsed.normalized not in found:
            found.append(parsed.normalized)
    return found
