"""
Books the resolver recognises, mapped to the provider's canonical slugs.
"""

from typing import Dict, List, Optional


BOOK_SLUGS: Dict[str, str] = {
    # Torah
    "Genesis": "Genesis",
    "Exodus": "Exodus",
    "Leviticus": "Leviticus",
    "Numbers": "Numbers",
    "Deuteronomy": "Deuteronomy",
    # Writings
    "Psalms": "Psalms",
    "Proverbs": "Proverbs",
    "Job": "Job",
    "Song of Songs": "Song_of_Songs",
    "Ruth": "Ruth",
    "Lamentations": "Lamentations",
    "Ecclesiastes": "Ecclesiastes",
    "Esther": "Esther",
    "Daniel": "Daniel",
    "Ezra": "Ezra",
    "Nehemiah": "Nehemiah",
    "I Chronicles": "I_Chronicles",
    "II Chronicles": "II_Chronicles",
    # Prophets
    "Isaiah": "Isaiah",
    "Jeremiah": "Jeremiah",
    "Ezekiel": "Ezekiel",
    "Hosea": "Hosea",
    "Joel": "Joel",
    "Amos": "Amos",
    "Obadiah": "Obadiah",
    "Jonah": "Jonah",
    "Micah": "Micah",
    "Nahum": "Nahum",
    "Habakkuk": "Habakkuk",
    "Zephaniah": "Zephaniah",
    "Haggai": "Haggai",
    "Zechariah": "Zechariah",
    "Malachi": "Malachi",
}

_BY_LOWER: Dict[str, str] = {name.lower(): name for name in BOOK_SLUGS}


def canonical_book_name(name: str) -> Optional[str]:
    """Display name for a book typed in any case, or None if unknown"""
    return _BY_LOWER.get(" ".join(name.split()).lower())


def book_slug(name: str) -> Optional[str]:
    canonical = canonical_book_name(name)
    return BOOK_SLUGS[canonical] if canonical else None


def books_longest_first() -> List[str]:
    """Book names ordered so that alternations prefer "II Chronicles" over "I Chronicles" and the like"""
    return sorted(BOOK_SLUGS, key=len, reverse=True)
