"""
Reference service data models.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class ParsedReference:
    """A validated reference: book plus chapter, optionally a verse or verse range"""
    book: str
    chapter: int
    start_verse: Optional[int] = None
    end_verse: Optional[int] = None

    @property
    def normalized(self) -> str:
        if self.start_verse is None:
            return f"{self.book} {self.chapter}"
        if self.end_verse is not None and self.end_verse != self.start_verse:
            return f"{self.book} {self.chapter}:{self.start_verse}-{self.end_verse}"
        return f"{self.book} {self.chapter}:{self.start_verse}"

    def __str__(self) -> str:
        return self.normalized


@dataclass
class TextResult:
    """Fetched text for one reference"""
    reference: str
    book: str
    chapter: int
    verse: Optional[int]
    text: str
    hebrew_text: Optional[str] = None
    source_url: str = ""
    end_verse: Optional[int] = None
    retrieved_at: datetime = field(default_factory=datetime.now)
