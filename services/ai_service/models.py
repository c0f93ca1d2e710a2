"""
AI service data models for response generation.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class ErrorCategory(Enum):
    """How a failed model call is classified for fallback selection"""
    RATE_LIMIT = "rate_limit"
    CONTENT_POLICY = "content_policy"
    OTHER = "other"


class ContextIntegrityError(Exception):
    """The composed model input is too short to be a real prompt"""
    pass


@dataclass
class HistoryTurn:
    """A prior message that survived sanitization"""
    role: str  # "user" or "assistant"
    content: str


@dataclass
class UserContext:
    """What the generator may know about the student; never the email"""
    display_name: Optional[str] = None
    authenticated: bool = False


@dataclass
class PostProcessResult:
    text: str
    applied_rules: List[str] = field(default_factory=list)
    character_break: bool = False
