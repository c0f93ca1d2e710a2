"""
Chat service data models for sessions and messages.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Dict, Optional, Any, Tuple

from services.exceptions import DurableWriteDegraded
from services.reference_service.models import TextResult


USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"
ROLES = (USER_ROLE, ASSISTANT_ROLE)


@dataclass(frozen=True)
class Message:
    """Individual message in a session; never changed once appended"""
    id: str
    content: str
    role: str  # "user" or "assistant"
    references: Tuple[str, ...] = ()
    timestamp: datetime = field(default_factory=datetime.now)
    status: str = "delivered"

    @property
    def is_user(self) -> bool:
        return self.role == USER_ROLE


@dataclass
class SessionContext:
    """Rolling context kept alongside the message list"""
    recent_references: List[str] = field(default_factory=list)
    topics: List[str] = field(default_factory=list)
    conversation_summary: str = ""


@dataclass
class Session:
    """Cached conversation state"""
    id: str
    owner_id: Optional[str] = None
    durable_id: Optional[str] = None
    persona: Optional[str] = None
    messages: List[Message] = field(default_factory=list)
    context: SessionContext = field(default_factory=SessionContext)
    created_at: datetime = field(default_factory=datetime.now)
    last_activity_at: datetime = field(default_factory=datetime.now)

    def touch(self):
        self.last_activity_at = datetime.now()


@dataclass
class SessionSummary:
    """Summary of a session for listing/navigation"""
    id: str
    title: str
    message_count: int
    created_at: datetime
    last_activity_at: datetime
    persona: Optional[str] = None
    durable_id: Optional[str] = None


class LookupSource(Enum):
    CACHE = "cache"
    STORE = "store"
    ABSENT = "absent"


@dataclass
class SessionLookup:
    """Where a session came from, if anywhere"""
    source: LookupSource
    session: Optional[Session] = None

    @property
    def found(self) -> bool:
        return self.session is not None


@dataclass
class AppendResult:
    cache_written: bool
    durable_written: bool = False
    message: Optional[Message] = None
    durable_error: Optional[DurableWriteDegraded] = None


@dataclass
class GenerationContext:
    """What the response generator needs to know about the session"""
    session_id: str
    history: List[Dict[str, Any]] = field(default_factory=list)
    recent_references: List[str] = field(default_factory=list)
    topics: List[str] = field(default_factory=list)


@dataclass
class ChatTurnResult:
    """Outcome of one user message and the persona's reply"""
    session_id: str
    user_message: Message
    reply: str
    persona: str
    references: List[TextResult] = field(default_factory=list)
    detected_references: List[str] = field(default_factory=list)
    assistant_message: Optional[Message] = None
    timestamp: datetime = field(default_factory=datetime.now)
