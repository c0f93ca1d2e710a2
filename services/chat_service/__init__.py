"""
Chat service - sessions, message persistence and chat turns.
"""

from .models import (
    Message,
    Session,
    SessionContext,
    SessionSummary,
    SessionLookup,
    LookupSource,
    AppendResult,
    GenerationContext,
    ChatTurnResult
)
from .session_cache import SessionCache
from .session_orchestrator import SessionOrchestrator, get_session_orchestrator
from .topic_extractor import extract_topics
from .conversation_manager import ConversationManager, get_conversation_manager

__all__ = [
    'Message',
    'Session',
    'SessionContext',
    'SessionSummary',
    'SessionLookup',
    'LookupSource',
    'AppendResult',
    'GenerationContext',
    'ChatTurnResult',
    'SessionCache',
    'SessionOrchestrator',
    'get_session_orchestrator',
    'extract_topics',
    'ConversationManager',
    'get_conversation_manager'
]
