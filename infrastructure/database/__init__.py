"""
Database infrastructure - durable conversation storage.
"""

from .conversation_store import (
    SqliteConversationStore,
    ConversationRecord,
    MessageRecord,
    ConversationStoreError,
    ConversationNotFoundError,
    ConversationAccessDeniedError,
    ConversationStoreUnavailableError,
    DuplicateConversationError,
    get_conversation_store
)

__all__ = [
    'SqliteConversationStore',
    'ConversationRecord',
    'MessageRecord',
    'ConversationStoreError',
    'ConversationNotFoundError',
    'ConversationAccessDeniedError',
    'ConversationStoreUnavailableError',
    'DuplicateConversationError',
    'get_conversation_store'
]
