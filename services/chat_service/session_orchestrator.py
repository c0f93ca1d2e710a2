"""
Session orchestrator - reconciles the in-memory session cache with the durable store.

The cache is authoritative for the live conversation; the store is written
through for authenticated owners. Store trouble is logged and absorbed so a
chat turn never fails because persistence did.
"""

import uuid
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from infrastructure.config.settings import get_config
from infrastructure.database.conversation_store import (
    ConversationAccessDeniedError,
    ConversationNotFoundError,
    ConversationRecord,
    ConversationStoreError,
    DuplicateConversationError,
    SqliteConversationStore,
    get_conversation_store,
)
from infrastructure.monitoring.logging_service import get_logger, log_conversation_event
from infrastructure.resilience.retry_service import (
    CircuitBreakerError,
    RetryExhaustedError,
    RetryService,
    get_retry_service,
)
from services.chat_service.models import (
    ASSISTANT_ROLE,
    ROLES,
    USER_ROLE,
    AppendResult,
    LookupSource,
    Message,
    Session,
    SessionLookup,
    SessionSummary,
)
from services.chat_service.session_cache import SessionCache
from services.chat_service.topic_extractor import merge_capped
from services.exceptions import DurableWriteDegraded, SessionNotFoundError, ValidationError


GENERAL_PERSONA_LABEL = "general"
TITLE_LENGTH = 60

# Failures of the durable path that degrade instead of propagating
STORE_FAILURES = (ConversationStoreError, RetryExhaustedError, CircuitBreakerError)


def new_session_id() -> str:
    return uuid.uuid4().hex


def _parse_timestamp(value: str) -> datetime:
    """Store timestamps are UTC ISO strings; the cache works in naive local time"""
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return datetime.now()
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def _title_from(session: Session, content: str) -> str:
    text = " ".join(content.split())
    if len(text) > TITLE_LENGTH:
        return text[:TITLE_LENGTH - 3].rstrip() + "..."
    return text or f"Session {session.id[:8]}"


class SessionOrchestrator:
    """
    Session lifecycle, message appends and listing across cache and store.
    """

    def __init__(self, store: Optional[SqliteConversationStore] = None,
                 cache: Optional[SessionCache] = None,
                 retry_service: Optional[RetryService] = None,
                 config=None):
        self.logger = get_logger(__name__)
        self.config = config or get_config()
        self.store = store if store is not None else get_conversation_store()
        self.cache = cache or SessionCache(
            idle_ttl_seconds=self.config.session.idle_ttl_seconds,
            sweep_interval_seconds=self.config.session.sweep_interval_seconds,
        )
        self.retry_service = retry_service or get_retry_service()

    # Lifecycle

    def start(self):
        """Start background cache eviction; needs a running event loop"""
        self.cache.start_sweeper()

    async def stop(self):
        await self.cache.stop_sweeper()

    async def _store_call(self, func: Callable[[], Awaitable[Any]], operation: str) -> Any:
        db = self.config.database
        return await self.retry_service.retry_with_backoff(
            func,
            max_attempts=db.max_attempts,
            base_delay=db.base_delay,
            max_delay=db.max_delay,
            operation=operation,
        )

    # Sessions

    def create_session(self, owner_id: Optional[str] = None, session_id: Optional[str] = None) -> str:
        """
        Create an empty cached session; nothing is written durably until the first message

        A caller-supplied id is kept as is. If that id is already cached the
        existing session is left untouched.
        """
        session_id = session_id or new_session_id()
        if session_id in self.cache:
            return session_id

        self.cache.put(Session(id=session_id, owner_id=owner_id))
        log_conversation_event(self.logger, "created", session_id, authenticated=owner_id is not None)
        return session_id

    def _hydrate(self, session_id: str, owner_id: str, record: ConversationRecord) -> Session:
        messages = [
            Message(
                id=m.id,
                content=m.content,
                role=USER_ROLE if m.is_user else ASSISTANT_ROLE,
                references=tuple(m.references),
                timestamp=_parse_timestamp(m.created_at),
            )
            for m in record.messages
        ]
        session = Session(
            id=session_id,
            owner_id=owner_id,
            durable_id=record.id,
            persona=None if record.persona == GENERAL_PERSONA_LABEL else record.persona,
            messages=messages,
            created_at=_parse_timestamp(record.created_at),
        )
        refs: List[str] = []
        for message in messages:
            refs = merge_capped(refs, message.references, self.config.session.max_recent_references)
        session.context.recent_references = refs
        return session

    async def resolve_session(self, session_id: str, owner_id: Optional[str] = None) -> SessionLookup:
        """
        Find a session in the cache, else (for owners) in the durable store

        A cached session owned by someone else is reported as absent. Store
        failures of any kind also resolve to absent.
        """
        self.start()

        cached = self.cache.get(session_id)
        if cached is not None:
            if cached.owner_id is not None and cached.owner_id != owner_id:
                self.logger.warning(f"Session {session_id} requested by a different owner")
                return SessionLookup(LookupSource.ABSENT)
            if cached.owner_id is None and owner_id is not None and cached.durable_id is None:
                return await self._resolve_claim(cached, owner_id)
            cached.touch()
            return SessionLookup(LookupSource.CACHE, cached)

        if owner_id is None:
            return SessionLookup(LookupSource.ABSENT)

        try:
            record = await self._store_call(
                lambda: self.store.get_conversation_by_session(session_id, owner_id),
                operation="load conversation"
            )
        except ConversationAccessDeniedError:
            self.logger.warning(f"Session {session_id} belongs to another owner")
            return SessionLookup(LookupSource.ABSENT)
        except STORE_FAILURES as e:
            self.logger.error(f"Error loading session {session_id} from store: {e.__class__.__name__}")
            return SessionLookup(LookupSource.ABSENT)

        if record is None:
            return SessionLookup(LookupSource.ABSENT)

        session = self._hydrate(session_id, owner_id, record)
        self.cache.put(session)
        log_conversation_event(self.logger, "hydrated", session_id, message_count=len(session.messages))
        return SessionLookup(LookupSource.STORE, session)

    async def _resolve_claim(self, cached: Session, owner_id: str) -> SessionLookup:
        """
        An owner reaching an unowned cached session

        The durable history under that id wins over the anonymous cached copy,
        and a durable history of another owner makes the session unavailable.
        """
        session_id = cached.id
        try:
            record = await self._store_call(
                lambda: self.store.get_conversation_by_session(session_id, owner_id),
                operation="load conversation"
            )
        except ConversationAccessDeniedError:
            self.logger.warning(f"Session {session_id} belongs to another owner")
            return SessionLookup(LookupSource.ABSENT)
        except STORE_FAILURES as e:
            self.logger.error(f"Error checking session {session_id} in store: {e.__class__.__name__}")
            cached.touch()
            return SessionLookup(LookupSource.CACHE, cached)

        if record is None:
            cached.touch()
            return SessionLookup(LookupSource.CACHE, cached)

        self.logger.warning(f"Replacing unowned cached copy of session {session_id} with durable history")
        session = self._hydrate(session_id, owner_id, record)
        self.cache.put(session)
        log_conversation_event(self.logger, "hydrated", session_id, message_count=len(session.messages))
        return SessionLookup(LookupSource.STORE, session)

    async def is_session_id_free(self, session_id: str) -> bool:
        """
        Whether a caller-chosen id may start a new session

        Taken ids are cached sessions and ids with durable history. An
        unreachable store counts as taken.
        """
        if session_id in self.cache:
            return False
        try:
            exists = await self._store_call(
                lambda: self.store.session_exists(session_id),
                operation="check session id"
            )
        except STORE_FAILURES as e:
            self.logger.error(f"Error checking session id {session_id}: {e.__class__.__name__}")
            return False
        return not exists

    async def get_session(self, session_id: str, owner_id: Optional[str] = None) -> Optional[Session]:
        return (await self.resolve_session(session_id, owner_id)).session

    async def require_session(self, session_id: str, owner_id: Optional[str] = None) -> Session:
        """
        Raises:
            SessionNotFoundError: neither cached nor recoverable for this caller
        """
        session = await self.get_session(session_id, owner_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def set_persona(self, session_id: str, persona_id: str) -> bool:
        session = self.cache.get(session_id)
        if session is None:
            return False
        session.persona = persona_id
        session.touch()
        return True

    def delete_session(self, session_id: str) -> bool:
        """Drop the session from the cache; durable history is kept"""
        removed = self.cache.remove(session_id)
        if removed:
            log_conversation_event(self.logger, "deleted", session_id)
        return removed

    async def delete_conversation(self, session_id: str, owner_id: str) -> bool:
        """Explicitly delete a session everywhere, including its durable history"""
        session = self.cache.get(session_id)
        if session is not None and session.owner_id not in (None, owner_id):
            return False

        durable_id = session.durable_id if session and session.durable_id else session_id
        deleted = await self.store.delete_conversation(durable_id, owner_id)
        removed = self.cache.remove(session_id)
        log_conversation_event(self.logger, "purged", session_id, durable=deleted)
        return deleted or removed

    # Messages

    async def _ensure_durable(self, session: Session, owner_id: str, first_content: str):
        try:
            await self._store_call(
                lambda: self.store.create_conversation(
                    session.id, owner_id, session.persona or GENERAL_PERSONA_LABEL,
                    _title_from(session, first_content), session_id=session.id
                ),
                operation="create conversation"
            )
        except DuplicateConversationError:
            self.logger.info(f"Conversation for session {session.id} already exists, reusing it")
        session.durable_id = session.id

    async def append_message_with_result(self, session_id: str, content: str, role: str,
                                         references: Optional[Sequence[str]] = None,
                                         owner_id: Optional[str] = None) -> AppendResult:
        """
        Append a message to the session, writing through to the store for owners

        Returns:
            AppendResult; ``cache_written`` is False only when the session
            cannot be found or recovered
        """
        if role not in ROLES:
            raise ValidationError(f"Unknown role: {role!r}")
        if not content or not content.strip():
            raise ValidationError("Message content must not be empty")

        lookup = await self.resolve_session(session_id, owner_id)
        if not lookup.found:
            self.logger.warning(f"Cannot append to unknown session {session_id}")
            return AppendResult(cache_written=False)

        session = lookup.session
        if owner_id is not None and session.owner_id is None:
            session.owner_id = owner_id

        refs = list(references or [])
        durable_message_id = None
        durable_error = None

        if owner_id is not None:
            stage = "create"
            try:
                if session.durable_id is None:
                    await self._ensure_durable(session, owner_id, content)
                stage = "append"
                record = await self._store_call(
                    lambda: self.store.append_message(session.durable_id, content, role == USER_ROLE,
                                                      refs, owner_id=owner_id),
                    operation="append message"
                )
                durable_message_id = record.id
            except ConversationAccessDeniedError as e:
                durable_error = DurableWriteDegraded(session_id, stage, e)
                self.logger.warning(f"Durable write denied for session {session_id}")
            except ConversationNotFoundError as e:
                # Row vanished underneath us; recreate on the next append
                session.durable_id = None
                durable_error = DurableWriteDegraded(session_id, stage, e)
                self.logger.warning(f"Durable conversation missing for session {session_id}")
            except STORE_FAILURES as e:
                durable_error = DurableWriteDegraded(session_id, stage, e)
                self.logger.error(f"Error persisting message for session {session_id}: {e.__class__.__name__}")

        message = Message(
            id=durable_message_id or f"temp_{uuid.uuid4().hex[:16]}",
            content=content,
            role=role,
            references=tuple(refs),
        )
        session.messages.append(message)
        session.context.recent_references = merge_capped(
            session.context.recent_references, refs, self.config.session.max_recent_references
        )
        session.touch()

        log_conversation_event(self.logger, "message_added", session_id, role=role,
                               durable=durable_message_id is not None, reference_count=len(refs))
        return AppendResult(
            cache_written=True,
            durable_written=durable_message_id is not None,
            message=message,
            durable_error=durable_error,
        )

    async def append_message(self, session_id: str, content: str, role: str,
                             references: Optional[Sequence[str]] = None,
                             owner_id: Optional[str] = None) -> bool:
        result = await self.append_message_with_result(session_id, content, role, references, owner_id)
        return result.cache_written

    def merge_topics(self, session_id: str, topics: Sequence[str]) -> bool:
        session = self.cache.get(session_id)
        if session is None:
            return False
        session.context.topics = merge_capped(session.context.topics, topics, self.config.session.max_topics)
        return True

    # Listing and inspection

    @staticmethod
    def _summarize_cached(session: Session) -> SessionSummary:
        first_user = next((m for m in session.messages if m.is_user), None)
        return SessionSummary(
            id=session.id,
            title=_title_from(session, first_user.content) if first_user else "New conversation",
            message_count=len(session.messages),
            created_at=session.created_at,
            last_activity_at=session.last_activity_at,
            persona=session.persona,
            durable_id=session.durable_id,
        )

    def _cached_summaries(self, owner_id: Optional[str], limit: int) -> List[SessionSummary]:
        sessions = self.cache.values()
        if owner_id is not None:
            sessions = [s for s in sessions if s.owner_id == owner_id]
        summaries = [self._summarize_cached(s) for s in sessions]
        summaries.sort(key=lambda s: s.last_activity_at, reverse=True)
        return summaries[:limit]

    async def list_sessions(self, owner_id: Optional[str] = None,
                            limit: Optional[int] = None) -> List[SessionSummary]:
        """
        Sessions most recently active first

        Owners get their durable conversations, or their cached sessions when
        the store is unavailable. Without an owner, every cached session is listed.
        """
        if limit is None:
            limit = self.config.session.default_list_limit
        if limit <= 0:
            return []
        if owner_id is None:
            return self._cached_summaries(None, limit)

        try:
            records = await self._store_call(
                lambda: self.store.list_conversations_for_owner(owner_id, limit),
                operation="list conversations"
            )
        except STORE_FAILURES as e:
            self.logger.error(f"Error listing conversations, using cache: {e.__class__.__name__}")
            return self._cached_summaries(owner_id, limit)

        return [
            SessionSummary(
                id=record.session_id or record.id,
                title=record.title,
                message_count=record.message_count,
                created_at=_parse_timestamp(record.created_at),
                last_activity_at=_parse_timestamp(record.updated_at),
                persona=None if record.persona == GENERAL_PERSONA_LABEL else record.persona,
                durable_id=record.id,
            )
            for record in records
        ][:limit]

    async def get_conversation_history(self, session_id: str, limit: Optional[int] = None,
                                       owner_id: Optional[str] = None) -> List[Message]:
        """Last ``limit`` messages, oldest first; empty when the session is unknown"""
        if limit is None:
            limit = self.config.session.history_limit
        if limit <= 0:
            return []
        session = await self.get_session(session_id, owner_id)
        if session is None:
            return []
        return list(session.messages[-limit:])

    def get_session_stats(self, session_id: str) -> Optional[Dict[str, Any]]:
        session = self.cache.get(session_id)
        if session is None:
            return None

        user_count = sum(1 for m in session.messages if m.is_user)
        return {
            "session_id": session.id,
            "persona": session.persona,
            "message_count": len(session.messages),
            "user_messages": user_count,
            "assistant_messages": len(session.messages) - user_count,
            "recent_references": list(session.context.recent_references),
            "topics": list(session.context.topics),
            "created_at": session.created_at.isoformat(),
            "last_activity_at": session.last_activity_at.isoformat(),
            "persisted": session.durable_id is not None,
        }

    def get_health_info(self) -> Dict[str, Any]:
        return {
            "cached_sessions": len(self.cache),
            "sweeper_running": self.cache.sweeper_running,
            "idle_ttl_seconds": self.cache.idle_ttl.total_seconds(),
        }


# Global orchestrator instance
_session_orchestrator: Optional[SessionOrchestrator] = None


def get_session_orchestrator() -> SessionOrchestrator:
    """Get the global session orchestrator instance"""
    global _session_orchestrator
    if _session_orchestrator is None:
        _session_orchestrator = SessionOrchestrator()
    return _session_orchestrator
