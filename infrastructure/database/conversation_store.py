"""
Durable conversation store backed by SQLite.

Every operation opens its own connection and runs in a worker thread, so the
event loop never blocks on disk I/O.
"""

import asyncio
import json
import os
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from infrastructure.monitoring.logging_service import get_logger
from infrastructure.resilience.retry_service import TransientError


class ConversationStoreError(Exception):
    """Base class for durable store failures"""
    pass


class ConversationNotFoundError(ConversationStoreError):
    pass


class ConversationAccessDeniedError(ConversationStoreError):
    """The conversation exists but belongs to another owner"""
    pass


class DuplicateConversationError(ConversationStoreError):
    pass


class ConversationStoreUnavailableError(ConversationStoreError, TransientError):
    """Database locked or unreachable"""
    pass


@dataclass
class MessageRecord:
    id: str
    conversation_id: str
    content: str
    is_user: bool
    references: List[str] = field(default_factory=list)
    created_at: str = ""


@dataclass
class ConversationRecord:
    id: str
    owner_id: str
    persona: str
    title: str
    created_at: str
    updated_at: str
    session_id: Optional[str] = None
    message_count: int = 0
    messages: List[MessageRecord] = field(default_factory=list)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SqliteConversationStore:
    """
    Conversations and their messages, scoped per owner.

    Messages come back in creation order; ties on the timestamp are broken by insertion order.
    """

    def __init__(self, db_path: str = "data/conversations.db"):
        self.logger = get_logger(__name__)
        self.db_path = db_path
        self._init_database()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=5.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _init_database(self):
        """Create tables and indexes if they do not exist yet"""
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        conn = self._connect()
        try:
            conn.execute('''
                CREATE TABLE IF NOT EXISTS conversations (
                    id TEXT PRIMARY KEY,
                    session_id TEXT UNIQUE,
                    user_id TEXT NOT NULL,
                    persona TEXT NOT NULL,
                    title TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            ''')
            conn.execute('''
                CREATE TABLE IF NOT EXISTS messages (
                    id TEXT PRIMARY KEY,
                    conversation_id TEXT NOT NULL,
                    content TEXT NOT NULL,
                    is_user INTEGER NOT NULL,
                    torah_references TEXT NOT NULL DEFAULT '[]',
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (conversation_id) REFERENCES conversations (id) ON DELETE CASCADE
                )
            ''')
            conn.execute('CREATE INDEX IF NOT EXISTS idx_conversations_user ON conversations (user_id, updated_at)')
            conn.execute('CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages (conversation_id, created_at)')
            conn.commit()
        finally:
            conn.close()

        self.logger.info(f"Conversation store initialized at {self.db_path}")

    async def _run(self, operation: Callable[[sqlite3.Connection], Any]) -> Any:
        def work():
            conn = self._connect()
            try:
                result = operation(conn)
                conn.commit()
                return result
            finally:
                conn.close()

        try:
            return await asyncio.to_thread(work)
        except sqlite3.IntegrityError as e:
            raise DuplicateConversationError(str(e)) from e
        except sqlite3.OperationalError as e:
            raise ConversationStoreUnavailableError(str(e)) from e
        except sqlite3.DatabaseError as e:
            # Corrupt file, disk full and similar: degrade like an outage
            raise ConversationStoreUnavailableError(str(e)) from e

    @staticmethod
    def _check_owner(row: sqlite3.Row, owner_id: Optional[str]):
        if owner_id is not None and row["user_id"] != owner_id:
            raise ConversationAccessDeniedError(f"Conversation {row['id']} is not owned by caller")

    @staticmethod
    def _to_conversation(row: sqlite3.Row, message_count: int = 0) -> ConversationRecord:
        return ConversationRecord(
            id=row["id"],
            owner_id=row["user_id"],
            persona=row["persona"],
            title=row["title"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            session_id=row["session_id"],
            message_count=message_count,
        )

    @staticmethod
    def _to_message(row: sqlite3.Row) -> MessageRecord:
        return MessageRecord(
            id=row["id"],
            conversation_id=row["conversation_id"],
            content=row["content"],
            is_user=bool(row["is_user"]),
            references=json.loads(row["torah_references"] or "[]"),
            created_at=row["created_at"],
        )

    async def create_conversation(self, conversation_id: str, owner_id: str, persona_label: str,
                                  title: str, session_id: Optional[str] = None) -> ConversationRecord:
        """
        Create a conversation row

        Raises:
            DuplicateConversationError: a conversation with this id or session id already exists
        """
        now = _utc_now()

        def operation(conn):
            conn.execute(
                'INSERT INTO conversations (id, session_id, user_id, persona, title, created_at, updated_at) '
                'VALUES (?, ?, ?, ?, ?, ?, ?)',
                (conversation_id, session_id, owner_id, persona_label, title, now, now)
            )

        await self._run(operation)
        self.logger.info(f"Created conversation {conversation_id}", extra={"owner_id": owner_id})
        return ConversationRecord(
            id=conversation_id, owner_id=owner_id, persona=persona_label, title=title,
            created_at=now, updated_at=now, session_id=session_id,
        )

    async def append_message(self, conversation_id: str, content: str, is_user: bool,
                             references: Optional[List[str]] = None,
                             owner_id: Optional[str] = None) -> MessageRecord:
        """
        Append a message and bump the conversation's updated_at

        Raises:
            ConversationNotFoundError: unknown conversation
            ConversationAccessDeniedError: owner_id given and not the conversation's owner
        """
        message_id = str(uuid.uuid4())
        now = _utc_now()
        refs = list(references or [])

        def operation(conn):
            row = conn.execute('SELECT id, user_id FROM conversations WHERE id = ?', (conversation_id,)).fetchone()
            if row is None:
                raise ConversationNotFoundError(f"Conversation {conversation_id} not found")
            self._check_owner(row, owner_id)
            conn.execute(
                'INSERT INTO messages (id, conversation_id, content, is_user, torah_references, created_at) '
                'VALUES (?, ?, ?, ?, ?, ?)',
                (message_id, conversation_id, content, int(is_user), json.dumps(refs), now)
            )
            conn.execute('UPDATE conversations SET updated_at = ? WHERE id = ?', (now, conversation_id))

        await self._run(operation)
        return MessageRecord(
            id=message_id, conversation_id=conversation_id, content=content,
            is_user=is_user, references=refs, created_at=now,
        )

    async def list_conversations_for_owner(self, owner_id: str, limit: int = 20) -> List[ConversationRecord]:
        """Owner's conversations, most recently updated first, with message counts"""

        def operation(conn):
            return conn.execute(
                'SELECT c.*, (SELECT COUNT(*) FROM messages m WHERE m.conversation_id = c.id) AS message_count '
                'FROM conversations c WHERE c.user_id = ? '
                'ORDER BY c.updated_at DESC, c.rowid DESC LIMIT ?',
                (owner_id, limit)
            ).fetchall()

        rows = await self._run(operation)
        return [self._to_conversation(row, row["message_count"]) for row in rows]

    def _load_with_messages(self, conn, row) -> ConversationRecord:
        messages = conn.execute(
            'SELECT * FROM messages WHERE conversation_id = ? ORDER BY created_at ASC, rowid ASC',
            (row["id"],)
        ).fetchall()
        record = self._to_conversation(row, len(messages))
        record.messages = [self._to_message(m) for m in messages]
        return record

    async def get_conversation_with_messages(self, conversation_id: str,
                                             owner_id: str) -> Optional[ConversationRecord]:
        """
        Conversation plus ordered messages, or None when it does not exist

        Raises:
            ConversationAccessDeniedError: the conversation belongs to someone else
        """

        def operation(conn):
            row = conn.execute('SELECT * FROM conversations WHERE id = ?', (conversation_id,)).fetchone()
            if row is None:
                return None
            self._check_owner(row, owner_id)
            return self._load_with_messages(conn, row)

        return await self._run(operation)

    async def get_conversation_by_session(self, session_id: str,
                                          owner_id: str) -> Optional[ConversationRecord]:
        """Same as get_conversation_with_messages, looked up by session id"""

        def operation(conn):
            row = conn.execute('SELECT * FROM conversations WHERE session_id = ?', (session_id,)).fetchone()
            if row is None:
                return None
            self._check_owner(row, owner_id)
            return self._load_with_messages(conn, row)

        return await self._run(operation)

    async def session_exists(self, session_id: str) -> bool:
        """Whether any owner has a conversation under this session id"""

        def operation(conn):
            row = conn.execute(
                'SELECT 1 FROM conversations WHERE session_id = ? OR id = ?', (session_id, session_id)
            ).fetchone()
            return row is not None

        return await self._run(operation)

    async def delete_conversation(self, conversation_id: str, owner_id: str) -> bool:
        """Delete a conversation and its messages; False when it did not exist"""

        def operation(conn):
            row = conn.execute('SELECT id, user_id FROM conversations WHERE id = ?', (conversation_id,)).fetchone()
            if row is None:
                return False
            self._check_owner(row, owner_id)
            conn.execute('DELETE FROM messages WHERE conversation_id = ?', (conversation_id,))
            conn.execute('DELETE FROM conversations WHERE id = ?', (conversation_id,))
            return True

        deleted = await self._run(operation)
        if deleted:
            self.logger.info(f"Deleted conversation {conversation_id}")
        return deleted


# Global store instance
_conversation_store: Optional[SqliteConversationStore] = None


def get_conversation_store() -> SqliteConversationStore:
    """Get the global conversation store instance"""
    global _conversation_store
    if _conversation_store is None:
        from infrastructure.config.settings import get_config
        _conversation_store = SqliteConversationStore(get_config().database.db_path)
    return _conversation_store
