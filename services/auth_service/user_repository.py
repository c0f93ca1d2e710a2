"""
User repository - users and their bearer tokens.
"""

import hashlib
import os
import secrets
import sqlite3
import uuid
from datetime import datetime, timedelta
from typing import Optional

from services.auth_service.models import AuthToken, UserIdentity
from infrastructure.config.settings import get_config
from infrastructure.monitoring.logging_service import get_logger


def _digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class UserRepository:
    """
    Repository for users and token persistence.
    Tokens are stored as SHA-256 digests, never in clear.
    """

    def __init__(self, db_path: str = None, token_ttl_hours: int = None):
        """
        Initialize user repository

        Args:
            db_path: Path to user database (defaults to config setting)
            token_ttl_hours: Token lifetime (defaults to config setting)
        """
        self.logger = get_logger(__name__)
        config = get_config()
        self.db_path = db_path or config.auth.user_db_path
        self.token_ttl_hours = token_ttl_hours or config.auth.token_ttl_hours

        self._init_database()

    def _init_database(self):
        """Initialize user database tables"""
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS users (
                user_id TEXT PRIMARY KEY,
                display_name TEXT,
                email TEXT UNIQUE,
                email_verified BOOLEAN DEFAULT 0,
                is_active BOOLEAN DEFAULT 1,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS auth_tokens (
                token_hash TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                created_at TEXT NOT NULL,
                expires_at TEXT NOT NULL,
                is_active BOOLEAN DEFAULT 1,
                FOREIGN KEY (user_id) REFERENCES users (user_id)
            )
        """)

        conn.commit()
        conn.close()

    def create_user(self, display_name: Optional[str] = None, email: Optional[str] = None,
                    verified: bool = False) -> UserIdentity:
        user_id = str(uuid.uuid4())
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("""
                INSERT INTO users (user_id, display_name, email, email_verified, created_at)
                VALUES (?, ?, ?, ?, ?)
            """, (user_id, display_name, email, verified, datetime.now().isoformat()))
            conn.commit()
        finally:
            conn.close()

        self.logger.info(f"User created: {user_id}")
        return UserIdentity(user_id=user_id, verified=verified, display_name=display_name, email=email)

    def set_verified(self, user_id: str, verified: bool = True) -> bool:
        conn = sqlite3.connect(self.db_path)
        try:
            cursor = conn.execute("UPDATE users SET email_verified = ? WHERE user_id = ?", (verified, user_id))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def issue_token(self, user_id: str) -> AuthToken:
        """
        Issue a new bearer token for ``user_id``

        Returns:
            AuthToken holding the clear token; it cannot be recovered later
        """
        token = secrets.token_urlsafe(32)
        now = datetime.now()
        expires_at = now + timedelta(hours=self.token_ttl_hours)

        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("""
                INSERT INTO auth_tokens (token_hash, user_id, created_at, expires_at, is_active)
                VALUES (?, ?, ?, ?, 1)
            """, (_digest(token), user_id, now.isoformat(), expires_at.isoformat()))
            conn.commit()
        finally:
            conn.close()

        self.logger.info(f"Token issued for user: {user_id}")
        return AuthToken(token=token, user_id=user_id, created_at=now, expires_at=expires_at)

    def validate_token(self, token: str) -> Optional[UserIdentity]:
        """
        Identity behind an active, unexpired token

        Returns:
            UserIdentity if valid, None otherwise
        """
        conn = sqlite3.connect(self.db_path)
        try:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT u.user_id, u.display_name, u.email, u.email_verified, t.expires_at
                FROM auth_tokens t
                JOIN users u ON t.user_id = u.user_id
                WHERE t.token_hash = ? AND t.is_active = 1 AND u.is_active = 1
            """, (_digest(token),))
            row = cursor.fetchone()

            if not row:
                return None

            if datetime.now() > datetime.fromisoformat(row[4]):
                cursor.execute("UPDATE auth_tokens SET is_active = 0 WHERE token_hash = ?", (_digest(token),))
                conn.commit()
                return None
        finally:
            conn.close()

        return UserIdentity(user_id=row[0], display_name=row[1], email=row[2], verified=bool(row[3]))

    def revoke_token(self, token: str) -> bool:
        conn = sqlite3.connect(self.db_path)
        try:
            cursor = conn.execute("UPDATE auth_tokens SET is_active = 0 WHERE token_hash = ?", (_digest(token),))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def cleanup_expired_tokens(self) -> int:
        """Deactivate expired tokens; returns how many were touched"""
        conn = sqlite3.connect(self.db_path)
        try:
            cursor = conn.execute("""
                UPDATE auth_tokens SET is_active = 0
                WHERE expires_at < ? AND is_active = 1
            """, (datetime.now().isoformat(),))
            expired_count = cursor.rowcount
            conn.commit()
        finally:
            conn.close()

        if expired_count > 0:
            self.logger.info(f"Cleaned up {expired_count} expired tokens")
        return expired_count


# Global repository instance
_user_repository: Optional[UserRepository] = None


def get_user_repository() -> UserRepository:
    """Get the global user repository instance"""
    global _user_repository
    if _user_repository is None:
        _user_repository = UserRepository()
    return _user_repository
