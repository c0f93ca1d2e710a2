"""
Tests for token issue, validation and owner resolution
"""

import sqlite3
from datetime import datetime, timedelta

import pytest

from services.auth_service import AuthenticationError, AuthManager, UserRepository


class TestUserRepository:
    """Test users and token persistence"""

    @pytest.fixture(autouse=True)
    def _repository(self, config):
        self.repository = UserRepository(config.auth.user_db_path, token_ttl_hours=24)
        self.db_path = config.auth.user_db_path

    def _expire(self, token_user_id):
        conn = sqlite3.connect(self.db_path)
        past = (datetime.now() - timedelta(hours=1)).isoformat()
        conn.execute("UPDATE auth_tokens SET expires_at = ? WHERE user_id = ?", (past, token_user_id))
        conn.commit()
        conn.close()

    def test_issue_and_validate(self):
        user = self.repository.create_user(display_name="Sarah", email="sarah@example.com")
        issued = self.repository.issue_token(user.user_id)

        identity = self.repository.validate_token(issued.token)

        assert identity.user_id == user.user_id
        assert identity.display_name == "Sarah"
        assert identity.verified is False

    def test_token_stored_as_digest(self):
        user = self.repository.create_user()
        issued = self.repository.issue_token(user.user_id)

        conn = sqlite3.connect(self.db_path)
        stored = [row[0] for row in conn.execute("SELECT token_hash FROM auth_tokens")]
        conn.close()

        assert issued.token not in stored
        assert len(stored[0]) == 64

    def test_unknown_and_revoked(self):
        user = self.repository.create_user()
        issued = self.repository.issue_token(user.user_id)

        assert self.repository.validate_token("not-a-token") is None
        assert self.repository.revoke_token(issued.token) is True
        assert self.repository.validate_token(issued.token) is None

    def test_expired_token(self):
        user = self.repository.create_user()
        issued = self.repository.issue_token(user.user_id)
        self._expire(user.user_id)

        assert self.repository.validate_token(issued.token) is None

    def test_cleanup_expired(self):
        user = self.repository.create_user()
        self.repository.issue_token(user.user_id)
        self._expire(user.user_id)

        assert self.repository.cleanup_expired_tokens() == 1
        assert self.repository.cleanup_expired_tokens() == 0


class TestAuthManager:
    """Test token to owner resolution"""

    @pytest.fixture(autouse=True)
    def _repository(self, config):
        self.repository = UserRepository(config.auth.user_db_path, token_ttl_hours=24)

    def test_anonymous(self):
        manager = AuthManager(self.repository, require_verified_email=False)
        assert manager.resolve_owner(None) is None

    def test_valid_token(self):
        manager = AuthManager(self.repository, require_verified_email=False)
        user = self.repository.create_user(display_name="Dov")
        token = self.repository.issue_token(user.user_id).token

        assert manager.resolve_owner(token) == user.user_id

    def test_invalid_token_raises(self):
        manager = AuthManager(self.repository, require_verified_email=False)

        with pytest.raises(AuthenticationError):
            manager.resolve_identity("bogus")
        with pytest.raises(AuthenticationError):
            manager.validate_token("")

    def test_verified_email_required(self):
        manager = AuthManager(self.repository, require_verified_email=True)
        user = self.repository.create_user()
        token = self.repository.issue_token(user.user_id).token

        with pytest.raises(AuthenticationError):
            manager.validate_token(token)

        self.repository.set_verified(user.user_id)
        assert manager.validate_token(token).verified is True
