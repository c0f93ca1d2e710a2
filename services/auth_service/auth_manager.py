"""
Authentication manager - turns bearer tokens into owner identities.
"""

from typing import Optional

from services.auth_service.models import AuthenticationError, UserIdentity
from services.auth_service.user_repository import UserRepository, get_user_repository
from infrastructure.config.settings import get_config
from infrastructure.monitoring.logging_service import get_logger


class AuthManager:
    """
    Validates tokens for the chat layer. Sessions of anonymous callers
    are cache-only; a valid token makes the caller a durable owner.
    """

    def __init__(self, repository: Optional[UserRepository] = None, require_verified_email: Optional[bool] = None):
        self.logger = get_logger(__name__)
        self.repository = repository or get_user_repository()
        if require_verified_email is None:
            require_verified_email = get_config().auth.require_verified_email
        self.require_verified_email = require_verified_email

    def validate_token(self, token: str) -> UserIdentity:
        """
        Raises:
            AuthenticationError: token missing, unknown, expired, revoked, or unverified when required
        """
        if not token:
            raise AuthenticationError("Missing token")

        identity = self.repository.validate_token(token)
        if identity is None:
            self.logger.warning("Rejected invalid or expired token")
            raise AuthenticationError("Invalid or expired token")

        if self.require_verified_email and not identity.verified:
            self.logger.warning(f"Rejected token for unverified user {identity.user_id}")
            raise AuthenticationError("Email address not verified")

        return identity

    def resolve_identity(self, token: Optional[str]) -> Optional[UserIdentity]:
        """Identity for a token, None for anonymous callers

        Raises:
            AuthenticationError: a token was supplied but is not valid
        """
        if token is None:
            return None
        return self.validate_token(token)

    def resolve_owner(self, token: Optional[str]) -> Optional[str]:
        identity = self.resolve_identity(token)
        return identity.user_id if identity else None


# Global auth manager instance
_auth_manager: Optional[AuthManager] = None


def get_auth_manager() -> AuthManager:
    """Get the global auth manager instance"""
    global _auth_manager
    if _auth_manager is None:
        _auth_manager = AuthManager()
    return _auth_manager
