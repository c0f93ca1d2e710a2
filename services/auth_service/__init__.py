"""
Auth service - token validation and owner identity.
"""

from .models import UserIdentity, AuthToken, AuthenticationError
from .user_repository import UserRepository, get_user_repository
from .auth_manager import AuthManager, get_auth_manager

__all__ = [
    'UserIdentity',
    'AuthToken',
    'AuthenticationError',
    'UserRepository',
    'get_user_repository',
    'AuthManager',
    'get_auth_manager'
]
