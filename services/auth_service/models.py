"""
Identity data models for the authentication service.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class UserIdentity:
    """Who a validated token belongs to"""
    user_id: str
    verified: bool = False
    display_name: Optional[str] = None
    email: Optional[str] = None


@dataclass
class AuthToken:
    """Issued bearer token; only its digest is stored"""
    token: str
    user_id: str
    created_at: datetime = field(default_factory=datetime.now)
    expires_at: Optional[datetime] = None


class AuthenticationError(Exception):
    """Missing, unknown, expired or revoked token"""
    pass
