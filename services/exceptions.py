"""
Errors shared across services.
"""


class ValidationError(ValueError):
    """Caller input rejected before any external call"""
    pass


class PersonaNotFoundError(ValidationError):
    def __init__(self, persona_id):
        super().__init__(f"Unknown persona: {persona_id!r}")
        self.persona_id = persona_id


class SessionNotFoundError(LookupError):
    """The session is neither cached nor recoverable from the durable store"""

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class DurableWriteDegraded(Exception):
    """
    A durable write failed after the cache write succeeded.

    Never raised to callers; recorded on AppendResult and logged.
    """

    def __init__(self, session_id: str, stage: str, cause: Exception):
        super().__init__(f"Durable {stage} failed for session {session_id}: {cause.__class__.__name__}")
        self.session_id = session_id
        self.stage = stage
        self.cause = cause
