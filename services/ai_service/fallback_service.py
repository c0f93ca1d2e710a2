"""
AI service fallback system for graceful degradation.
Whatever goes wrong upstream, the student gets a reply in the persona's voice.
"""

from typing import Dict, Optional

import openai

from infrastructure.config.personas import PERSONAS, Persona
from infrastructure.monitoring.logging_service import get_logger
from infrastructure.resilience.retry_service import RetryExhaustedError
from services.ai_service.models import ErrorCategory


RATE_LIMIT_REPLY = (
    "I apologize, but I'm experiencing high demand right now. Please try again in a moment. "
    "In the meantime, perhaps you could share what specific aspect of Torah study you'd like to explore?"
)

CONTENT_POLICY_REPLY = (
    "I want to ensure our discussion remains focused on Torah learning and Jewish wisdom. "
    "Could you rephrase your question in a way that relates to our study?"
)

_RATE_LIMIT_HINTS = ("rate limit", "rate_limit", "quota", "too many requests")
_CONTENT_POLICY_HINTS = ("content policy", "content_policy", "content_filter", "content filter", "safety")


def classify_error(error: Optional[BaseException]) -> ErrorCategory:
    """Map a generation failure to the category that picks its fallback line"""
    if error is None:
        return ErrorCategory.OTHER

    if isinstance(error, RetryExhaustedError):
        error = error.last_error

    if isinstance(error, openai.RateLimitError):
        return ErrorCategory.RATE_LIMIT
    if isinstance(error, openai.ContentFilterFinishReasonError):
        return ErrorCategory.CONTENT_POLICY

    message = str(error).lower()
    if any(hint in message for hint in _RATE_LIMIT_HINTS):
        return ErrorCategory.RATE_LIMIT
    if any(hint in message for hint in _CONTENT_POLICY_HINTS):
        return ErrorCategory.CONTENT_POLICY
    return ErrorCategory.OTHER


class FallbackService:
    """
    Chooses fallback replies and in-character redirects.
    """

    def __init__(self, default_persona: Optional[Persona] = None):
        self.logger = get_logger(__name__)
        self.default_persona = default_persona or PERSONAS.default

    def generate_fallback_response(self, persona: Optional[Persona] = None,
                                   error: Optional[BaseException] = None) -> str:
        """
        Generic line for rate limiting or content policy, otherwise the
        persona's technical-difficulty line, otherwise the default persona's
        """
        category = classify_error(error)
        self.logger.info(f"Using fallback reply ({category.value})",
                         extra={"persona": persona.id if persona else None})

        if category is ErrorCategory.RATE_LIMIT:
            return RATE_LIMIT_REPLY
        if category is ErrorCategory.CONTENT_POLICY:
            return CONTENT_POLICY_REPLY
        if persona is not None:
            return persona.fallback_replies.technical
        return self.default_persona.fallback_replies.technical

    def get_in_character_redirect(self, persona: Optional[Persona] = None) -> str:
        return (persona or self.default_persona).fallback_replies.in_character

    def get_service_status_message(self, circuit_state: Dict) -> str:
        """
        User-facing status line for a circuit breaker state snapshot
        """
        state = circuit_state.get("state", "unknown")
        remaining_timeout = circuit_state.get("remaining_timeout", 0)

        if state == "open":
            if remaining_timeout > 60:
                return f"Our teacher is resting - back in about {remaining_timeout // 60:.0f} minutes"
            return f"Our teacher is resting - back in {remaining_timeout:.0f} seconds"
        if state == "half_open":
            return "Our teacher is returning..."
        return "Our teacher is available"


# Global fallback service instance
_fallback_service: Optional[FallbackService] = None


def get_fallback_service() -> FallbackService:
    """Get the global fallback service instance"""
    global _fallback_service
    if _fallback_service is None:
        _fallback_service = FallbackService()
    return _fallback_service
