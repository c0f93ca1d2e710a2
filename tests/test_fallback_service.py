"""
Tests for fallback reply selection
"""

import httpx
import openai

from infrastructure.config.personas import PERSONAS
from infrastructure.resilience.retry_service import RetryExhaustedError
from services.ai_service.fallback_service import (
    CONTENT_POLICY_REPLY,
    RATE_LIMIT_REPLY,
    FallbackService,
    classify_error,
)
from services.ai_service.models import ErrorCategory


def rate_limit_error():
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    return openai.RateLimitError("Rate limit reached", response=httpx.Response(429, request=request), body=None)


class TestClassifyError:

    def test_rate_limit_class(self):
        assert classify_error(rate_limit_error()) is ErrorCategory.RATE_LIMIT

    def test_unwraps_exhausted_retries(self):
        assert classify_error(RetryExhaustedError(3, rate_limit_error())) is ErrorCategory.RATE_LIMIT

    def test_message_hints(self):
        assert classify_error(RuntimeError("blocked by content_filter")) is ErrorCategory.CONTENT_POLICY
        assert classify_error(RuntimeError("quota exceeded")) is ErrorCategory.RATE_LIMIT
        assert classify_error(RuntimeError("boom")) is ErrorCategory.OTHER
        assert classify_error(None) is ErrorCategory.OTHER


class TestFallbackService:

    def setup_method(self):
        self.service = FallbackService()
        self.rashi = PERSONAS.get("rashi")

    def test_rate_limit_reply(self):
        assert self.service.generate_fallback_response(self.rashi, rate_limit_error()) == RATE_LIMIT_REPLY

    def test_content_policy_reply(self):
        error = RuntimeError("content policy violation")
        assert self.service.generate_fallback_response(self.rashi, error) == CONTENT_POLICY_REPLY

    def test_persona_technical_line(self):
        reply = self.service.generate_fallback_response(self.rashi, RuntimeError("boom"))
        assert reply == self.rashi.fallback_replies.technical

    def test_default_persona_line(self):
        reply = self.service.generate_fallback_response(None)
        assert reply == PERSONAS.default.fallback_replies.technical

    def test_redirect(self):
        assert self.service.get_in_character_redirect(self.rashi) == self.rashi.fallback_replies.in_character

    def test_status_messages(self):
        assert "available" in self.service.get_service_status_message({"state": "closed"})
        assert "returning" in self.service.get_service_status_message({"state": "half_open"})
        assert "seconds" in self.service.get_service_status_message({"state": "open", "remaining_timeout": 30})
        assert "minutes" in self.service.get_service_status_message({"state": "open", "remaining_timeout": 120})
