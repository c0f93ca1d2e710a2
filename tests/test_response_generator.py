"""
Tests for reply generation, post-processing and fallbacks
"""

from datetime import datetime

import pytest

from infrastructure.config.personas import PERSONAS
from infrastructure.resilience.retry_service import CircuitBreakerState, TransientError
from services.ai_service.fallback_service import FallbackService
from services.ai_service.models import UserContext
from services.ai_service.response_generator import ResponseGenerator
from services.exceptions import PersonaNotFoundError, ValidationError
from tests.fakes import FakeLLM, word_counter


def make_generator(config, retry_service, *script):
    llm = FakeLLM(*script)
    generator = ResponseGenerator(llm_client=llm, retry_service=retry_service,
                                  fallback_service=FallbackService(), token_counter=word_counter,
                                  config=config)
    return generator, llm


class TestGenerateResponse:
    """Test the generation pipeline"""

    @pytest.mark.asyncio
    async def test_returns_model_reply(self, config, retry_service):
        generator, llm = make_generator(config, retry_service, "The plain meaning is about creation itself.")

        reply = await generator.generate_response("What does Genesis 1:1 mean?", "rashi")

        assert reply == "The plain meaning is about creation itself."
        assert "CURRENT STUDENT QUESTION: What does Genesis 1:1 mean?" in llm.prompts[0]

    @pytest.mark.asyncio
    async def test_persona_by_name(self, config, retry_service):
        generator, llm = make_generator(config, retry_service)

        await generator.generate_response("Hello", "Rambam")

        assert PERSONAS.get("rambam").system_prompt in llm.prompts[0]

    @pytest.mark.asyncio
    async def test_validation_errors_escape(self, config, retry_service):
        generator, llm = make_generator(config, retry_service)

        with pytest.raises(ValidationError):
            await generator.generate_response("   ", "rashi")
        with pytest.raises(PersonaNotFoundError):
            await generator.generate_response("Hello", "nobody")
        assert llm.prompts == []

    @pytest.mark.asyncio
    async def test_history_from_dict_context(self, config, retry_service):
        generator, llm = make_generator(config, retry_service)
        context = {"history": [{"role": "user", "content": "Earlier question"},
                               {"role": "assistant", "content": "Earlier answer"}]}

        await generator.generate_response("Follow up", "rashi", context)

        assert "Student: Earlier question\n\nRabbi: Earlier answer" in llm.prompts[0]

    @pytest.mark.asyncio
    async def test_history_limited(self, config, retry_service):
        generator, llm = make_generator(config, retry_service)
        context = {"history": [{"role": "user", "content": f"question {i}"} for i in range(15)]}

        await generator.generate_response("Next", "rashi", context)

        assert "question 4\n" not in llm.prompts[0]
        assert "question 5" in llm.prompts[0]
        assert "question 14" in llm.prompts[0]

    @pytest.mark.asyncio
    async def test_display_name_passed_through(self, config, retry_service):
        generator, llm = make_generator(config, retry_service)

        await generator.generate_response("Hello", "rashi",
                                          user_context=UserContext("Miriam", authenticated=True))

        assert "Miriam" in llm.prompts[0]

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, config, retry_service):
        generator, llm = make_generator(config, retry_service, TransientError("busy"), "Recovered and teaching again.")

        reply = await generator.generate_response("Hello", "rashi")

        assert reply == "Recovered and teaching again."
        assert len(llm.prompts) == 2

    @pytest.mark.asyncio
    async def test_exhausted_retries_use_persona_fallback(self, config, retry_service):
        generator, llm = make_generator(config, retry_service, TransientError("down"))

        reply = await generator.generate_response("Hello", "rashi")

        assert reply == PERSONAS.get("rashi").fallback_replies.technical
        assert len(llm.prompts) == config.llm.max_attempts

    @pytest.mark.asyncio
    async def test_unexpected_error_uses_fallback(self, config, retry_service):
        generator, _ = make_generator(config, retry_service, RuntimeError("provider exploded"))

        reply = await generator.generate_response("Hello", "rambam")

        assert reply == PERSONAS.get("rambam").fallback_replies.technical

    @pytest.mark.asyncio
    async def test_open_circuit_uses_fallback_without_call(self, config, retry_service):
        generator, llm = make_generator(config, retry_service)
        generator.circuit_breaker.state = CircuitBreakerState.OPEN
        generator.circuit_breaker.last_failure_time = datetime.now()

        reply = await generator.generate_response("Hello", "rashi")

        assert reply == PERSONAS.get("rashi").fallback_replies.technical
        assert llm.prompts == []

    @pytest.mark.asyncio
    async def test_character_break_redirected(self, config, retry_service):
        generator, _ = make_generator(config, retry_service, "I am an AI and cannot truly study with you.")

        reply = await generator.generate_response("Are you real?", "rashi")

        assert reply == PERSONAS.get("rashi").fallback_replies.in_character

    @pytest.mark.asyncio
    async def test_substitution_applied(self, config, retry_service):
        generator, _ = make_generator(config, retry_service, "As an AI model, I would read this verse slowly.")

        reply = await generator.generate_response("How should I read?", "rashi")

        assert reply == "As a teacher, I would read this verse slowly."

    @pytest.mark.asyncio
    async def test_short_reply_uses_fallback(self, config, retry_service):
        generator, _ = make_generator(config, retry_service, "Yes.")

        reply = await generator.generate_response("Is that so?", "rashi")

        assert reply == PERSONAS.get("rashi").fallback_replies.technical


class TestConversationSummary:
    """Test conversation summaries"""

    @pytest.mark.asyncio
    async def test_too_few_messages(self, config, retry_service):
        generator, llm = make_generator(config, retry_service)

        assert await generator.generate_conversation_summary([{"role": "user", "content": "hi"}]) == ""
        assert llm.prompts == []

    @pytest.mark.asyncio
    async def test_summary_of_recent_messages(self, config, retry_service):
        generator, llm = make_generator(config, retry_service, "  We studied creation and Shabbat.  ")
        messages = [{"role": "user" if i % 2 == 0 else "assistant", "content": f"turn {i}"} for i in range(12)]

        summary = await generator.generate_conversation_summary(messages)

        assert summary == "We studied creation and Shabbat."
        assert "turn 1\n" not in llm.prompts[0]
        assert "turn 2" in llm.prompts[0]

    @pytest.mark.asyncio
    async def test_failure_gives_empty_summary(self, config, retry_service):
        generator, _ = make_generator(config, retry_service, RuntimeError("nope"))
        messages = [{"role": "user", "content": f"turn {i}"} for i in range(4)]

        assert await generator.generate_conversation_summary(messages) == ""

    def test_health_info(self, config, retry_service):
        generator, _ = make_generator(config, retry_service)
        info = generator.get_health_info()

        assert info["circuit_breaker"]["name"] == "openai"
        assert info["personas"] == 9
