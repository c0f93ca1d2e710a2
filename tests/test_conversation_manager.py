"""
Tests for full chat turns through the conversation manager
"""

from unittest.mock import patch

import pytest

from infrastructure.config.personas import PERSONAS
from infrastructure.database.conversation_store import ConversationStoreUnavailableError
from services.ai_service.fallback_service import FallbackService
from services.ai_service.response_generator import ResponseGenerator
from services.auth_service.models import UserIdentity
from services.chat_service.conversation_manager import ConversationManager
from services.chat_service.models import ASSISTANT_ROLE, USER_ROLE
from services.chat_service.session_cache import SessionCache
from services.chat_service.session_orchestrator import SessionOrchestrator
from services.exceptions import PersonaNotFoundError, SessionNotFoundError, ValidationError
from services.reference_service.reference_resolver import ReferenceResolver
from tests.fakes import FakeLLM, FakeSefaria, word_counter

ALICE = UserIdentity(user_id="alice", verified=True, display_name="Alice")


class TestConversationManager:
    """Test send_message and friends against real services with fake providers"""

    @pytest.fixture(autouse=True)
    def _services(self, config, retry_service, store):
        self.config = config
        self.store = store
        self.sefaria = FakeSefaria()
        self.llm = FakeLLM("Rashi explains that the verse teaches about creation, see Exodus 20:11.")
        self.orchestrator = SessionOrchestrator(store=store, cache=SessionCache(),
                                                retry_service=retry_service, config=config)
        self.resolver = ReferenceResolver(client=self.sefaria, retry_service=retry_service, config=config)
        self.generator = ResponseGenerator(llm_client=self.llm, retry_service=retry_service,
                                           fallback_service=FallbackService(), token_counter=word_counter,
                                           config=config)
        self.manager = ConversationManager(self.orchestrator, self.resolver, self.generator, config)

    @pytest.mark.asyncio
    async def test_anonymous_turn_creates_session(self):
        result = await self.manager.send_message(None, "What does Genesis 1:1 teach?", "rashi")

        session = self.orchestrator.cache.get(result.session_id)
        assert session is not None
        assert session.persona == "rashi"
        assert [m.role for m in session.messages] == [USER_ROLE, ASSISTANT_ROLE]
        assert result.reply.startswith("Rashi explains")
        assert result.user_message.content == "What does Genesis 1:1 teach?"
        assert result.assistant_message.content == result.reply
        assert self.llm.sessions == [result.session_id]

    @pytest.mark.asyncio
    async def test_references_fetched_and_detected(self):
        result = await self.manager.send_message(None, "Compare Genesis 1:1 with Psalms 23:1", "rashi")

        assert [r.reference for r in result.references] == ["Genesis 1:1", "Psalms 23:1"]
        assert result.detected_references == ["Genesis 1:1", "Psalms 23:1", "Exodus 20:11"]
        assert 'Genesis 1:1: "Text of Genesis.1.1"' in self.llm.prompts[0]
        assert self.orchestrator.cache.get(result.session_id).context.recent_references == [
            "Genesis 1:1", "Psalms 23:1", "Exodus 20:11"
        ]

    @pytest.mark.asyncio
    async def test_topics_merged(self):
        result = await self.manager.send_message(None, "Tell me about Shabbat and prayer", "rashi")

        topics = self.orchestrator.cache.get(result.session_id).context.topics
        assert topics == ["shabbat", "prayer", "creation", "exodus"]

    @pytest.mark.asyncio
    async def test_history_excludes_current_message(self):
        first = await self.manager.send_message(None, "First question about Torah", "rashi")
        await self.manager.send_message(first.session_id, "Second question", "rashi")

        second_prompt = self.llm.prompts[1]
        history = second_prompt.split("CONVERSATION HISTORY:\n")[1].split("CURRENT STUDENT QUESTION")[0]
        assert "Student: First question about Torah" in history
        assert "Second question" not in history
        assert "CURRENT STUDENT QUESTION: Second question" in second_prompt

    @pytest.mark.asyncio
    async def test_authenticated_turn_is_durable(self):
        result = await self.manager.send_message("s1", "Shalom, teach me", "rambam", user=ALICE)

        record = await self.store.get_conversation_by_session("s1", "alice")
        assert result.session_id == "s1"
        assert record.persona == "rambam"
        assert [m.is_user for m in record.messages] == [True, False]
        assert "Alice" in self.llm.prompts[0]

    @pytest.mark.asyncio
    async def test_session_of_other_owner_not_shared(self):
        await self.manager.send_message("s1", "Mine", "rashi", user=ALICE)
        mallory = UserIdentity(user_id="mallory")

        result = await self.manager.send_message("s1", "Trying to read it", "rashi", user=mallory)

        assert result.session_id != "s1"
        assert len(self.orchestrator.cache.get("s1").messages) == 2

    @pytest.mark.asyncio
    async def test_evicted_session_not_taken_over_anonymously(self):
        await self.manager.send_message("s1", "Alice asks about Shabbat", "rashi", user=ALICE)
        self.orchestrator.delete_session("s1")

        anonymous = await self.manager.send_message("s1", "Anonymous interloper", "rashi")
        await self.manager.send_message("s1", "Alice follows up", "rashi", user=ALICE)

        assert anonymous.session_id != "s1"
        history = self.llm.prompts[2].split("CURRENT STUDENT QUESTION")[0]
        assert "Alice asks about Shabbat" in history
        assert "Anonymous interloper" not in history
        record = await self.store.get_conversation_by_session("s1", "alice")
        cached = self.orchestrator.cache.get("s1")
        assert [m.content for m in cached.messages] == [m.content for m in record.messages]
        assert len(record.messages) == 4

    @pytest.mark.asyncio
    async def test_turn_starts_cache_sweeper(self):
        await self.manager.send_message(None, "Hello", "rashi")

        assert self.orchestrator.cache.sweeper_running
        await self.manager.aclose()
        assert not self.orchestrator.cache.sweeper_running
        assert self.sefaria.closed is True

    @pytest.mark.asyncio
    async def test_store_outage_still_replies(self, retry_service):
        orchestrator = SessionOrchestrator(store=self.store, cache=SessionCache(),
                                      retry_service=retry_service, config=self.config)

        async def unavailable(*args, **kwargs):
            raise ConversationStoreUnavailableError("locked")

        self.store.create_conversation = unavailable
        manager = ConversationManager(orchestrator, self.resolver, self.generator, self.config)

        result = await manager.send_message(None, "Hello there", "rashi", user=ALICE)

        assert result.reply.startswith("Rashi explains")
        assert result.user_message.id.startswith("temp_")

    @pytest.mark.asyncio
    async def test_model_failure_returns_persona_fallback(self):
        self.llm.script = [RuntimeError("provider down")]

        result = await self.manager.send_message(None, "Hello", "rashi")

        assert result.reply == PERSONAS.get("rashi").fallback_replies.technical
        assert len(self.orchestrator.cache.get(result.session_id).messages) == 2

    @pytest.mark.asyncio
    async def test_validation(self):
        with pytest.raises(ValidationError):
            await self.manager.send_message(None, "   ", "rashi")
        with pytest.raises(ValidationError):
            await self.manager.send_message(None, "x" * 2001, "rashi")
        with pytest.raises(PersonaNotFoundError):
            await self.manager.send_message(None, "Hello", "nobody")
        assert len(self.orchestrator.cache) == 0

    @pytest.mark.asyncio
    async def test_summarize_session(self):
        first = await self.manager.send_message(None, "Question one", "rashi")
        await self.manager.send_message(first.session_id, "Question two", "rashi")
        self.llm.script = ["We discussed creation."]

        summary = await self.manager.summarize_session(first.session_id)

        assert summary == "We discussed creation."
        assert self.orchestrator.cache.get(first.session_id).context.conversation_summary == summary

    @pytest.mark.asyncio
    async def test_summarize_unknown_session(self):
        with pytest.raises(SessionNotFoundError):
            await self.manager.summarize_session("missing")

    def test_health_info(self):
        info = self.manager.get_health_info()
        assert set(info) == {"sessions", "references", "generation", "logging"}

    def test_logging_initialized_with_config(self):
        with patch("services.chat_service.conversation_manager.initialize_logging") as init:
            ConversationManager(self.orchestrator, self.resolver, self.generator, self.config)

        init.assert_called_once_with(self.config)
