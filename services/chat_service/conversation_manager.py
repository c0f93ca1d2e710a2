"""
Conversation manager service - runs one chat turn end to end.

Session lookup or implicit creation, reference enrichment, persistence of
both sides of the exchange, reply generation and topic tracking.
"""

from typing import Any, Dict, Optional

from infrastructure.config.settings import get_config
from infrastructure.monitoring.logging_service import get_logger, get_logging_status, initialize_logging
from services.ai_service.models import UserContext
from services.ai_service.response_generator import ResponseGenerator, get_response_generator
from services.auth_service.models import UserIdentity
from services.chat_service.models import (
    ASSISTANT_ROLE,
    USER_ROLE,
    ChatTurnResult,
    GenerationContext,
    Session,
)
from services.chat_service.session_orchestrator import SessionOrchestrator, get_session_orchestrator
from services.chat_service.topic_extractor import extract_topics
from services.exceptions import ValidationError
from services.reference_service.reference_parser import detect_references
from services.reference_service.reference_resolver import ReferenceResolver, get_reference_resolver


class ConversationManager:
    """
    Service for chat turns between a student and a persona.
    """

    def __init__(self, orchestrator: Optional[SessionOrchestrator] = None,
                 resolver: Optional[ReferenceResolver] = None,
                 generator: Optional[ResponseGenerator] = None,
                 config=None):
        self.logger = get_logger(__name__)
        self.config = config or get_config()
        initialize_logging(self.config)
        self.orchestrator = orchestrator or get_session_orchestrator()
        self.resolver = resolver or get_reference_resolver()
        self.generator = generator or get_response_generator()

    def _validate_message(self, message: str) -> str:
        if not isinstance(message, str) or not message.strip():
            raise ValidationError("Message must not be empty")
        message = message.strip()
        limit = self.config.session.max_message_length
        if len(message) > limit:
            raise ValidationError(f"Message exceeds {limit} characters")
        return message

    async def _open_session(self, session_id: Optional[str], owner_id: Optional[str]) -> Session:
        if session_id:
            session = await self.orchestrator.get_session(session_id, owner_id)
            if session is not None:
                return session
            if not await self.orchestrator.is_session_id_free(session_id):
                # Cached or durably held by someone else; never hand it over
                self.logger.warning(f"Session id {session_id} unavailable to caller, issuing a new one")
                session_id = None

        new_id = self.orchestrator.create_session(owner_id=owner_id, session_id=session_id)
        return self.orchestrator.cache.get(new_id)

    def _generation_context(self, session: Session) -> GenerationContext:
        limit = self.config.llm.history_limit
        return GenerationContext(
            session_id=session.id,
            history=list(session.messages[-limit:]),
            recent_references=list(session.context.recent_references),
            topics=list(session.context.topics),
        )

    async def send_message(self, session_id: Optional[str], message: str, persona_id: str,
                           user: Optional[UserIdentity] = None) -> ChatTurnResult:
        """
        Process a student message and return the persona's reply

        Args:
            session_id: Existing or caller-chosen session id; a new one is created when unknown
            message: Student message, at most the configured length
            persona_id: Persona id or name
            user: Validated identity, None for anonymous students

        Raises:
            ValidationError: empty or overlong message
            PersonaNotFoundError: unknown persona
        """
        message = self._validate_message(message)
        persona = self.generator.resolve_persona(persona_id)
        owner_id = user.user_id if user else None

        session = await self._open_session(session_id, owner_id)
        if session.persona != persona.id:
            self.orchestrator.set_persona(session.id, persona.id)

        # Prior turns only; the current message is passed separately
        context = self._generation_context(session)

        detected, fetched = await self.resolver.fetch_for_message(message)

        user_append = await self.orchestrator.append_message_with_result(
            session.id, message, USER_ROLE, detected, owner_id
        )
        if user_append.durable_error is not None:
            self.logger.warning(f"Continuing without durable history: {user_append.durable_error}")

        user_context = UserContext(display_name=user.display_name, authenticated=True) if user else None
        reply = await self.generator.generate_response(message, persona.id, context, fetched, user_context)

        reply_references = detect_references(reply)
        assistant_append = await self.orchestrator.append_message_with_result(
            session.id, reply, ASSISTANT_ROLE, reply_references, owner_id
        )

        topics = extract_topics(f"{message} {reply}", self.config.session.max_topics_per_message)
        if topics:
            self.orchestrator.merge_topics(session.id, topics)

        all_detected = list(detected)
        all_detected.extend(ref for ref in reply_references if ref not in all_detected)

        self.logger.info(f"Chat turn completed for session {session.id}", extra={
            "persona": persona.id,
            "reference_count": len(all_detected),
            "fetched_count": len(fetched),
            "authenticated": owner_id is not None,
        })

        return ChatTurnResult(
            session_id=session.id,
            user_message=user_append.message,
            reply=reply,
            persona=persona.id,
            references=fetched,
            detected_references=all_detected,
            assistant_message=assistant_append.message,
        )

    async def summarize_session(self, session_id: str, owner_id: Optional[str] = None) -> str:
        """
        Refresh and return the session's conversation summary

        Raises:
            SessionNotFoundError: unknown session
        """
        session = await self.orchestrator.require_session(session_id, owner_id)
        summary = await self.generator.generate_conversation_summary(session.messages)
        if summary:
            session.context.conversation_summary = summary
        return summary

    def get_health_info(self) -> Dict[str, Any]:
        return {
            "sessions": self.orchestrator.get_health_info(),
            "references": self.resolver.get_health_info(),
            "generation": self.generator.get_health_info(),
            "logging": get_logging_status(),
        }

    async def aclose(self):
        """Stop the cache sweeper and release provider connections"""
        await self.orchestrator.stop()
        await self.resolver.aclose()


# Global conversation manager instance
_conversation_manager: Optional[ConversationManager] = None


def get_conversation_manager() -> ConversationManager:
    """Get the global conversation manager instance"""
    global _conversation_manager
    if _conversation_manager is None:
        _conversation_manager = ConversationManager()
    return _conversation_manager
