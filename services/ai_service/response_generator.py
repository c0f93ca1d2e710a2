"""
Response generator - turns a student message into the persona's reply.

Pipeline: validate, sanitize history, compose, call the model with retry and
circuit breaking, post-process for character, quality gate, fallback.
Only validation errors escape; every other failure becomes a fallback reply.
"""

from typing import Any, Dict, Optional, Sequence

from infrastructure.config.personas import PERSONAS, Persona, PersonaRegistry
from infrastructure.config.settings import get_config
from infrastructure.external.openai_client import OpenAIClient, get_openai_client
from infrastructure.monitoring.logging_service import get_logger, log_execution_time
from infrastructure.resilience.retry_service import RetryService, get_retry_service
from services.ai_service.character_guard import post_process
from services.ai_service.fallback_service import FallbackService, get_fallback_service
from services.ai_service.models import ContextIntegrityError, UserContext
from services.ai_service.prompt_composer import (
    TokenCounter,
    compose_input,
    sanitize_history,
    tiktoken_counter,
)
from services.exceptions import PersonaNotFoundError, ValidationError
from services.reference_service.models import TextResult


SUMMARY_PROMPT = (
    "Summarize this Torah learning conversation in 2-3 sentences, "
    "focusing on the main topics and insights discussed:"
)
MIN_MESSAGES_FOR_SUMMARY = 4


def _context_value(session_context: Any, key: str) -> Any:
    if session_context is None:
        return None
    if isinstance(session_context, dict):
        return session_context.get(key)
    return getattr(session_context, key, None)


class ResponseGenerator:
    """
    Generates in-character replies for a persona.
    """

    def __init__(self, llm_client: Optional[OpenAIClient] = None,
                 retry_service: Optional[RetryService] = None,
                 fallback_service: Optional[FallbackService] = None,
                 personas: Optional[PersonaRegistry] = None,
                 token_counter: Optional[TokenCounter] = None,
                 config=None):
        self.logger = get_logger(__name__)
        self.config = config or get_config()
        self.llm_client = llm_client or get_openai_client()
        self.retry_service = retry_service or get_retry_service()
        self.fallback_service = fallback_service or get_fallback_service()
        self.personas = personas or PERSONAS
        self.circuit_breaker = self.retry_service.get_openai_circuit_breaker()
        self._token_counter = token_counter

    @property
    def token_counter(self) -> TokenCounter:
        if self._token_counter is None:
            self._token_counter = tiktoken_counter(self.config.llm.model_name)
        return self._token_counter

    def resolve_persona(self, persona_id: Optional[str]) -> Persona:
        """
        Raises:
            PersonaNotFoundError: unknown id or name
        """
        persona = self.personas.get(persona_id)
        if persona is None:
            raise PersonaNotFoundError(persona_id)
        return persona

    async def _complete(self, prompt: str, operation: str, session_id: Optional[str] = None,
                        persona_id: Optional[str] = None) -> str:
        llm = self.config.llm
        completion = await self.retry_service.retry_with_circuit_breaker(
            lambda: self.llm_client.complete(prompt, session_id=session_id, persona_id=persona_id),
            circuit_breaker=self.circuit_breaker,
            max_attempts=llm.max_attempts,
            base_delay=llm.base_delay,
            max_delay=llm.max_delay,
            operation=operation
        )
        return completion.output_text or ""

    async def generate_response(self, message: str, persona_id: str,
                                session_context: Any = None,
                                reference_texts: Sequence[TextResult] = (),
                                user_context: Optional[UserContext] = None) -> str:
        """
        Generate the persona's reply to ``message``

        Args:
            message: The student's message
            persona_id: Persona id or name
            session_context: GenerationContext or dict carrying prior ``history``
            reference_texts: Fetched texts to quote from
            user_context: Display name of an authenticated student, if any

        Returns:
            Reply text; a fallback line whenever generation fails

        Raises:
            ValidationError: empty message
            PersonaNotFoundError: unknown persona
        """
        if not message or not message.strip():
            raise ValidationError("Message must not be empty")
        persona = self.resolve_persona(persona_id)

        llm = self.config.llm
        history = sanitize_history(_context_value(session_context, "history") or [])[-llm.history_limit:]

        try:
            prompt = compose_input(
                persona, message, history, reference_texts, user_context,
                token_counter=self.token_counter,
                max_history_tokens=llm.max_history_tokens,
                min_length=llm.min_context_length,
            )
        except ContextIntegrityError as e:
            self.logger.error(f"Context integrity check failed for persona {persona.id}: {e}")
            return self.fallback_service.generate_fallback_response(persona, e)

        try:
            with log_execution_time(self.logger, "generate response", persona=persona.id,
                                    history_turns=len(history), reference_count=len(reference_texts)):
                raw = await self._complete(prompt, operation="generate response",
                                           session_id=_context_value(session_context, "session_id"),
                                           persona_id=persona.id)
        except Exception as e:
            # Users only ever see in-character text
            self.logger.error(f"Error generating response: {e.__class__.__name__}")
            return self.fallback_service.generate_fallback_response(persona, e)

        processed = post_process(raw, self.fallback_service.get_in_character_redirect(persona))
        if processed.character_break:
            self.logger.warning(f"Character break detected for persona {persona.id}")
        elif processed.applied_rules:
            self.logger.debug(f"Applied substitution rules: {processed.applied_rules}")

        if len(processed.text.strip()) < llm.min_response_length:
            self.logger.warning(f"Response below quality threshold ({len(processed.text.strip())} characters)")
            return self.fallback_service.generate_fallback_response(persona)

        return processed.text

    async def generate_conversation_summary(self, messages: Sequence[Any]) -> str:
        """Two or three sentence summary of the latest messages; empty on short history or failure"""
        turns = sanitize_history(messages)
        if len(turns) < MIN_MESSAGES_FOR_SUMMARY:
            return ""

        recent = turns[-self.config.llm.summary_message_limit:]
        lines = "\n".join(f"{'Student' if t.role == 'user' else 'Rabbi'}: {t.content}" for t in recent)

        try:
            summary = await self._complete(f"{SUMMARY_PROMPT}\n\n{lines}", operation="summarize conversation")
        except Exception as e:
            self.logger.error(f"Error generating conversation summary: {e.__class__.__name__}")
            return ""
        return summary.strip()

    def get_health_info(self) -> Dict[str, Any]:
        state = self.circuit_breaker.get_state()
        return {
            "model": self.config.llm.model_name,
            "circuit_breaker": state,
            "status_message": self.fallback_service.get_service_status_message(state),
            "personas": len(self.personas.ids()),
        }


# Global generator instance
_response_generator: Optional[ResponseGenerator] = None


def get_response_generator() -> ResponseGenerator:
    """Get the global response generator instance"""
    global _response_generator
    if _response_generator is None:
        _response_generator = ResponseGenerator()
    return _response_generator
