"""
AI service - prompt composition, LLM calls, character guarding and fallbacks.
"""

from .models import ErrorCategory, ContextIntegrityError, HistoryTurn, UserContext
from .fallback_service import (
    FallbackService,
    classify_error,
    get_fallback_service
)
from .character_guard import post_process, is_character_break, SUBSTITUTION_RULES
from .prompt_composer import compose_input, sanitize_history, tiktoken_counter
from .response_generator import ResponseGenerator, get_response_generator

__all__ = [
    'ErrorCategory',
    'ContextIntegrityError',
    'HistoryTurn',
    'UserContext',
    'FallbackService',
    'classify_error',
    'get_fallback_service',
    'post_process',
    'is_character_break',
    'SUBSTITUTION_RULES',
    'compose_input',
    'sanitize_history',
    'tiktoken_counter',
    'ResponseGenerator',
    'get_response_generator'
]
