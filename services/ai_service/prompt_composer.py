"""
Builds the single composed input sent to the model.
"""

from typing import Any, Callable, List, Optional, Sequence

import tiktoken

from infrastructure.config.personas import Persona
from infrastructure.monitoring.logging_service import get_logger
from services.ai_service.models import ContextIntegrityError, HistoryTurn, UserContext
from services.reference_service.models import TextResult


logger = get_logger(__name__)

TokenCounter = Callable[[str], int]

_ROLE_LABELS = {"user": "Student", "assistant": "Rabbi"}


def tiktoken_counter(model_name: str = "gpt-4o-mini") -> TokenCounter:
    """Token counter for ``model_name``; unknown models fall back to cl100k_base"""
    try:
        encoding = tiktoken.encoding_for_model(model_name)
    except KeyError:
        encoding = tiktoken.get_encoding("cl100k_base")
    return lambda text: len(encoding.encode(text))


def _turn_from(entry: Any) -> Optional[HistoryTurn]:
    if isinstance(entry, dict):
        content = entry.get("content")
        role = entry.get("role")
        if role is None:
            for flag in ("is_user", "isUser"):
                if isinstance(entry.get(flag), bool):
                    role = "user" if entry[flag] else "assistant"
                    break
    else:
        content = getattr(entry, "content", None)
        role = getattr(entry, "role", None)

    if not isinstance(content, str) or not content.strip():
        return None
    if role not in _ROLE_LABELS:
        return None
    return HistoryTurn(role=role, content=content.strip())


def sanitize_history(history: Optional[Sequence[Any]]) -> List[HistoryTurn]:
    """
    Keep well-formed prior messages

    Accepts dicts with ``role`` or a boolean ``is_user``/``isUser`` flag, or
    objects with ``role`` and ``content``. Dropped entries are logged by index.
    """
    turns: List[HistoryTurn] = []
    for index, entry in enumerate(history or []):
        turn = _turn_from(entry)
        if turn is None:
            logger.warning(f"Dropping malformed history entry at index {index}")
            continue
        turns.append(turn)
    return turns


def trim_history(lines: List[str], token_counter: TokenCounter, max_tokens: int) -> List[str]:
    """Drop the oldest lines until the rest fit in ``max_tokens``"""
    kept: List[str] = []
    total = 0
    for line in reversed(lines):
        cost = token_counter(line)
        if total + cost > max_tokens:
            break
        kept.append(line)
        total += cost
    kept.reverse()
    if len(kept) < len(lines):
        logger.debug(f"Trimmed {len(lines) - len(kept)} history turns to fit token budget")
    return kept


def compose_input(persona: Persona, message: str, history: Sequence[HistoryTurn],
                  reference_texts: Sequence[TextResult] = (),
                  user_context: Optional[UserContext] = None,
                  token_counter: Optional[TokenCounter] = None,
                  max_history_tokens: int = 3000,
                  min_length: int = 50) -> str:
    """
    Persona, then reference block, then prior turns, then the question, then the instruction

    Raises:
        ContextIntegrityError: the result is shorter than ``min_length``
    """
    persona_block = f"RABBI PERSONA: {persona.system_prompt}"
    if user_context and user_context.authenticated and user_context.display_name:
        persona_block += f"\nYou are studying with {user_context.display_name}; address them by name when natural."

    sections = [persona_block]

    references = [r for r in reference_texts if r.text]
    if references:
        lines = "\n".join(f'{r.reference}: "{r.text}"' for r in references)
        sections.append(f"REFERENCE TEXTS:\n{lines}")

    history_lines = [f"{_ROLE_LABELS[turn.role]}: {turn.content}" for turn in history]
    if history_lines and token_counter is not None:
        history_lines = trim_history(history_lines, token_counter, max_history_tokens)
    if history_lines:
        sections.append("CONVERSATION HISTORY:\n" + "\n\n".join(history_lines))

    sections.append(f"CURRENT STUDENT QUESTION: {message.strip()}")
    sections.append("RESPOND AS THE RABBI DESCRIBED ABOVE, MAINTAINING CHARACTER AND TEACHING STYLE:")

    composed = "\n\n".join(sections)
    if len(composed) < min_length:
        raise ContextIntegrityError(f"Composed input too short ({len(composed)} characters)")
    return composed
