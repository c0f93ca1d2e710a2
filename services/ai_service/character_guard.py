"""
Keeps model output in character.

Substitution rules rewrite stock assistant phrasing; the break detector
catches replies that announce themselves as an AI outright.
"""

import re
from dataclasses import dataclass
from typing import List, Pattern, Tuple

from services.ai_service.models import PostProcessResult


@dataclass(frozen=True)
class SubstitutionRule:
    name: str
    pattern: Pattern
    replacement: str


SUBSTITUTION_RULES: Tuple[SubstitutionRule, ...] = (
    SubstitutionRule("as_an_ai_model", re.compile(r"\bas an ai (?:assistant|language model|model)\b", re.IGNORECASE),
                     "As a teacher"),
    SubstitutionRule("as_an_ai", re.compile(r"\bas an ai\b", re.IGNORECASE), "As a teacher"),
    SubstitutionRule("ai_assistant", re.compile(r"\bai assistant\b", re.IGNORECASE), "learning companion"),
)

CHARACTER_BREAK_MARKERS: Tuple[str, ...] = (
    "i am an ai",
    "i'm an ai",
    "as an artificial intelligence",
    "i am a language model",
    "i'm a language model",
)


def apply_substitutions(text: str, rules: Tuple[SubstitutionRule, ...] = SUBSTITUTION_RULES) -> Tuple[str, List[str]]:
    applied: List[str] = []
    for rule in rules:
        text, count = rule.pattern.subn(rule.replacement, text)
        if count:
            applied.append(rule.name)
    return text, applied


def is_character_break(text: str) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in CHARACTER_BREAK_MARKERS)


def post_process(text: str, in_character_line: str) -> PostProcessResult:
    """
    Rewrite assistant phrasing, then replace the whole reply with
    ``in_character_line`` if it still breaks character
    """
    cleaned, applied = apply_substitutions(text.strip())
    if is_character_break(cleaned):
        return PostProcessResult(text=in_character_line, applied_rules=applied, character_break=True)
    return PostProcessResult(text=cleaned, applied_rules=applied)
