"""
Tests for character substitutions and break detection
"""

from services.ai_service.character_guard import apply_substitutions, is_character_break, post_process

REDIRECT = "Let us return to the words of the Torah before us."


class TestSubstitutions:

    def test_as_an_ai_model(self):
        text, applied = apply_substitutions("As an AI language model, I can explain Genesis.")
        assert text == "As a teacher, I can explain Genesis."
        assert applied == ["as_an_ai_model"]

    def test_plain_as_an_ai(self):
        text, _ = apply_substitutions("as an AI, I think this verse is central.")
        assert text == "As a teacher, I think this verse is central."

    def test_assistant_phrase(self):
        text, applied = apply_substitutions("Your AI assistant is glad to help.")
        assert text == "Your learning companion is glad to help."
        assert applied == ["ai_assistant"]

    def test_untouched_text(self):
        text, applied = apply_substitutions("Blessed are you, my student.")
        assert text == "Blessed are you, my student."
        assert applied == []


class TestPostProcess:

    def test_break_is_replaced_with_redirect(self):
        result = post_process("Honestly, I'm an AI and cannot pray.", REDIRECT)
        assert result.character_break is True
        assert result.text == REDIRECT

    def test_substituted_text_is_kept(self):
        result = post_process("  As an AI model, I see three lessons here.  ", REDIRECT)
        assert result.character_break is False
        assert result.text == "As a teacher, I see three lessons here."

    def test_detection_is_case_insensitive(self):
        assert is_character_break("I AM A LANGUAGE MODEL")
        assert not is_character_break("I am a teacher of Torah")
