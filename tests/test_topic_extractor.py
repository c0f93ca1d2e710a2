"""
Tests for topic extraction and capped merging
"""

from services.chat_service.topic_extractor import extract_topics, merge_capped


class TestExtractTopics:

    def test_keywords_in_first_occurrence_order(self):
        text = "Prayer on Shabbat, more prayer, and Torah study"
        assert extract_topics(text) == ["prayer", "shabbat", "torah"]

    def test_whole_words_only(self):
        assert extract_topics("Israeli faithful") == []

    def test_limit(self):
        text = "creation exodus shabbat prayer torah talmud halakha"
        assert len(extract_topics(text, limit=5)) == 5


class TestMergeCapped:

    def test_repeat_moves_to_end(self):
        assert merge_capped(["a", "b", "c"], ["a"], 10) == ["b", "c", "a"]

    def test_keeps_most_recent(self):
        assert merge_capped(["a", "b"], ["c", "d"], 3) == ["b", "c", "d"]
