"""
Tests for reference parsing, normalization and detection
"""

import pytest

from services.reference_service.reference_parser import (
    canonical_path,
    detect_references,
    normalize_reference,
    parse_reference,
    validate_reference,
)


class TestValidation:
    """Test which reference strings are accepted"""

    @pytest.mark.parametrize("reference", [
        "Genesis 1:1",
        "Genesis 1:1-5",
        "Genesis 1",
        "genesis 1:1",
        "Song of Songs 2:1",
        "II Chronicles 7:14",
        "  Psalms 23:1  ",
    ])
    def test_valid(self, reference):
        assert validate_reference(reference) is True

    @pytest.mark.parametrize("reference", [
        "Genesis",
        "Hezekiah 1:1",
        "Genesis 1:5-3",
        "Genesis 0:1",
        "Genesis one",
        "",
        None,
    ])
    def test_invalid(self, reference):
        assert validate_reference(reference) is False


class TestNormalization:
    """Test canonical display form"""

    def test_case_is_canonicalized(self):
        assert normalize_reference("genesis 1:1") == "Genesis 1:1"
        assert normalize_reference("song of songs 2:1") == "Song of Songs 2:1"

    def test_collapsed_single_verse_range(self):
        assert normalize_reference("Exodus 20:2-2") == "Exodus 20:2"

    def test_range_and_chapter_only(self):
        assert normalize_reference("Exodus 20:2-14") == "Exodus 20:2-14"
        assert normalize_reference("Psalms 23") == "Psalms 23"

    def test_invalid_returns_none(self):
        assert normalize_reference("Nowhere 1:1") is None

    def test_parse_fields(self):
        parsed = parse_reference("I Chronicles 16:8-36")
        assert parsed.book == "I Chronicles"
        assert parsed.chapter == 16
        assert parsed.start_verse == 8
        assert parsed.end_verse == 36


class TestCanonicalPath:
    """Test provider paths"""

    def test_paths(self):
        assert canonical_path(parse_reference("Genesis 1:1")) == "Genesis.1.1"
        assert canonical_path(parse_reference("Song of Songs 2:1-3")) == "Song_of_Songs.2.1-3"
        assert canonical_path(parse_reference("II Chronicles 7")) == "II_Chronicles.7"


class TestDetection:
    """Test detection in free text"""

    def test_detects_in_order_and_dedupes(self):
        text = "Compare Exodus 20:2 with genesis 1:1, and again Exodus 20:2."
        assert detect_references(text) == ["Exodus 20:2", "Genesis 1:1"]

    def test_ranges_and_multiword_books(self):
        text = "See Song of Songs 2:1-3 and II Chronicles 7:14."
        assert detect_references(text) == ["Song of Songs 2:1-3", "II Chronicles 7:14"]

    def test_ignores_chapter_only_and_unknown_books(self):
        text = "Read Psalms 23 tonight, and also Hezekiah 1:1."
        assert detect_references(text) == []

    def test_requires_word_boundary(self):
        assert detect_references("Ajob 3:1") == []
        assert detect_references("Job 3:1") == ["Job 3:1"]

    def test_reversed_range_is_skipped(self):
        assert detect_references("Genesis 1:5-3") == []

    def test_empty_text(self):
        assert detect_references("") == []
        assert detect_references(None) == []
