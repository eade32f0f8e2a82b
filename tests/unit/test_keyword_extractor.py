"""Tests for keyword extraction and Jaccard similarity."""

import dataclasses

import pytest

from session_health.analysis.keyword_extractor import KeywordExtractor, jaccard_similarity
from session_health.analysis.vocabulary import ExtractionRules


@pytest.fixture
def extractor():
    return KeywordExtractor()


class TestExtractors:
    """Tests for the individual extractors."""

    def test_tech_terms(self, extractor):
        """Known vocabulary is matched case-insensitively."""
        terms = extractor.extract_terms("Implement auth with JWT in FastAPI")
        assert terms == ["auth", "jwt", "fastapi"]

    def test_file_paths(self, extractor):
        """Path-like tokens keep their case."""
        paths = extractor.extract_file_paths("Edit src/auth/login.py and README.md")
        assert paths == ["src/auth/login.py", "README.md"]

    def test_urls_are_not_paths(self, extractor):
        """URLs contribute their domain only."""
        text = "See https://docs.python.org/3/library/json.html for details"
        assert extractor.extract_domains(text) == ["docs.python.org"]
        assert extractor.extract_file_paths(text) == []

    def test_identifiers(self, extractor):
        """camelCase, PascalCase, UPPER_CASE and kebab-case identifiers."""
        found = extractor.extract_identifiers("Call getUserName on UserService with MAX_RETRIES in my-component")
        assert set(found) == {"getusername", "userservice", "max_retries", "my-component"}


class TestExtractKeywords:
    """Tests for the combined extract_keywords."""

    def test_empty_text(self, extractor):
        """Empty text has no keywords."""
        assert extractor.extract_keywords("") == []

    def test_stopwords_removed(self, extractor):
        """Filler words never appear in the output."""
        assert extractor.extract_keywords("Please use the API for this") == ["api"]

    def test_ordered_unique(self, extractor):
        """Keywords are de-duplicated in first-seen order."""
        keywords = extractor.extract_keywords("python docker python redis docker")
        assert keywords == ["python", "docker", "redis"]

    def test_deterministic(self, extractor):
        """Same input gives the same output."""
        text = "Fix the flaky pytest in tests/test_api.py using httpx"
        assert extractor.extract_keywords(text) == extractor.extract_keywords(text)

    def test_keyword_set_union(self, extractor):
        """keyword_set unions keywords across texts."""
        assert extractor.keyword_set(["python api", "redis"]) == {"python", "api", "redis"}


class TestInjectedRules:
    """Tests for injected ExtractionRules."""

    def test_custom_vocabulary(self):
        """A custom term table replaces the default one."""
        extractor = KeywordExtractor(ExtractionRules(tech_terms=frozenset({"banana"})))
        assert extractor.extract_terms("banana python") == ["banana"]

    def test_min_length(self):
        """Keywords shorter than min_length are dropped."""
        extractor = KeywordExtractor(ExtractionRules(min_length=4))
        assert extractor.extract_keywords("go and rust") == ["rust"]

    def test_rules_are_immutable(self):
        """Rule tables cannot be mutated after construction."""
        rules = ExtractionRules()
        with pytest.raises(dataclasses.FrozenInstanceError):
            rules.min_length = 3


class TestJaccard:
    """Tests for jaccard_similarity."""

    def test_both_empty(self):
        assert jaccard_similarity(set(), set()) == 1.0

    def test_one_empty(self):
        assert jaccard_similarity({"a"}, set()) == 0.0
        assert jaccard_similarity(set(), {"a"}) == 0.0

    def test_partial_overlap(self):
        assert jaccard_similarity({"a", "b"}, {"b", "c"}) == pytest.approx(1 / 3)

    def test_identical(self):
        assert jaccard_similarity({"a", "b"}, {"b", "a"}) == 1.0

    @pytest.mark.parametrize(
        "a,b",
        [
            (set(), set()),
            ({"a"}, set()),
            ({"a", "b"}, {"b", "c"}),
            ({"jwt", "auth", "fastapi"}, {"auth"}),
            ({"x"}, {"y"}),
        ],
    )
    def test_symmetric(self, a, b):
        """Swapping the two sets does not change the score."""
        assert jaccard_similarity(a, b) == jaccard_similarity(b, a)
