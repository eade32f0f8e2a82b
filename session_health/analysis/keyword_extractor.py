"""Extract topic keywords and file paths from free text."""
from __future__ import annotations

import re

from .vocabulary import DEFAULT_EXTRACTION_RULES, ExtractionRules

_WORD_RE = re.compile(r"[A-Za-z][A-Za-z0-9+#]*")
_TRAILING = ".,:;!?"


def _ordered_unique(items: list[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


class KeywordExtractor:
    """
    Combined keyword extraction over:
    - known technical vocabulary
    - file-path-like tokens
    - URLs (domain only)
    - identifier casing (camelCase, PascalCase, UPPER_CASE, kebab-case)
    minus stopwords.

    Pure: output depends only on the text and the injected rules.
    """

    def __init__(self, rules: ExtractionRules = DEFAULT_EXTRACTION_RULES):
        self.rules = rules
        self._url_re = re.compile(rules.url_pattern)
        self._path_re = re.compile(rules.file_path_pattern, re.MULTILINE)
        self._dir_re = re.compile(rules.directory_pattern)
        self._identifier_res = [re.compile(p) for p in rules.identifier_patterns]

    def extract_domains(self, text: str) -> list[str]:
        """Domains of URLs found in text, lower-cased."""
        return _ordered_unique([m.group(1).lower().rstrip(".") for m in self._url_re.finditer(text)])

    def extract_file_paths(self, text: str) -> list[str]:
        """File-path-like tokens, case preserved."""
        text = self._url_re.sub(" ", text)
        paths = [m.group(1) for m in self._path_re.finditer(text)]
        paths += [m.group(1).rstrip(_TRAILING) for m in self._dir_re.finditer(text)]
        return _ordered_unique([p for p in paths if p])

    def extract_identifiers(self, text: str) -> list[str]:
        """Identifier-shaped tokens, lower-cased."""
        text = self._url_re.sub(" ", text)
        found = []
        for pattern in self._identifier_res:
            found.extend(m.group(0).lower() for m in pattern.finditer(text))
        return _ordered_unique(found)

    def extract_terms(self, text: str) -> list[str]:
        """Words from the technical vocabulary, lower-cased."""
        words = (m.group(0).lower() for m in _WORD_RE.finditer(text))
        return _ordered_unique([w for w in words if w in self.rules.tech_terms])

    def extract_keywords(self, text: str) -> list[str]:
        """
        All keywords in first-seen order.

        Args:
            text: Free text (prompt, message, tool args, error message)

        Returns:
            Ordered, de-duplicated keyword list without stopwords
        """
        if not text:
            return []

        candidates = (
            self.extract_terms(text)
            + self.extract_file_paths(text)
            + self.extract_domains(text)
            + self.extract_identifiers(text)
        )
        return _ordered_unique([
            k for k in candidates
            if len(k) >= self.rules.min_length and k.lower() not in self.rules.stopwords
        ])

    def keyword_set(self, texts: list[str]) -> set[str]:
        """Union of keywords across several texts."""
        result: set[str] = set()
        for text in texts:
            result.update(self.extract_keywords(text))
        return result


def jaccard_similarity(a: set[str], b: set[str]) -> float:
    """
    |A ∩ B| / |A ∪ B|.

    Both empty => 1.0 (nothing to diverge from); exactly one empty => 0.0.
    """
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


__all__ = ["KeywordExtractor", "jaccard_similarity"]
