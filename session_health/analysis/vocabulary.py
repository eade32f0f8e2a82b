"""Immutable pattern tables for keyword extraction and phase classification.

Tables are plain frozen data. Callers inject them through ExtractionRules
and PhaseRules so the extractor and classifier stay pure.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


# -----------------------------------------------------------------------------
# Technical vocabulary: single words matched case-insensitively
# -----------------------------------------------------------------------------
TECH_TERMS: frozenset[str] = frozenset({
    # Languages / runtimes
    "python", "javascript", "typescript", "rust", "go", "golang", "java", "kotlin",
    "swift", "ruby", "php", "c++", "csharp", "scala", "node", "nodejs", "deno", "bun",
    "bash", "shell", "sql", "html", "css", "wasm",
    # Frameworks / libraries
    "react", "vue", "angular", "svelte", "nextjs", "django", "flask", "fastapi",
    "express", "hono", "rails", "spring", "tailwind", "pydantic", "sqlalchemy",
    "pytest", "jest", "vitest", "webpack", "vite", "tauri", "electron",
    # Data / infra
    "database", "postgres", "postgresql", "mysql", "sqlite", "redis", "mongodb",
    "kafka", "docker", "kubernetes", "k8s", "terraform", "aws", "gcp", "azure",
    "nginx", "graphql", "grpc", "rest", "api", "http", "https", "websocket",
    "json", "yaml", "toml", "csv", "cache", "queue", "schema", "migration",
    "index", "query", "orm",
    # Software concerns
    "auth", "authentication", "authorization", "oauth", "jwt", "token", "session",
    "login", "password", "security", "encryption", "permission", "middleware",
    "router", "routing", "endpoint", "server", "client", "frontend", "backend",
    "component", "hook", "state", "props", "render", "ui", "cli", "terminal",
    "config", "configuration", "logging", "logger", "metrics", "monitoring",
    "test", "tests", "testing", "unittest", "mock", "fixture", "coverage",
    "bug", "error", "exception", "stacktrace", "debug", "crash", "timeout",
    "performance", "latency", "memory", "thread", "async", "await", "concurrency",
    "deploy", "deployment", "build", "ci", "pipeline", "release", "git", "commit",
    "branch", "merge", "rebase", "refactor", "lint", "typecheck", "compile",
    "compiler", "parser", "regex", "function", "class", "module", "package",
    "dependency", "dependencies", "interface", "type", "types", "struct",
    "compaction", "snapshot", "drift", "health", "pty", "workspace", "editor",
})

# -----------------------------------------------------------------------------
# Stopwords: removed from every extracted set
# -----------------------------------------------------------------------------
STOPWORDS: frozenset[str] = frozenset({
    "a", "an", "the", "and", "or", "but", "if", "then", "else", "when", "at", "by",
    "for", "with", "about", "against", "between", "into", "through", "during",
    "before", "after", "above", "below", "to", "from", "up", "down", "in", "out",
    "on", "off", "over", "under", "again", "further", "once", "here", "there",
    "all", "any", "both", "each", "few", "more", "most", "other", "some", "such",
    "no", "nor", "not", "only", "own", "same", "so", "than", "too", "very", "can",
    "will", "just", "should", "now", "is", "are", "was", "were", "be", "been",
    "being", "have", "has", "had", "do", "does", "did", "this", "that", "these",
    "those", "i", "me", "my", "we", "our", "you", "your", "he", "she", "it", "its",
    "they", "them", "their", "what", "which", "who", "whom", "let", "lets", "please",
    "ok", "okay", "yes", "yeah", "thanks", "thank", "also", "use", "using", "need",
    "want", "make", "get", "set", "new", "like", "e.g", "i.e", "etc",
})

# -----------------------------------------------------------------------------
# Token patterns
# ORDER MATTERS: URLs are consumed before paths so "https://x.io/a/b" is
# not also read as a file path
# -----------------------------------------------------------------------------
URL_PATTERN = r"\bhttps?://([A-Za-z0-9.-]+)(?::\d+)?(?:/[^\s]*)?"

FILE_PATH_PATTERN = (
    r"(?:(?<=\s)|^|(?<=[\"'`(]))"
    r"((?:\.{1,2}/|~/|/)?(?:[A-Za-z0-9_@.-]+/)*[A-Za-z0-9_@-][A-Za-z0-9_.@-]*"
    r"\.(?:py|pyi|ts|tsx|js|jsx|cjs|mjs|json|md|rs|go|java|kt|rb|php|c|h|cc|cpp|hpp|cs|"
    r"swift|scala|sh|yml|yaml|toml|ini|cfg|sql|html|css|scss|vue|svelte|lock|txt|env))"
    r"(?=$|[\s\"'`),;:!?]|\.(?:\s|$))"
)

DIRECTORY_PATTERN = r"\b((?:src|lib|app|apps|packages|tests?|scripts|docs|cmd|internal|pkg)/[A-Za-z0-9_./-]+)"

IDENTIFIER_PATTERNS: tuple[str, ...] = (
    r"\b[a-z]+(?:[A-Z][a-z0-9]*)+\b",         # camelCase
    r"\b(?:[A-Z][a-z0-9]+){2,}\b",            # PascalCase
    r"\b[A-Z][A-Z0-9]*(?:_[A-Z0-9]+)+\b",     # UPPER_CASE
    r"\b[a-z][a-z0-9]*(?:-[a-z0-9]+)+\b",     # kebab-case
)


@dataclass(frozen=True)
class ExtractionRules:
    """Tables used by KeywordExtractor."""

    tech_terms: frozenset[str] = TECH_TERMS
    stopwords: frozenset[str] = STOPWORDS
    url_pattern: str = URL_PATTERN
    file_path_pattern: str = FILE_PATH_PATTERN
    directory_pattern: str = DIRECTORY_PATTERN
    identifier_patterns: tuple[str, ...] = IDENTIFIER_PATTERNS
    min_length: int = 2


DEFAULT_EXTRACTION_RULES = ExtractionRules()


class Phase(str, Enum):
    """Closed set of session phase labels."""

    INITIALIZATION = "initialization"
    PLANNING = "planning"
    IMPLEMENTATION = "implementation"
    DEBUGGING = "debugging"
    TESTING = "testing"
    REFACTORING = "refactoring"
    REVIEW = "review"
    DOCUMENTATION = "documentation"
    RESTORED = "restored"
    ENDED = "ended"


# -----------------------------------------------------------------------------
# Phase patterns: (phase, regex). Every match counts one vote.
# -----------------------------------------------------------------------------
PHASE_PATTERNS: tuple[tuple[Phase, str], ...] = (
    (Phase.PLANNING, r"\b(plan|design|architecture|approach|proposal|outline|roadmap|should we)\b"),
    (Phase.IMPLEMENTATION, r"\b(implement|add|create|build|write|wire up|scaffold|feature)\b"),
    (Phase.DEBUGGING, r"\b(debug|fix|bug|error|exception|traceback|stack ?trace|crash|broken|fails?|failing)\b"),
    (Phase.TESTING, r"\b(tests?|pytest|jest|coverage|assert|spec|verify|validate)\b"),
    (Phase.REFACTORING, r"\b(refactor|clean ?up|rename|extract|simplify|restructure|dedupe)\b"),
    (Phase.REVIEW, r"\b(review|audit|inspect|look over|feedback|pull request|pr)\b"),
    (Phase.DOCUMENTATION, r"\b(document|docs?|readme|docstring|comment|changelog)\b"),
)


@dataclass(frozen=True)
class PhaseRules:
    """Tables used by classify_phase."""

    patterns: tuple[tuple[Phase, str], ...] = field(default=PHASE_PATTERNS)


DEFAULT_PHASE_RULES = PhaseRules()


__all__ = [
    "TECH_TERMS",
    "STOPWORDS",
    "ExtractionRules",
    "DEFAULT_EXTRACTION_RULES",
    "Phase",
    "PhaseRules",
    "DEFAULT_PHASE_RULES",
]
