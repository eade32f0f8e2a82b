"""Drift detection, health scoring and phase classification."""

from .drift_detector import (
    DriftAnalysisError,
    DriftAnalyzer,
    DriftResult,
    LLMDriftAnalyzer,
    TopicDriftDetector,
)
from .health_analyzer import HealthFactors, HealthReport, SessionAnalyzer, SessionStatus
from .keyword_extractor import KeywordExtractor, jaccard_similarity
from .phase_classifier import classify_phase, classify_session
from .vocabulary import ExtractionRules, Phase, PhaseRules

__all__ = [
    "DriftAnalysisError",
    "DriftAnalyzer",
    "DriftResult",
    "LLMDriftAnalyzer",
    "TopicDriftDetector",
    "HealthFactors",
    "HealthReport",
    "SessionAnalyzer",
    "SessionStatus",
    "KeywordExtractor",
    "jaccard_similarity",
    "classify_phase",
    "classify_session",
    "ExtractionRules",
    "Phase",
    "PhaseRules",
]
