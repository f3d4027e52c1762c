"""
EmoSense - Services Package

Contains the building blocks the pipeline and sessions are assembled from:
- Keyword risk detection (deterministic safety net)
- Classifier clients (remote Gemini, local heuristic)
- Intervention selection
- Crisis escalation flow

Design Pattern:
    The classifier defines a Protocol (interface) and several implementations.
    The pipeline is configured with a concrete implementation at startup,
    enabling dependency injection and easy testing/swapping of components.
"""

from .keyword_detector import KeywordRiskDetector
from .classifier import (
    ClassifierClient,
    GeminiClassifierClient,
    DummyClassifierClient,
    build_classifier_request,
    parse_assessment,
)
from .interventions import InterventionSelector, Technique
from .escalation import EscalationFlow

__all__ = [
    # Safety net
    "KeywordRiskDetector",
    # Classifier
    "ClassifierClient",
    "GeminiClassifierClient",
    "DummyClassifierClient",
    "build_classifier_request",
    "parse_assessment",
    # Responses
    "InterventionSelector",
    "Technique",
    "EscalationFlow",
]
