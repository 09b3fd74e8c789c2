"""
BioTriage - Services Package

Contains service interfaces and implementations for:
- Acoustic feature extraction
- Acoustic state classification
- Symptom questionnaire scoring
- Cross-modal correlation

Design Pattern:
    Each service defines a Protocol (interface) and one or more implementations.
    The pipeline is configured with concrete implementations at startup,
    enabling dependency injection and easy testing/swapping of components.
"""

from .acoustic_features import (
    FeatureExtractor,
    AutocorrelationFeatureExtractor,
    LibrosaFeatureExtractor,
)
from .acoustic_classifier import (
    AcousticClassifier,
    RuleBasedAcousticClassifier,
)
from .symptom_scorer import (
    ScoringRuleset,
    STANDARD_RULESET,
    STRICT_RULESET,
    SymptomUrgencyScorer,
    urgency_band,
)
from .correlation import CrossModalCorrelationEngine

__all__ = [
    # Features
    "FeatureExtractor",
    "AutocorrelationFeatureExtractor",
    "LibrosaFeatureExtractor",
    # Classification
    "AcousticClassifier",
    "RuleBasedAcousticClassifier",
    # Scoring
    "ScoringRuleset",
    "STANDARD_RULESET",
    "STRICT_RULESET",
    "SymptomUrgencyScorer",
    "urgency_band",
    # Correlation
    "CrossModalCorrelationEngine",
]
