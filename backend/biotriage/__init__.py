"""
BioTriage - Backend Package

Multimodal triage core: acoustic features, acoustic state classification,
symptom questionnaire scoring and cross-modal correlation, plus the HTTP
layer that exposes them.

Call-style entry points:
    extract_features(buffer) -> FeatureVector
    classify_acoustics(features) -> AcousticAssessment
    score_symptoms(answers, ruleset=STANDARD_RULESET) -> UrgencyAssessment
    correlate(acoustic=None, facial=None, symptoms=None) -> ConsolidatedAssessment
"""

from typing import Optional

__version__ = "0.1.0"

from biotriage.core.types import (
    AcousticAssessment,
    AudioBuffer,
    ConsolidatedAssessment,
    FacialBiometricResult,
    FeatureVector,
    SymptomAnswers,
    UrgencyAssessment,
)
from biotriage.services.acoustic_classifier import RuleBasedAcousticClassifier
from biotriage.services.acoustic_features import AutocorrelationFeatureExtractor
from biotriage.services.correlation import CrossModalCorrelationEngine
from biotriage.services.symptom_scorer import (
    STANDARD_RULESET,
    ScoringRuleset,
    SymptomUrgencyScorer,
)

_extractor = AutocorrelationFeatureExtractor()
_classifier = RuleBasedAcousticClassifier()
_engine = CrossModalCorrelationEngine()


def extract_features(buffer: AudioBuffer) -> FeatureVector:
    """Raises InsufficientDataError for an empty buffer."""
    return _extractor.extract(buffer)


def classify_acoustics(features: FeatureVector) -> AcousticAssessment:
    return _classifier.classify(features)


def score_symptoms(
    answers: SymptomAnswers,
    ruleset: ScoringRuleset = STANDARD_RULESET,
) -> UrgencyAssessment:
    return SymptomUrgencyScorer(ruleset).score(answers)


def correlate(
    acoustic: Optional[AcousticAssessment] = None,
    facial: Optional[FacialBiometricResult] = None,
    symptoms: Optional[UrgencyAssessment] = None,
) -> ConsolidatedAssessment:
    return _engine.correlate(acoustic=acoustic, facial=facial, symptoms=symptoms)


__all__ = [
    "__version__",
    "extract_features",
    "classify_acoustics",
    "score_symptoms",
    "correlate",
]
