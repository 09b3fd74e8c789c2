"""
BioTriage - Core Package

Contains the central orchestration logic and domain types:
- pipeline: Triage session orchestrator
- types: Internal domain types and type aliases
- exceptions: Error hierarchy with API error codes
- logging: Structured logging with session context
"""

from .types import (
    SessionId,
    AudioBuffer,
    FeatureVector,
    AcousticAssessment,
    UrgencyAssessment,
    FacialBiometricResult,
    ModalitySet,
    ConsolidatedAssessment,
)
from .pipeline import TriagePipeline, SessionAssessment, create_pipeline

__all__ = [
    # Pipeline
    "TriagePipeline",
    "SessionAssessment",
    "create_pipeline",
    # Types
    "SessionId",
    "AudioBuffer",
    "FeatureVector",
    "AcousticAssessment",
    "UrgencyAssessment",
    "FacialBiometricResult",
    "ModalitySet",
    "ConsolidatedAssessment",
]
