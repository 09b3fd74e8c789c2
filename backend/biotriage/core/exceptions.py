"""
BioTriage - Exception Hierarchy

Structured exceptions for consistent error handling across the system.
All exceptions include error codes for API responses.
"""

from typing import Optional


class BioTriageError(Exception):
    """Base exception for all BioTriage errors."""

    code: str = "UNKNOWN_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        """Serializable error body for API responses."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# Pipeline Errors
# =============================================================================

class PipelineError(BioTriageError):
    """Error during triage pipeline processing."""
    code = "PIPELINE_ERROR"
    status_code = 500


class FeatureExtractionError(PipelineError):
    """Error during acoustic feature extraction."""
    code = "FEATURE_EXTRACTION_ERROR"


class InsufficientDataError(FeatureExtractionError):
    """Audio buffer is empty or has no usable duration; re-capture and retry."""
    code = "INSUFFICIENT_DATA"
    status_code = 422


class ScoringError(PipelineError):
    """Error during symptom urgency scoring."""
    code = "SCORING_ERROR"


class MalformedAnswerError(ScoringError):
    """A questionnaire answer is present but cannot be interpreted."""
    code = "MALFORMED_ANSWER"
    status_code = 422


# =============================================================================
# Validation Errors
# =============================================================================

class ValidationError(BioTriageError):
    """Input validation error."""
    code = "VALIDATION_ERROR"
    status_code = 400


class InvalidAudioFormatError(ValidationError):
    """Invalid audio payload."""
    code = "INVALID_AUDIO_FORMAT"


class InvalidAnswerError(ValidationError):
    """Invalid questionnaire payload."""
    code = "INVALID_ANSWER"


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(BioTriageError):
    """Configuration error."""
    code = "CONFIGURATION_ERROR"
    status_code = 500
