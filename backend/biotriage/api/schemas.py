"""
BioTriage - API Schemas

Pydantic models for request/response validation.
These define the contract between the capture frontends and the backend.
"""

from __future__ import annotations

import base64
import binascii
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from biotriage.core.exceptions import InvalidAudioFormatError
from biotriage.core.types import (
    AcousticAssessment,
    AudioBuffer,
    BreathingPattern,
    DataQuality,
    EmotionalState,
    FacialBiometricResult,
    Reliability,
    UrgencyAssessment,
    UrgencyBand,
    VoiceQuality,
)


class DomainSchema(BaseModel):
    """Base for schemas that are built from domain dataclasses."""
    model_config = ConfigDict(from_attributes=True)


# ===========================================
# Session Schemas
# ===========================================

class SessionCreateResponse(BaseModel):
    """Response after creating a session."""

    session_id: str = Field(description="Unique session identifier (UUID4)")
    status: str = Field(description="Session status")
    created_at: datetime


# ===========================================
# Audio
# ===========================================

class AudioPayload(BaseModel):
    """
    A mono recording.

    Carries exactly one of `samples` (floats in [-1, 1]) or
    `pcm16_base64` (little-endian signed 16-bit PCM, base64 encoded).
    """

    samples: Optional[List[float]] = Field(default=None, description="Mono float samples")
    pcm16_base64: Optional[str] = Field(default=None, description="Base64 PCM16 LE mono audio")
    sample_rate: Optional[int] = Field(
        default=None, gt=0, le=192000,
        description="Sample rate in Hz (server default when omitted)",
    )

    @model_validator(mode="after")
    def _exactly_one_source(self) -> "AudioPayload":
        if (self.samples is None) == (self.pcm16_base64 is None):
            raise ValueError("Provide exactly one of 'samples' or 'pcm16_base64'")
        return self

    def to_buffer(self, default_sample_rate: int = 16000) -> AudioBuffer:
        sample_rate = self.sample_rate or default_sample_rate
        if self.samples is not None:
            return AudioBuffer(samples=self.samples, sample_rate=sample_rate)
        try:
            raw = base64.b64decode(self.pcm16_base64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise InvalidAudioFormatError(
                "pcm16_base64 is not valid base64",
                details={"reason": str(e)},
            ) from e
        return AudioBuffer.from_pcm16(raw, sample_rate)


# ===========================================
# Modality Results
# ===========================================

class FeatureVectorSchema(DomainSchema):
    """Acoustic descriptors of one recording."""

    pitch_hz: float
    loudness: float
    spectral_centroid_hz: float
    zero_crossing_rate: float
    band_energies: List[float]
    duration_seconds: float
    jitter: Optional[float] = None
    shimmer: Optional[float] = None
    hnr_db: Optional[float] = None


class AcousticAssessmentSchema(DomainSchema):
    """Labels inferred from the voice."""

    stress_level: int = Field(ge=0, le=10)
    emotional_state: EmotionalState
    breathing_pattern: BreathingPattern
    voice_quality: VoiceQuality
    confidence: float = Field(ge=0.70, le=0.95)

    def to_domain(self) -> AcousticAssessment:
        return AcousticAssessment(
            stress_level=self.stress_level,
            emotional_state=self.emotional_state,
            breathing_pattern=self.breathing_pattern,
            voice_quality=self.voice_quality,
            confidence=self.confidence,
        )


class FacialTelemetrySchema(DomainSchema):
    """
    Output of the facial/biometric telemetry collaborator.

    Confidence may be a fraction (0-1) or a percentage (0-100).
    Stress values outside 0-10 are accepted and reported as outliers.
    """

    heart_rate: int = Field(ge=0, le=300, description="Heart rate in bpm")
    stress_level: int = Field(description="Facial stress 0-10")
    confidence: float = Field(ge=0.0, le=100.0)
    thermal_state: Optional[Literal["normal", "possible_fever", "indeterminate"]] = None
    micro_expressions: Dict[str, float] = Field(default_factory=dict)

    def to_domain(self) -> FacialBiometricResult:
        return FacialBiometricResult(
            heart_rate=self.heart_rate,
            stress_level=self.stress_level,
            confidence=self.confidence,
            thermal_state=self.thermal_state,
            micro_expressions=dict(self.micro_expressions),
        )


class UrgencyAssessmentSchema(DomainSchema):
    """Questionnaire urgency."""

    score: int = Field(ge=0, le=100)
    band: UrgencyBand
    symptoms: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    malformed_fields: List[str] = Field(default_factory=list)

    def to_domain(self) -> UrgencyAssessment:
        return UrgencyAssessment(
            score=self.score,
            band=self.band,
            symptoms=tuple(self.symptoms),
            recommendations=tuple(self.recommendations),
            malformed_fields=tuple(self.malformed_fields),
        )


# ===========================================
# Consolidated Assessment
# ===========================================

class OverallUrgencySchema(DomainSchema):
    band: UrgencyBand
    numeric_score: int
    action_text: str


class ConsensusSchema(DomainSchema):
    stress_consensus: bool
    emotional_consensus: bool
    urgency_consensus: bool


class BiometricCorrelationSchema(DomainSchema):
    stress_correlation: Optional[float] = None
    heart_rate_consistency: Optional[float] = None
    emotional_alignment: Optional[float] = None
    reported_urgency_agreement: Optional[float] = None


class ConsolidatedAssessmentSchema(DomainSchema):
    """Single assessment fused from the available modalities."""

    overall_urgency: OverallUrgencySchema
    consistency_score: int = Field(ge=0, le=100)
    reliability: Reliability
    consensus: ConsensusSchema
    conflicting_metrics: List[str]
    outliers: List[str]
    confidence: int = Field(ge=0, le=100)
    data_quality: DataQuality
    biometric_correlation: BiometricCorrelationSchema
    combined_symptoms: List[str]
    risk_factors: List[str]
    recommendations: List[str]


# ===========================================
# Requests
# ===========================================

class FeatureRequest(BaseModel):
    """Request to analyze one recording."""

    audio: AudioPayload


class SymptomScoreRequest(BaseModel):
    """Request to score a questionnaire."""

    answers: Dict[str, Any] = Field(
        description="Question id -> answer (option label, free text or 0-10 scale)",
    )


class CorrelateRequest(BaseModel):
    """Any subset of per-modality results."""

    acoustic: Optional[AcousticAssessmentSchema] = None
    facial: Optional[FacialTelemetrySchema] = None
    symptoms: Optional[UrgencyAssessmentSchema] = None


class SessionAssessmentRequest(BaseModel):
    """Raw inputs for a full triage session; every part is optional."""

    audio: Optional[AudioPayload] = None
    facial: Optional[FacialTelemetrySchema] = None
    answers: Optional[Dict[str, Any]] = None


# ===========================================
# Responses
# ===========================================

class FeatureResponse(BaseModel):
    """Features and acoustic labels for one recording."""

    features: FeatureVectorSchema
    acoustic: AcousticAssessmentSchema
    extractor: str


class StageErrorSchema(DomainSchema):
    stage: str
    code: str
    message: str


class SessionAssessmentResponse(DomainSchema):
    """Everything a triage session produced."""

    session_id: str
    request_id: str
    consolidated: ConsolidatedAssessmentSchema
    features: Optional[FeatureVectorSchema] = None
    acoustic: Optional[AcousticAssessmentSchema] = None
    symptoms: Optional[UrgencyAssessmentSchema] = None
    errors: List[StageErrorSchema] = Field(default_factory=list)
    processing_time_ms: float


# ===========================================
# Health / Errors
# ===========================================

class HealthResponse(BaseModel):
    """System health status."""

    status: str = Field(description="Overall status: healthy | degraded | unhealthy")
    components: Dict[str, str] = Field(description="Component identifiers and statuses")
    version: str = Field(default="0.1.0")


class ErrorResponse(BaseModel):
    """Body returned for every BioTriageError."""

    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
