"""
BioTriage - Core Domain Types

Internal type definitions for the triage pipeline. These are domain objects
used within the core and service layers, independent of API serialization.

Design Notes:
- These types are the "lingua franca" between pipeline components.
- API layer converts these to/from Pydantic schemas for external communication.
- All values are frozen dataclasses: every stage hands the next one an
  immutable snapshot, nothing is shared or mutated across stages.
- Enums are defined here to avoid circular imports and keep the domain
  independent of the API layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, NewType, Optional, Union

import numpy as np


# =============================================================================
# Type Aliases
# =============================================================================

SessionId = NewType("SessionId", str)
"""Unique identifier for a triage session. Opaque string (typically UUID4)."""

SymptomAnswers = Mapping[str, Any]
"""Questionnaire answers: question id -> free text, option label or 0-10 scale."""


# =============================================================================
# Enums
# =============================================================================

class EmotionalState(str, Enum):
    """Emotional state inferred from the voice."""
    NEUTRAL = "neutral"
    SADNESS = "sadness"
    ANXIETY = "anxiety"
    EXCITEMENT = "excitement"
    STRESS = "stress"


class BreathingPattern(str, Enum):
    """Breathing pattern inferred from the voice."""
    NORMAL = "normal"
    SHALLOW = "shallow"
    LABORED = "labored"
    WEAK = "weak"


class VoiceQuality(str, Enum):
    """Perceived voice quality."""
    CLEAR = "clear"
    ROUGH = "rough"
    HOARSE = "hoarse"
    WEAK = "weak"


class UrgencyBand(str, Enum):
    """Ordinal triage category derived from a numeric score."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Ordinal position, low=0 .. critical=3."""
        return _BAND_ORDER.index(self)


_BAND_ORDER = (UrgencyBand.LOW, UrgencyBand.MEDIUM, UrgencyBand.HIGH, UrgencyBand.CRITICAL)


class Reliability(str, Enum):
    """How far the modalities agree with each other."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class DataQuality(str, Enum):
    """How many of the three modalities were available."""
    COMPLETE = "complete"
    GOOD = "good"
    PARTIAL = "partial"


# =============================================================================
# Audio
# =============================================================================

@dataclass(frozen=True, eq=False)
class AudioBuffer:
    """
    A captured mono recording.

    Samples are floats, nominally in [-1, 1]. The array is made read-only on
    construction so that a buffer can be handed between stages by value.

    Attributes:
        samples: 1-D float array of mono samples
        sample_rate: Samples per second (Hz)
    """
    samples: np.ndarray
    sample_rate: int

    def __post_init__(self):
        samples = np.array(self.samples, dtype=np.float64).reshape(-1)
        samples.setflags(write=False)
        object.__setattr__(self, "samples", samples)

    @property
    def duration_seconds(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return len(self.samples) / float(self.sample_rate)

    def __len__(self) -> int:
        return len(self.samples)

    @classmethod
    def from_pcm16(cls, audio: bytes, sample_rate: int) -> "AudioBuffer":
        """Decode little-endian signed 16-bit PCM bytes."""
        usable = len(audio) - (len(audio) % 2)
        samples = np.frombuffer(audio[:usable], dtype="<i2").astype(np.float64) / 32768.0
        return cls(samples=samples, sample_rate=sample_rate)

    def head(self, seconds: float) -> "AudioBuffer":
        """Return the first `seconds` of the recording."""
        limit = int(seconds * self.sample_rate)
        if limit >= len(self.samples):
            return self
        return AudioBuffer(samples=self.samples[:limit], sample_rate=self.sample_rate)


# =============================================================================
# Acoustic Features
# =============================================================================

@dataclass(frozen=True)
class FeatureVector:
    """
    Acoustic descriptors extracted from one AudioBuffer.

    Attributes:
        pitch_hz: Estimated fundamental frequency (0 when unvoiced/silent)
        loudness: RMS of the samples (0-1 for normalized input)
        spectral_centroid_hz: Magnitude-weighted mean frequency
        zero_crossing_rate: Fraction of adjacent samples changing sign (0-1)
        band_energies: Mean spectral magnitude per contiguous band (N=8)
        duration_seconds: Duration of the source buffer
        jitter: Mean cycle-to-cycle period change over mean period (None if unvoiced)
        shimmer: Mean cycle-to-cycle peak change over mean peak (None if unvoiced)
        hnr_db: Harmonics-to-noise ratio from the autocorrelation peak (None if unvoiced)
    """
    pitch_hz: float
    loudness: float
    spectral_centroid_hz: float
    zero_crossing_rate: float
    band_energies: tuple[float, ...]
    duration_seconds: float
    jitter: Optional[float] = None
    shimmer: Optional[float] = None
    hnr_db: Optional[float] = None

    @property
    def is_silent(self) -> bool:
        """True when every acoustic descriptor is zero."""
        return (
            self.pitch_hz == 0
            and self.loudness == 0
            and self.spectral_centroid_hz == 0
            and self.zero_crossing_rate == 0
            and not any(self.band_energies)
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "pitch_hz": self.pitch_hz,
            "loudness": self.loudness,
            "spectral_centroid_hz": self.spectral_centroid_hz,
            "zero_crossing_rate": self.zero_crossing_rate,
            "band_energies": list(self.band_energies),
            "duration_seconds": self.duration_seconds,
            "jitter": self.jitter,
            "shimmer": self.shimmer,
            "hnr_db": self.hnr_db,
        }


@dataclass(frozen=True)
class AcousticAssessment:
    """Stress, emotional, respiratory and voice-quality labels for a recording."""
    stress_level: int  # 0-10
    emotional_state: EmotionalState
    breathing_pattern: BreathingPattern
    voice_quality: VoiceQuality
    confidence: float  # 0.70-0.95

    def __post_init__(self):
        """Validate constraints."""
        if not 0 <= self.stress_level <= 10:
            raise ValueError(f"stress_level must be 0-10, got {self.stress_level}")
        if not 0.70 <= self.confidence <= 0.95:
            raise ValueError(f"confidence must be 0.70-0.95, got {self.confidence}")


# =============================================================================
# Symptom Questionnaire
# =============================================================================

@dataclass(frozen=True)
class UrgencyAssessment:
    """
    Result of scoring one completed questionnaire.

    Attributes:
        score: Urgency score 0-100
        band: Urgency band, a pure function of score
        symptoms: Ordered, de-duplicated symptom names
        recommendations: Ordered guidance strings
        malformed_fields: Question ids whose answers could not be interpreted
    """
    score: int
    band: UrgencyBand
    symptoms: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()
    malformed_fields: tuple[str, ...] = ()

    def __post_init__(self):
        if not 0 <= self.score <= 100:
            raise ValueError(f"score must be 0-100, got {self.score}")


# =============================================================================
# Facial / Biometric Telemetry (external value)
# =============================================================================

@dataclass(frozen=True)
class FacialBiometricResult:
    """
    Output of the external facial/biometric telemetry collaborator.

    Only heart_rate, stress_level and confidence are required. Confidence may
    arrive as a fraction (0-1) or a percentage (0-100).
    """
    heart_rate: int
    stress_level: int
    confidence: float
    thermal_state: Optional[str] = None  # "normal" | "possible_fever" | "indeterminate"
    micro_expressions: Mapping[str, float] = field(default_factory=dict)

    @property
    def normalized_confidence(self) -> float:
        """Confidence as a 0-1 fraction."""
        value = float(self.confidence)
        if value > 1.0:
            value /= 100.0
        return max(0.0, min(1.0, value))


# =============================================================================
# Modality Union
# =============================================================================

ModalityResult = Union[AcousticAssessment, FacialBiometricResult, UrgencyAssessment]
"""Any single per-modality result the correlation engine accepts."""


@dataclass(frozen=True)
class ModalitySet:
    """
    One optional slot per modality.

    Built from any iterable of ModalityResult values; order does not matter.
    """
    acoustic: Optional[AcousticAssessment] = None
    facial: Optional[FacialBiometricResult] = None
    symptoms: Optional[UrgencyAssessment] = None

    @classmethod
    def from_results(cls, results: Iterable[ModalityResult]) -> "ModalitySet":
        slots: Dict[str, ModalityResult] = {}
        for result in results:
            if isinstance(result, AcousticAssessment):
                name = "acoustic"
            elif isinstance(result, FacialBiometricResult):
                name = "facial"
            elif isinstance(result, UrgencyAssessment):
                name = "symptoms"
            else:
                raise TypeError(f"Unsupported modality result: {type(result).__name__}")
            if name in slots:
                raise ValueError(f"Duplicate {name} modality result")
            slots[name] = result
        return cls(**slots)

    @property
    def present_count(self) -> int:
        return sum(1 for r in (self.acoustic, self.facial, self.symptoms) if r is not None)


# =============================================================================
# Consolidated Assessment
# =============================================================================

@dataclass(frozen=True)
class OverallUrgency:
    """Holistic urgency recomputed across modalities."""
    band: UrgencyBand
    numeric_score: int
    action_text: str


@dataclass(frozen=True)
class ConsensusIndicators:
    """Whether pairs of modalities agree on a specific signal."""
    stress_consensus: bool = False
    emotional_consensus: bool = False
    urgency_consensus: bool = False


@dataclass(frozen=True)
class BiometricCorrelation:
    """Pairwise agreement measures (0-1); None when a side is missing."""
    stress_correlation: Optional[float] = None
    heart_rate_consistency: Optional[float] = None
    emotional_alignment: Optional[float] = None
    reported_urgency_agreement: Optional[float] = None

    def available(self) -> list[float]:
        return [
            v for v in (
                self.stress_correlation,
                self.heart_rate_consistency,
                self.emotional_alignment,
                self.reported_urgency_agreement,
            )
            if v is not None
        ]


@dataclass(frozen=True)
class ConsolidatedAssessment:
    """
    Single assessment fused from the available modalities.

    Built fresh per triage session and never mutated afterwards.
    """
    overall_urgency: OverallUrgency
    consistency_score: int  # 0-100
    reliability: Reliability
    consensus: ConsensusIndicators
    conflicting_metrics: tuple[str, ...]
    outliers: tuple[str, ...]
    confidence: int  # 0-100
    data_quality: DataQuality
    biometric_correlation: BiometricCorrelation = field(default_factory=BiometricCorrelation)
    combined_symptoms: tuple[str, ...] = ()
    risk_factors: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()

    def __post_init__(self):
        """Validate constraints."""
        if not 0 <= self.consistency_score <= 100:
            raise ValueError(f"consistency_score must be 0-100, got {self.consistency_score}")
        if not 0 <= self.confidence <= 100:
            raise ValueError(f"confidence must be 0-100, got {self.confidence}")
