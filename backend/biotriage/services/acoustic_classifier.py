"""
BioTriage - Acoustic State Classifier

Maps a FeatureVector to stress level, emotional state, breathing pattern,
voice quality and a confidence value using fixed threshold rules.

Safety Notes:
    - The rules are heuristics for DECISION SUPPORT, not diagnosis
    - The classifier is total: every FeatureVector yields an assessment
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from typing import Protocol, runtime_checkable

import numpy as np

from biotriage.core.types import (
    AcousticAssessment,
    BreathingPattern,
    EmotionalState,
    FeatureVector,
    VoiceQuality,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Protocol (Interface)
# =============================================================================

@runtime_checkable
class AcousticClassifier(Protocol):
    """Protocol for acoustic state classification."""

    @abstractmethod
    def classify(self, features: FeatureVector) -> AcousticAssessment:
        """Classify one feature vector. Never raises."""
        ...

    @property
    @abstractmethod
    def classifier_id(self) -> str:
        """Return identifier for logging/tracking."""
        ...


# =============================================================================
# Rule-Based Implementation
# =============================================================================

class RuleBasedAcousticClassifier:
    """
    Threshold rules over the acoustic descriptors.

    Stress accumulates from independent cues and is clamped to 0-10. The
    emotional state takes the first matching rule, so the order of
    EMOTION checks matters.
    """

    # Stress cues
    PITCH_NORMAL_RANGE = (80.0, 200.0)
    LOUD_THRESHOLD = 0.5
    NOISY_ZCR = 0.10
    # Compared against band means of the unnormalized fft_size_cap-point
    # (2048) spectrum. Broadband means grow with sqrt(transform size)
    BAND_VARIATION_THRESHOLD = 0.02

    # Confidence
    BASE_CONFIDENCE = 0.70
    MAX_CONFIDENCE = 0.95

    @property
    def classifier_id(self) -> str:
        return "acoustic-rules-v1.0"

    def classify(self, features: FeatureVector) -> AcousticAssessment:
        if features.is_silent:
            logger.debug("Silent feature vector, returning neutral assessment")
            return AcousticAssessment(
                stress_level=0,
                emotional_state=EmotionalState.NEUTRAL,
                breathing_pattern=BreathingPattern.NORMAL,
                voice_quality=VoiceQuality.CLEAR,
                confidence=self.BASE_CONFIDENCE,
            )

        stress = self._stress_level(features)
        assessment = AcousticAssessment(
            stress_level=stress,
            emotional_state=self._emotional_state(features, stress),
            breathing_pattern=self._breathing_pattern(features),
            voice_quality=self._voice_quality(features),
            confidence=self._confidence(features),
        )

        logger.debug(
            "Acoustic assessment: stress=%d, emotion=%s, breathing=%s, voice=%s, conf=%.2f",
            assessment.stress_level,
            assessment.emotional_state.value,
            assessment.breathing_pattern.value,
            assessment.voice_quality.value,
            assessment.confidence,
        )
        return assessment

    def _stress_level(self, f: FeatureVector) -> int:
        stress = 0
        low, high = self.PITCH_NORMAL_RANGE
        if f.pitch_hz > high or f.pitch_hz < low:
            stress += 2
        if f.loudness > self.LOUD_THRESHOLD:
            stress += 1
        if f.zero_crossing_rate > self.NOISY_ZCR:
            stress += 1
        if len(f.band_energies) > 1:
            variation = float(np.mean(np.abs(np.diff(f.band_energies))))
            if variation > self.BAND_VARIATION_THRESHOLD:
                stress += 1
        return max(0, min(10, stress))

    @staticmethod
    def _emotional_state(f: FeatureVector, stress: int) -> EmotionalState:
        if f.pitch_hz < 100 and f.loudness < 0.2:
            return EmotionalState.SADNESS
        if f.pitch_hz > 180 and f.loudness > 0.4:
            return EmotionalState.ANXIETY
        if f.pitch_hz > 150 and f.spectral_centroid_hz > 1000:
            return EmotionalState.EXCITEMENT
        if stress > 6:
            return EmotionalState.STRESS
        return EmotionalState.NEUTRAL

    @staticmethod
    def _breathing_pattern(f: FeatureVector) -> BreathingPattern:
        if f.duration_seconds < 2.0:
            return BreathingPattern.SHALLOW
        if f.zero_crossing_rate < 0.02:
            return BreathingPattern.LABORED
        if f.loudness < 0.1:
            return BreathingPattern.WEAK
        return BreathingPattern.NORMAL

    @staticmethod
    def _voice_quality(f: FeatureVector) -> VoiceQuality:
        if f.zero_crossing_rate > 0.08:
            return VoiceQuality.ROUGH
        if f.spectral_centroid_hz < 500:
            return VoiceQuality.HOARSE
        if f.loudness < 0.15:
            return VoiceQuality.WEAK
        return VoiceQuality.CLEAR

    def _confidence(self, f: FeatureVector) -> float:
        confidence = self.BASE_CONFIDENCE
        if f.loudness > 0.1:
            confidence += 0.10
        if f.duration_seconds > 1.0:
            confidence += 0.10
        if 80 < f.pitch_hz < 300:
            confidence += 0.10
        return round(min(confidence, self.MAX_CONFIDENCE), 2)
