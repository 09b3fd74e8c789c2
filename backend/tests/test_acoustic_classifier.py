"""
BioTriage - Acoustic Classifier Tests

Run with: pytest tests/test_acoustic_classifier.py -v
"""

import numpy as np
import pytest

from biotriage.core.types import (
    AcousticAssessment,
    AudioBuffer,
    BreathingPattern,
    EmotionalState,
    FeatureVector,
    VoiceQuality,
)
from biotriage.services.acoustic_classifier import AcousticClassifier
from biotriage.services.acoustic_features import AutocorrelationFeatureExtractor


def features(**overrides) -> FeatureVector:
    """A calm, clear voice; override single descriptors per test."""
    values = dict(
        pitch_hz=150.0,
        loudness=0.3,
        spectral_centroid_hz=800.0,
        zero_crossing_rate=0.05,
        band_energies=(0.01,) * 8,
        duration_seconds=3.0,
    )
    values.update(overrides)
    return FeatureVector(**values)


class TestSilentInput:
    """Silence must never look like distress."""

    def test_silent_vector(self, classifier):
        silent = FeatureVector(0.0, 0.0, 0.0, 0.0, (0.0,) * 8, 1.0)
        result = classifier.classify(silent)

        assert result.emotional_state == EmotionalState.NEUTRAL
        assert result.breathing_pattern in (BreathingPattern.NORMAL, BreathingPattern.WEAK)
        assert result.voice_quality == VoiceQuality.CLEAR
        assert result.stress_level == 0
        assert result.confidence >= 0.70

    def test_silent_buffer_end_to_end(self, classifier, extractor, silent_buffer):
        result = classifier.classify(extractor.extract(silent_buffer))
        assert result.emotional_state == EmotionalState.NEUTRAL
        assert result.confidence >= 0.70


class TestStressLevel:

    def test_calm_voice_has_no_stress(self, classifier):
        assert classifier.classify(features()).stress_level == 0

    def test_all_cues_accumulate(self, classifier):
        """Out-of-range pitch +2, loud +1, noisy +1, uneven bands +1."""
        result = classifier.classify(features(
            pitch_hz=250.0,
            loudness=0.6,
            zero_crossing_rate=0.15,
            band_energies=(0.0, 0.1) * 4,
        ))
        assert result.stress_level == 5

    def test_low_pitch_counts(self, classifier):
        assert classifier.classify(features(pitch_hz=70.0)).stress_level == 2

    def test_band_means_scale_with_transform_size(self):
        """Broadband band means grow with sqrt(transform size); 2048/256 is about 2.8."""
        rng = np.random.default_rng(0)
        noise = AudioBuffer(samples=rng.normal(0.0, 0.1, 16000), sample_rate=16000)

        full = AutocorrelationFeatureExtractor(fft_size_cap=2048).extract(noise)
        small = AutocorrelationFeatureExtractor(fft_size_cap=256).extract(noise)

        ratio = np.mean(full.band_energies) / np.mean(small.band_energies)
        assert 2.0 < ratio < 4.0


class TestEmotionalState:

    def test_sadness(self, classifier):
        result = classifier.classify(features(pitch_hz=90.0, loudness=0.1))
        assert result.emotional_state == EmotionalState.SADNESS

    def test_anxiety(self, classifier):
        result = classifier.classify(features(pitch_hz=220.0, loudness=0.45))
        assert result.emotional_state == EmotionalState.ANXIETY

    def test_excitement(self, classifier):
        result = classifier.classify(features(pitch_hz=170.0, spectral_centroid_hz=1500.0))
        assert result.emotional_state == EmotionalState.EXCITEMENT

    def test_anxiety_checked_before_excitement(self, classifier):
        """Both rules match; the first one wins."""
        result = classifier.classify(
            features(pitch_hz=220.0, loudness=0.45, spectral_centroid_hz=1500.0)
        )
        assert result.emotional_state == EmotionalState.ANXIETY

    def test_neutral(self, classifier):
        assert classifier.classify(features()).emotional_state == EmotionalState.NEUTRAL


class TestBreathingAndVoice:

    @pytest.mark.parametrize("overrides,expected", [
        ({"duration_seconds": 1.5}, BreathingPattern.SHALLOW),
        ({"zero_crossing_rate": 0.01}, BreathingPattern.LABORED),
        ({"loudness": 0.05}, BreathingPattern.WEAK),
        ({}, BreathingPattern.NORMAL),
    ])
    def test_breathing(self, classifier, overrides, expected):
        assert classifier.classify(features(**overrides)).breathing_pattern == expected

    @pytest.mark.parametrize("overrides,expected", [
        ({"zero_crossing_rate": 0.09}, VoiceQuality.ROUGH),
        ({"spectral_centroid_hz": 400.0}, VoiceQuality.HOARSE),
        ({"loudness": 0.12}, VoiceQuality.WEAK),
        ({}, VoiceQuality.CLEAR),
    ])
    def test_voice_quality(self, classifier, overrides, expected):
        assert classifier.classify(features(**overrides)).voice_quality == expected


class TestConfidence:

    def test_capped(self, classifier):
        """0.70 + 3 x 0.10 is capped at 0.95."""
        assert classifier.classify(features()).confidence == 0.95

    def test_base(self, classifier):
        result = classifier.classify(features(loudness=0.05, duration_seconds=0.5, pitch_hz=0.0))
        assert result.confidence == 0.70

    def test_rounded(self, classifier):
        result = classifier.classify(features(duration_seconds=0.5, pitch_hz=350.0))
        assert result.confidence == 0.8

    @pytest.mark.parametrize("loudness", [0.0, 0.05, 0.3, 0.9])
    @pytest.mark.parametrize("duration", [0.2, 1.5, 10.0])
    @pytest.mark.parametrize("pitch", [0.0, 60.0, 150.0, 350.0])
    def test_always_in_range(self, classifier, loudness, duration, pitch):
        result = classifier.classify(
            features(loudness=loudness, duration_seconds=duration, pitch_hz=pitch)
        )
        assert 0.70 <= result.confidence <= 0.95


class TestAssessmentType:

    def test_implements_protocol(self, classifier):
        assert isinstance(classifier, AcousticClassifier)

    def test_rejects_out_of_range_confidence(self):
        with pytest.raises(ValueError):
            AcousticAssessment(
                stress_level=2,
                emotional_state=EmotionalState.NEUTRAL,
                breathing_pattern=BreathingPattern.NORMAL,
                voice_quality=VoiceQuality.CLEAR,
                confidence=0.5,
            )
