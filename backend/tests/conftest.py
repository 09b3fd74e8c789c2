"""
BioTriage - Test Configuration and Fixtures

Shared fixtures for all test modules.
"""

import os
import sys
from typing import Callable, Generator

import numpy as np
import pytest
from fastapi.testclient import TestClient

# Ensure backend package is importable
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from biotriage.config import Settings
from biotriage.core.pipeline import TriagePipeline
from biotriage.core.types import (
    AcousticAssessment,
    AudioBuffer,
    BreathingPattern,
    EmotionalState,
    FacialBiometricResult,
    VoiceQuality,
)
from biotriage.services.acoustic_classifier import RuleBasedAcousticClassifier
from biotriage.services.acoustic_features import AutocorrelationFeatureExtractor
from biotriage.services.correlation import CrossModalCorrelationEngine
from biotriage.services.symptom_scorer import (
    STANDARD_RULESET,
    STRICT_RULESET,
    SymptomUrgencyScorer,
)


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
    config.addinivalue_line("markers", "integration: marks tests requiring optional dependencies")


# =============================================================================
# Settings Fixtures
# =============================================================================

@pytest.fixture
def test_settings() -> Settings:
    """Create test settings with safe defaults."""
    return Settings(
        app_env="testing",
        app_debug=True,
        app_log_level="WARNING",  # Reduce noise in tests
        feature_backend="numpy",
        symptom_ruleset="standard",
        anonymize_logs=True,
    )


# =============================================================================
# Service Fixtures
# =============================================================================

@pytest.fixture
def extractor() -> AutocorrelationFeatureExtractor:
    return AutocorrelationFeatureExtractor()


@pytest.fixture
def classifier() -> RuleBasedAcousticClassifier:
    return RuleBasedAcousticClassifier()


@pytest.fixture
def scorer() -> SymptomUrgencyScorer:
    """Scorer pinned to the standard ruleset."""
    return SymptomUrgencyScorer(STANDARD_RULESET)


@pytest.fixture
def strict_scorer() -> SymptomUrgencyScorer:
    return SymptomUrgencyScorer(STRICT_RULESET)


@pytest.fixture
def engine() -> CrossModalCorrelationEngine:
    return CrossModalCorrelationEngine()


# =============================================================================
# Pipeline Fixtures
# =============================================================================

@pytest.fixture
def pipeline(
    test_settings: Settings,
    extractor: AutocorrelationFeatureExtractor,
    classifier: RuleBasedAcousticClassifier,
    scorer: SymptomUrgencyScorer,
    engine: CrossModalCorrelationEngine,
) -> TriagePipeline:
    """Create a test pipeline with the default services."""
    return TriagePipeline(
        extractor=extractor,
        classifier=classifier,
        scorer=scorer,
        engine=engine,
        settings=test_settings,
    )


# =============================================================================
# Sample Data Fixtures
# =============================================================================

def make_sine(
    frequency: float = 150.0,
    seconds: float = 2.0,
    amplitude: float = 0.3,
    sample_rate: int = 16000,
) -> AudioBuffer:
    """Pure sine tone."""
    t = np.arange(int(seconds * sample_rate)) / sample_rate
    return AudioBuffer(samples=amplitude * np.sin(2 * np.pi * frequency * t), sample_rate=sample_rate)


@pytest.fixture
def sine_buffer() -> Callable[..., AudioBuffer]:
    """Factory for sine-tone buffers."""
    return make_sine


@pytest.fixture
def silent_buffer() -> AudioBuffer:
    """One second of digital silence at 16 kHz."""
    return AudioBuffer(samples=np.zeros(16000), sample_rate=16000)


@pytest.fixture
def calm_acoustic() -> AcousticAssessment:
    return AcousticAssessment(
        stress_level=3,
        emotional_state=EmotionalState.NEUTRAL,
        breathing_pattern=BreathingPattern.NORMAL,
        voice_quality=VoiceQuality.CLEAR,
        confidence=0.9,
    )


@pytest.fixture
def calm_facial() -> FacialBiometricResult:
    return FacialBiometricResult(heart_rate=69, stress_level=3, confidence=0.9)


@pytest.fixture
def scenario_answers() -> dict:
    """Fever, severe pain, started less than an hour ago."""
    return {
        "breathing": "Não",
        "chest_pain": "Não",
        "fever_check": "Sim",
        "pain_intensity": "9",
        "symptom_duration": "Menos de 1 hora",
    }


# =============================================================================
# FastAPI App Fixture
# =============================================================================

@pytest.fixture
def app():
    """Create a FastAPI app instance."""
    # Import here so sys.path is set up first
    from main import create_app

    return create_app()


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app."""
    with TestClient(app) as c:
        yield c
