"""
BioTriage - Triage Pipeline Orchestrator

Central orchestration layer that runs one triage session end to end.
This is the single entry point used by the HTTP layer.

Architecture:
    The pipeline follows a staged processing model:

    1. EXTRACTION STAGE: AudioBuffer -> FeatureVector (if audio)
    2. CLASSIFICATION STAGE: FeatureVector -> AcousticAssessment
    3. SCORING STAGE: questionnaire answers -> UrgencyAssessment (if answers)
    4. CORRELATION STAGE: available modalities -> ConsolidatedAssessment

    Each stage is handled by a pluggable service, enabling:
    - Easy testing with alternative implementations
    - Swapping the feature backend or scoring ruleset without API changes
    - Graceful degradation if a stage fails

Design Principles:
    - Stateless: No per-session state survives a call
    - Fail-safe: A failed stage becomes an absent modality plus a StageError,
      the session still gets a ConsolidatedAssessment
    - Observable: Structured logging and per-stage timings
    - Privacy-aware: Raw samples and free-text answers are never logged

Usage:
    from biotriage.config import get_settings
    from biotriage.core.pipeline import create_pipeline

    pipeline = create_pipeline(get_settings())
    result = pipeline.assess(session_id, audio=buffer, facial=telemetry, answers=answers)
    result = await pipeline.assess_async(session_id, answers=answers)
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Optional

from biotriage.config import Settings
from biotriage.core.exceptions import BioTriageError
from biotriage.core.logging import LogContext, mask_session_id
from biotriage.core.types import (
    AcousticAssessment,
    AudioBuffer,
    ConsolidatedAssessment,
    FacialBiometricResult,
    FeatureVector,
    SessionId,
    SymptomAnswers,
    UrgencyAssessment,
    UrgencyBand,
)
from biotriage.services.acoustic_classifier import AcousticClassifier
from biotriage.services.acoustic_features import FeatureExtractor
from biotriage.services.correlation import CrossModalCorrelationEngine
from biotriage.services.symptom_scorer import SymptomUrgencyScorer

logger = logging.getLogger(__name__)


# =============================================================================
# Pipeline Metrics (for observability)
# =============================================================================

@dataclass
class PipelineMetrics:
    """Metrics for a single pipeline execution."""
    request_id: str
    session_id: str
    extraction_ms: Optional[float] = None
    classification_ms: Optional[float] = None
    scoring_ms: Optional[float] = None
    correlation_ms: Optional[float] = None
    total_ms: Optional[float] = None
    success: bool = True
    error_stage: Optional[str] = None

    def to_dict(self) -> dict:
        def ms(value: Optional[float]) -> Optional[float]:
            return round(value, 2) if value is not None else None

        return {
            "request_id": self.request_id,
            "session_id": mask_session_id(self.session_id),
            "extraction_ms": ms(self.extraction_ms),
            "classification_ms": ms(self.classification_ms),
            "scoring_ms": ms(self.scoring_ms),
            "correlation_ms": ms(self.correlation_ms),
            "total_ms": ms(self.total_ms),
            "success": self.success,
            "error_stage": self.error_stage,
        }


# =============================================================================
# Session Result
# =============================================================================

@dataclass(frozen=True)
class StageError:
    """A stage that failed and was dropped from the session."""
    stage: str
    code: str
    message: str


@dataclass(frozen=True)
class SessionAssessment:
    """Everything one triage session produced."""
    session_id: SessionId
    request_id: str
    consolidated: ConsolidatedAssessment
    features: Optional[FeatureVector] = None
    acoustic: Optional[AcousticAssessment] = None
    symptoms: Optional[UrgencyAssessment] = None
    facial: Optional[FacialBiometricResult] = None
    errors: tuple[StageError, ...] = ()
    processing_time_ms: float = 0.0


PipelineHook = Callable[[SessionAssessment], None]
"""Hook function called after every completed assessment."""


# =============================================================================
# Triage Pipeline
# =============================================================================

class TriagePipeline:
    """
    Runs extraction, classification, scoring and correlation for a session.

    Attributes:
        extractor: Acoustic feature extractor
        classifier: Acoustic state classifier
        scorer: Symptom urgency scorer
        engine: Cross-modal correlation engine
        settings: Application configuration
    """

    def __init__(
        self,
        extractor: FeatureExtractor,
        classifier: AcousticClassifier,
        scorer: SymptomUrgencyScorer,
        engine: CrossModalCorrelationEngine,
        settings: Settings,
    ):
        self._extractor = extractor
        self._classifier = classifier
        self._scorer = scorer
        self._engine = engine
        self._settings = settings

        self._post_hooks: list[PipelineHook] = []
        self._metrics_callback: Optional[Callable[[PipelineMetrics], None]] = None

        logger.info(
            "TriagePipeline initialized: extractor=%s, classifier=%s, scorer=%s, engine=%s",
            extractor.extractor_id,
            classifier.classifier_id,
            scorer.scorer_id,
            engine.engine_id,
        )

    @property
    def extractor(self) -> FeatureExtractor:
        return self._extractor

    @property
    def classifier(self) -> AcousticClassifier:
        return self._classifier

    @property
    def scorer(self) -> SymptomUrgencyScorer:
        return self._scorer

    @property
    def engine(self) -> CrossModalCorrelationEngine:
        return self._engine

    def component_ids(self) -> dict[str, str]:
        return {
            "extractor": self._extractor.extractor_id,
            "classifier": self._classifier.classifier_id,
            "scorer": self._scorer.scorer_id,
            "engine": self._engine.engine_id,
        }

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def assess(
        self,
        session_id: SessionId,
        audio: Optional[AudioBuffer] = None,
        facial: Optional[FacialBiometricResult] = None,
        answers: Optional[SymptomAnswers] = None,
    ) -> SessionAssessment:
        """
        Run a full triage session.

        Every input is optional. A stage that fails is recorded in
        `errors` and its modality is left out of the correlation.
        """
        request_id = self._generate_request_id()
        metrics = PipelineMetrics(request_id=request_id, session_id=session_id)
        start_time = time.perf_counter()
        errors: list[StageError] = []

        with LogContext(session_id=session_id, request_id=request_id):
            self._log_input(session_id, audio, facial, answers)

            features = acoustic = symptoms = None
            if audio is not None:
                audio = self.truncate(audio)
                features = self._run_stage("extraction", metrics, errors, self._extractor.extract, audio)
                if features is not None:
                    acoustic = self._run_stage(
                        "classification", metrics, errors, self._classifier.classify, features,
                    )
            if answers is not None:
                symptoms = self._run_stage("scoring", metrics, errors, self._scorer.score, answers)

            stage_start = time.perf_counter()
            consolidated = self._engine.correlate(acoustic=acoustic, facial=facial, symptoms=symptoms)
            metrics.correlation_ms = (time.perf_counter() - stage_start) * 1000
            metrics.total_ms = (time.perf_counter() - start_time) * 1000

            result = SessionAssessment(
                session_id=session_id,
                request_id=request_id,
                consolidated=consolidated,
                features=features,
                acoustic=acoustic,
                symptoms=symptoms,
                facial=facial,
                errors=tuple(errors),
                processing_time_ms=metrics.total_ms,
            )

            self._execute_hooks(result)
            self._log_output(result)
            self._emit_metrics(metrics)

        return result

    async def assess_async(
        self,
        session_id: SessionId,
        audio: Optional[AudioBuffer] = None,
        facial: Optional[FacialBiometricResult] = None,
        answers: Optional[SymptomAnswers] = None,
    ) -> SessionAssessment:
        """Run `assess` in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, lambda: self.assess(session_id, audio=audio, facial=facial, answers=answers),
        )

    # -------------------------------------------------------------------------
    # Stages (Internal)
    # -------------------------------------------------------------------------

    def _run_stage(
        self,
        stage: str,
        metrics: PipelineMetrics,
        errors: list[StageError],
        func: Callable[[Any], Any],
        value: Any,
    ) -> Any:
        stage_start = time.perf_counter()
        try:
            return func(value)
        except BioTriageError as e:
            logger.warning("Stage %s failed, continuing without it: %s", stage, e.message)
            errors.append(StageError(stage=stage, code=e.code, message=e.message))
        except Exception as e:
            logger.error("Stage %s crashed, continuing without it: %s", stage, e, exc_info=True)
            errors.append(StageError(stage=stage, code="PIPELINE_ERROR", message=type(e).__name__))
        finally:
            setattr(metrics, f"{stage}_ms", (time.perf_counter() - stage_start) * 1000)

        metrics.success = False
        if metrics.error_stage is None:
            metrics.error_stage = stage
        return None

    def truncate(self, audio: AudioBuffer) -> AudioBuffer:
        """Cut recordings longer than max_audio_seconds."""
        limit = self._settings.max_audio_seconds
        if audio.duration_seconds > limit:
            logger.info("Truncating %.1fs recording to %.1fs", audio.duration_seconds, limit)
            return audio.head(limit)
        return audio

    # -------------------------------------------------------------------------
    # Hooks and Observability
    # -------------------------------------------------------------------------

    def register_hook(self, hook: PipelineHook) -> None:
        """
        Register a post-processing hook.

        Hooks receive every SessionAssessment after correlation. Use for
        alerting on critical results or forwarding to a clinician queue.
        A failing hook is logged and never affects the result.
        """
        self._post_hooks.append(hook)
        logger.info("Registered pipeline hook: %s", getattr(hook, "__name__", repr(hook)))

    def set_metrics_callback(self, callback: Callable[[PipelineMetrics], None]) -> None:
        """Set callback for metrics emission (called after every assessment)."""
        self._metrics_callback = callback

    def _execute_hooks(self, result: SessionAssessment) -> None:
        for hook in self._post_hooks:
            try:
                hook(result)
            except Exception as e:
                logger.error(
                    "Hook execution failed [%s]: %s",
                    getattr(hook, "__name__", "unknown"),
                    e,
                )

    def _emit_metrics(self, metrics: PipelineMetrics) -> None:
        if self._metrics_callback:
            try:
                self._metrics_callback(metrics)
            except Exception as e:
                logger.warning("Metrics emission failed: %s", e)

    # -------------------------------------------------------------------------
    # Logging (Privacy-Aware)
    # -------------------------------------------------------------------------

    def _log_input(
        self,
        session_id: str,
        audio: Optional[AudioBuffer],
        facial: Optional[FacialBiometricResult],
        answers: Optional[SymptomAnswers],
    ) -> None:
        shown = mask_session_id(session_id) if self._settings.anonymize_logs else session_id
        # StructuredFormatter redacts answers and audio before output
        logger.info(
            "Assessing session=%s: audio=%s, facial=%s, answers=%s",
            shown,
            f"{audio.duration_seconds:.2f}s" if audio is not None else "none",
            "yes" if facial is not None else "none",
            f"{len(answers)} fields" if answers is not None else "none",
            extra={"data": {
                "audio": audio,
                "audio_seconds": audio.duration_seconds if audio is not None else None,
                "sample_rate": audio.sample_rate if audio is not None else None,
                "facial_present": facial is not None,
                "answers": answers,
            }},
        )

    def _log_output(self, result: SessionAssessment) -> None:
        overall = result.consolidated.overall_urgency
        logger.info(
            "Result: urgency=%s (%d), reliability=%s, quality=%s, errors=%d, total_ms=%.1f",
            overall.band.value,
            overall.numeric_score,
            result.consolidated.reliability.value,
            result.consolidated.data_quality.value,
            len(result.errors),
            result.processing_time_ms,
            extra={"data": {
                "band": overall.band.value,
                "numeric_score": overall.numeric_score,
                "consistency_score": result.consolidated.consistency_score,
                "failed_stages": [e.stage for e in result.errors],
            }},
        )
        if overall.band in (UrgencyBand.HIGH, UrgencyBand.CRITICAL):
            logger.warning(
                "HIGH URGENCY session=%s: band=%s, action=%s",
                mask_session_id(result.session_id),
                overall.band.value,
                overall.action_text,
            )

    @staticmethod
    def _generate_request_id() -> str:
        return f"req_{uuid.uuid4().hex[:12]}"


# =============================================================================
# Factory Function
# =============================================================================

def create_pipeline(settings: Settings) -> TriagePipeline:
    """
    Factory function to create a configured TriagePipeline.

    Selects service implementations based on settings:
    - feature_backend: "numpy" | "librosa"
    - symptom_ruleset: "standard" | "strict"

    IMPORTANT SAFETY NOTICE:
        This pipeline is a DECISION SUPPORT aid, not a medical device.

    Raises:
        ConfigurationError: symptom_ruleset names no shipped ruleset
    """
    from biotriage.services.acoustic_classifier import RuleBasedAcousticClassifier
    from biotriage.services.acoustic_features import AutocorrelationFeatureExtractor
    from biotriage.services.symptom_scorer import get_ruleset

    def numpy_extractor() -> AutocorrelationFeatureExtractor:
        return AutocorrelationFeatureExtractor(
            fft_size_cap=settings.fft_size_cap,
            band_count=settings.band_count,
            pitch_min_hz=settings.pitch_min_hz,
            pitch_max_hz=settings.pitch_max_hz,
        )

    # --- Feature Extractor ---
    feature_backend = settings.feature_backend.lower()

    if feature_backend == "librosa":
        try:
            from biotriage.services.acoustic_features import LibrosaFeatureExtractor

            logger.info("Initializing LibrosaFeatureExtractor")
            extractor = LibrosaFeatureExtractor(
                band_count=settings.band_count,
                pitch_min_hz=settings.pitch_min_hz,
                pitch_max_hz=settings.pitch_max_hz,
            )

        except ImportError as e:
            logger.error(
                "Failed to load LibrosaFeatureExtractor: %s. "
                "Install librosa. Falling back to AutocorrelationFeatureExtractor.",
                e,
            )
            extractor = numpy_extractor()
    else:
        if feature_backend != "numpy":
            logger.warning("Unknown feature_backend '%s', using numpy", feature_backend)
        extractor = numpy_extractor()

    # --- Symptom Scorer ---
    ruleset = get_ruleset(settings.symptom_ruleset)

    logger.info(
        "Pipeline configured: extractor=%s, ruleset=%s",
        type(extractor).__name__,
        ruleset.name,
    )

    return TriagePipeline(
        extractor=extractor,
        classifier=RuleBasedAcousticClassifier(),
        scorer=SymptomUrgencyScorer(ruleset),
        engine=CrossModalCorrelationEngine(),
        settings=settings,
    )
