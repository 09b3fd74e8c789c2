"""
BioTriage - Cross-Modal Correlation Engine

Fuses the acoustic assessment, the facial/biometric telemetry and the
questionnaire urgency into a single ConsolidatedAssessment.

Measures (each 0-1, computed only when both sides are present):
    - stress correlation:        voice stress vs facial stress
    - heart-rate consistency:    facial heart rate vs rate implied by voice stress
    - emotional alignment:       vocal emotion vs micro-expressions / arousal
    - reported urgency agreement: questionnaire score vs biometric stress

Safety Notes:
    - The engine never raises for missing modalities; it lowers data
      quality and reliability instead
    - Conflicts and outliers are advisory strings for human review
"""

from __future__ import annotations

import logging
import math
from numbers import Real
from typing import Iterable, Optional

from biotriage.core.types import (
    AcousticAssessment,
    BiometricCorrelation,
    ConsensusIndicators,
    ConsolidatedAssessment,
    DataQuality,
    EmotionalState,
    FacialBiometricResult,
    ModalityResult,
    ModalitySet,
    OverallUrgency,
    Reliability,
    UrgencyAssessment,
    UrgencyBand,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Tables
# =============================================================================

OVERALL_ACTIONS = {
    UrgencyBand.CRITICAL: "Medical emergency",
    UrgencyBand.HIGH: "Urgent care",
    UrgencyBand.MEDIUM: "Consultation within the next 24h",
    UrgencyBand.LOW: "Monitoring",
}

OVERALL_RECOMMENDATIONS = {
    UrgencyBand.CRITICAL: "Seek emergency medical care immediately",
    UrgencyBand.HIGH: "Seek urgent medical care within the next few hours",
    UrgencyBand.MEDIUM: "Schedule a medical appointment within 24-48 hours",
    UrgencyBand.LOW: "Monitoring and self-care",
}

# Facial expressions expected for each vocal emotion
EXPECTED_EXPRESSIONS = {
    EmotionalState.STRESS: ("anger", "fear"),
    EmotionalState.ANXIETY: ("fear", "sadness"),
    EmotionalState.SADNESS: ("sadness",),
    EmotionalState.EXCITEMENT: ("joy",),
    EmotionalState.NEUTRAL: ("joy",),
}

AROUSED_EMOTIONS = {EmotionalState.ANXIETY, EmotionalState.STRESS, EmotionalState.EXCITEMENT}
CALM_EMOTIONS = {EmotionalState.NEUTRAL, EmotionalState.SADNESS}

QUESTIONNAIRE_CONFIDENCE = 85.0
ELEVATED_STRESS = 5


def _is_number(value) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


# =============================================================================
# Engine
# =============================================================================

class CrossModalCorrelationEngine:
    """
    Builds a ConsolidatedAssessment from any subset of the three modalities.

    Output depends only on which results are present, never on the order
    in which they were supplied.
    """

    @property
    def engine_id(self) -> str:
        return "cross-modal-v1.0"

    def correlate(
        self,
        acoustic: Optional[AcousticAssessment] = None,
        facial: Optional[FacialBiometricResult] = None,
        symptoms: Optional[UrgencyAssessment] = None,
    ) -> ConsolidatedAssessment:
        return self.consolidate(ModalitySet(acoustic=acoustic, facial=facial, symptoms=symptoms))

    def correlate_results(self, results: Iterable[ModalityResult]) -> ConsolidatedAssessment:
        """
        Correlate an unordered collection of modality results.

        Raises:
            TypeError: an element is not a modality result
            ValueError: a modality appears twice
        """
        return self.consolidate(ModalitySet.from_results(results))

    def consolidate(self, modalities: ModalitySet) -> ConsolidatedAssessment:
        outliers: list[str] = []
        modalities = self._usable(modalities, outliers)
        acoustic, facial, symptoms = modalities.acoustic, modalities.facial, modalities.symptoms

        overall = self._overall_urgency(acoustic, facial, symptoms)
        measures = self._measures(acoustic, facial, symptoms)
        values = measures.available()

        if values:
            consistency = int(round(sum(values) / len(values) * 100))
        else:
            consistency = 50
        reliability = self._reliability(consistency, values)

        conflicts = self._conflicts(acoustic, facial, symptoms, measures)
        outliers.extend(self._outliers(acoustic, facial))
        risk_factors = self._risk_factors(acoustic, facial, conflicts)

        recommendations = [OVERALL_RECOMMENDATIONS[overall.band]]
        if reliability == Reliability.LOW:
            recommendations.append("Repeat the analysis for better accuracy")
        if risk_factors:
            recommendations.append("Share all findings with a clinician")

        assessment = ConsolidatedAssessment(
            overall_urgency=overall,
            consistency_score=max(0, min(100, consistency)),
            reliability=reliability,
            consensus=self._consensus(acoustic, facial, symptoms, measures, overall),
            conflicting_metrics=tuple(conflicts),
            outliers=tuple(outliers),
            confidence=self._confidence(acoustic, facial, symptoms),
            data_quality=self._data_quality(modalities.present_count),
            biometric_correlation=measures,
            combined_symptoms=self._combined_symptoms(acoustic, facial, symptoms),
            risk_factors=tuple(risk_factors),
            recommendations=tuple(recommendations),
        )

        log = logger.warning if overall.band in (UrgencyBand.HIGH, UrgencyBand.CRITICAL) else logger.info
        log(
            "Consolidated assessment: urgency=%s (%d), consistency=%d, reliability=%s, quality=%s",
            overall.band.value,
            overall.numeric_score,
            assessment.consistency_score,
            reliability.value,
            assessment.data_quality.value,
        )
        return assessment

    # -------------------------------------------------------------------------
    # Input handling
    # -------------------------------------------------------------------------

    @staticmethod
    def _usable(modalities: ModalitySet, outliers: list[str]) -> ModalitySet:
        facial = modalities.facial
        if facial is None:
            return modalities
        readable = (
            _is_number(facial.heart_rate)
            and _is_number(facial.stress_level)
            and _is_number(facial.confidence)
        )
        if readable:
            return modalities
        logger.warning("Facial telemetry has non-numeric readings, excluding it")
        outliers.append("Facial telemetry unreadable; excluded from the assessment")
        return ModalitySet(acoustic=modalities.acoustic, symptoms=modalities.symptoms)

    # -------------------------------------------------------------------------
    # Aggregates
    # -------------------------------------------------------------------------

    @staticmethod
    def _overall_urgency(
        acoustic: Optional[AcousticAssessment],
        facial: Optional[FacialBiometricResult],
        symptoms: Optional[UrgencyAssessment],
    ) -> OverallUrgency:
        score = symptoms.score if symptoms is not None else 0
        if acoustic is not None and acoustic.stress_level > 7:
            score += 3
        if facial is not None:
            if facial.stress_level > 7:
                score += 2
            if facial.heart_rate > 100:
                score += 2

        if score >= 8:
            band = UrgencyBand.CRITICAL
        elif score >= 5:
            band = UrgencyBand.HIGH
        elif score >= 2:
            band = UrgencyBand.MEDIUM
        else:
            band = UrgencyBand.LOW
        return OverallUrgency(band=band, numeric_score=int(score), action_text=OVERALL_ACTIONS[band])

    @staticmethod
    def _confidence(
        acoustic: Optional[AcousticAssessment],
        facial: Optional[FacialBiometricResult],
        symptoms: Optional[UrgencyAssessment],
    ) -> int:
        parts = []
        if acoustic is not None:
            parts.append(acoustic.confidence * 100)
        if facial is not None:
            parts.append(facial.normalized_confidence * 100)
        if symptoms is not None:
            parts.append(QUESTIONNAIRE_CONFIDENCE)
        if not parts:
            return 0
        return int(round(sum(parts) / len(parts)))

    @staticmethod
    def _data_quality(present: int) -> DataQuality:
        if present == 3:
            return DataQuality.COMPLETE
        if present == 2:
            return DataQuality.GOOD
        return DataQuality.PARTIAL

    # -------------------------------------------------------------------------
    # Cross-modal measures
    # -------------------------------------------------------------------------

    def _measures(
        self,
        acoustic: Optional[AcousticAssessment],
        facial: Optional[FacialBiometricResult],
        symptoms: Optional[UrgencyAssessment],
    ) -> BiometricCorrelation:
        stress = heart_rate = emotion = reported = None

        if acoustic is not None and facial is not None:
            voice_stress = acoustic.stress_level
            face_stress = min(facial.stress_level, 10)
            stress = max(0.0, 1 - abs(face_stress - voice_stress) / 10)
            heart_rate = max(0.0, 1 - abs(facial.heart_rate - (60 + 3 * voice_stress)) / 60)
            emotion = self._emotional_alignment(acoustic, facial)

        if symptoms is not None and (facial is not None or acoustic is not None):
            biometric_stress = (
                min(facial.stress_level, 10) if facial is not None else acoustic.stress_level
            )
            reported = max(0.0, 1 - abs(biometric_stress - symptoms.score / 10) / 10)

        return BiometricCorrelation(
            stress_correlation=stress,
            heart_rate_consistency=heart_rate,
            emotional_alignment=emotion,
            reported_urgency_agreement=reported,
        )

    @staticmethod
    def _emotional_alignment(acoustic: AcousticAssessment, facial: FacialBiometricResult) -> float:
        expressions = dict(facial.micro_expressions or {})
        if expressions:
            expected = EXPECTED_EXPRESSIONS.get(acoustic.emotional_state, ("joy",))
            total = sum(
                float(expressions[name]) for name in expected
                if _is_number(expressions.get(name))
            )
            return max(0.0, min(total, 1.0))

        elevated = facial.stress_level > 6 or facial.heart_rate > 100
        calm = facial.stress_level < 4 and facial.heart_rate < 90
        aroused_voice = acoustic.emotional_state in AROUSED_EMOTIONS
        calm_voice = acoustic.emotional_state in CALM_EMOTIONS

        if (aroused_voice and elevated) or (calm_voice and calm):
            return 1.0
        if (aroused_voice and calm) or (calm_voice and elevated):
            return 0.0
        return 0.6

    @staticmethod
    def _reliability(consistency: int, values: list[float]) -> Reliability:
        if not values:
            return Reliability.LOW
        weak = sum(1 for v in values if v < 0.5)
        if consistency >= 80 and weak == 0:
            return Reliability.HIGH
        if consistency < 60 or weak > len(values) / 2:
            return Reliability.LOW
        return Reliability.MEDIUM

    @staticmethod
    def _consensus(
        acoustic: Optional[AcousticAssessment],
        facial: Optional[FacialBiometricResult],
        symptoms: Optional[UrgencyAssessment],
        measures: BiometricCorrelation,
        overall: OverallUrgency,
    ) -> ConsensusIndicators:
        stress = (
            acoustic is not None
            and facial is not None
            and (acoustic.stress_level > ELEVATED_STRESS) == (facial.stress_level > ELEVATED_STRESS)
        )
        emotional = measures.emotional_alignment is not None and measures.emotional_alignment >= 0.4
        urgency = symptoms is not None and abs(symptoms.band.rank - overall.band.rank) <= 1
        return ConsensusIndicators(
            stress_consensus=stress,
            emotional_consensus=emotional,
            urgency_consensus=urgency,
        )

    # -------------------------------------------------------------------------
    # Advisory strings
    # -------------------------------------------------------------------------

    @staticmethod
    def _conflicts(
        acoustic: Optional[AcousticAssessment],
        facial: Optional[FacialBiometricResult],
        symptoms: Optional[UrgencyAssessment],
        measures: BiometricCorrelation,
    ) -> list[str]:
        conflicts = []
        if measures.stress_correlation is not None and measures.stress_correlation < 0.5:
            conflicts.append("Divergent stress levels between voice and face")
        if measures.heart_rate_consistency is not None and measures.heart_rate_consistency < 0.5:
            conflicts.append("Heart rate inconsistent with vocal stress")
        if measures.emotional_alignment is not None and measures.emotional_alignment < 0.4:
            conflicts.append("Conflicting emotional states between voice and face")
        if measures.reported_urgency_agreement is not None and measures.reported_urgency_agreement < 0.5:
            conflicts.append("Reported urgency disagrees with biometric stress")

        if acoustic is not None and facial is not None:
            if acoustic.stress_level <= 3 and facial.heart_rate > 100:
                conflicts.append("Voice indicates calm but facial heart rate is elevated")
            if acoustic.stress_level > 7 and facial.heart_rate < 70:
                conflicts.append("Voice indicates high stress but heart rate is low")
        if acoustic is not None and symptoms is not None:
            if acoustic.stress_level < 3 and symptoms.score > 70:
                conflicts.append("Calm voice contrasts with high reported urgency")
        if facial is not None and symptoms is not None:
            if facial.heart_rate < 75 and facial.stress_level < 4 and symptoms.score > 80:
                conflicts.append("Calm biometrics contrast with very high reported urgency")
        return conflicts

    @staticmethod
    def _outliers(
        acoustic: Optional[AcousticAssessment],
        facial: Optional[FacialBiometricResult],
    ) -> list[str]:
        outliers = []
        if facial is not None:
            hr = facial.heart_rate
            if hr > 180 or hr < 40:
                outliers.append(f"Physiologically implausible heart rate: {hr} bpm")
            elif hr > 120 or hr < 50:
                outliers.append(f"Abnormal heart rate: {hr} bpm")
            if facial.stress_level > 9:
                outliers.append("Extremely high facial stress level")
            if not 0 <= facial.stress_level <= 10:
                outliers.append(f"Facial stress level out of range: {facial.stress_level}")
            if facial.normalized_confidence < 0.3:
                outliers.append("Very low confidence in facial analysis")
        if acoustic is not None and acoustic.stress_level > 9:
            outliers.append("Extremely high vocal stress level")
        return outliers

    @staticmethod
    def _combined_symptoms(
        acoustic: Optional[AcousticAssessment],
        facial: Optional[FacialBiometricResult],
        symptoms: Optional[UrgencyAssessment],
    ) -> tuple[str, ...]:
        combined = list(symptoms.symptoms) if symptoms is not None else []
        if acoustic is not None and acoustic.emotional_state != EmotionalState.NEUTRAL:
            combined.append(f"vocal state: {acoustic.emotional_state.value}")
        if facial is not None and facial.stress_level > 5:
            combined.append("facial stress signs")
        return tuple(dict.fromkeys(combined))

    @staticmethod
    def _risk_factors(
        acoustic: Optional[AcousticAssessment],
        facial: Optional[FacialBiometricResult],
        conflicts: list[str],
    ) -> list[str]:
        risks = []
        if facial is not None and facial.heart_rate > 100:
            risks.append("Tachycardia detected (>100 bpm)")
        if acoustic is not None and acoustic.stress_level > 7:
            risks.append("Elevated vocal stress")
        if facial is not None and facial.stress_level > 7:
            risks.append("Elevated facial stress")
        if facial is not None and facial.thermal_state == "possible_fever":
            risks.append("Possible fever")
        if conflicts:
            risks.append("Conflicting data requires attention")
        return risks
