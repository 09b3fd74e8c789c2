"""
BioTriage - Symptom Urgency Scorer

Rule-based scoring of the structured symptom questionnaire.

Every weight and cut point lives in a ScoringRuleset so that the scorer
itself holds no numbers. Two rulesets ship:
    - STANDARD_RULESET: questionnaire weights (default)
    - STRICT_RULESET: heavier respiratory/cardiac weights, lower cut points

Questionnaire keys (answers are Portuguese option labels as captured):
    breathing, chest_pain, fever_check, chronic_conditions: "Sim" / "Não"
    pain_intensity: 0-10 (int or numeric string)
    symptom_duration: "Menos de 1 hora", "Algumas horas", "Menos de 1 dia", ...
    associated_symptoms: option label or list of labels
    main_symptom, medications: free text

Safety Notes:
    - Breathing difficulty together with chest pain always scores 100
    - Missing answers are neutral; they never raise
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional

from biotriage.core.exceptions import (
    ConfigurationError,
    InvalidAnswerError,
    MalformedAnswerError,
)
from biotriage.core.types import SymptomAnswers, UrgencyAssessment, UrgencyBand

logger = logging.getLogger(__name__)


# =============================================================================
# Rulesets
# =============================================================================

@dataclass(frozen=True)
class ScoringRuleset:
    """
    Weights and band thresholds for questionnaire scoring.

    Attributes:
        name: Ruleset identifier ("standard", "strict")
        breathing_weight: Added when breathing difficulty is reported
        chest_pain_weight: Added when chest pain is reported
        fever_weight: Added when fever is reported
        pain_tiers: (minimum pain level, weight), highest tier first
        duration_bonuses: (duration label, score must exceed, weight)
        associated_bonuses: (associated symptom label, weight)
        critical_threshold / high_threshold / medium_threshold: band cut points
    """
    name: str
    breathing_weight: int
    chest_pain_weight: int
    fever_weight: int
    pain_tiers: tuple[tuple[int, int], ...]
    duration_bonuses: tuple[tuple[str, int, int], ...]
    associated_bonuses: tuple[tuple[str, int], ...]
    critical_threshold: int
    high_threshold: int
    medium_threshold: int


_DURATION_BONUSES = (
    ("Menos de 1 hora", 20, 15),
    ("Menos de 1 dia", 20, 10),
    ("Algumas horas", 15, 10),
)

_ASSOCIATED_BONUSES = (
    ("Sudorese excessiva", 10),
    ("Tontura/Desmaio", 10),
    ("Dor de cabeça intensa", 8),
)

STANDARD_RULESET = ScoringRuleset(
    name="standard",
    breathing_weight=30,
    chest_pain_weight=25,
    fever_weight=15,
    pain_tiers=((8, 20), (6, 10), (4, 5)),
    duration_bonuses=_DURATION_BONUSES,
    associated_bonuses=_ASSOCIATED_BONUSES,
    critical_threshold=70,
    high_threshold=50,
    medium_threshold=30,
)

STRICT_RULESET = ScoringRuleset(
    name="strict",
    breathing_weight=50,
    chest_pain_weight=40,
    fever_weight=20,
    pain_tiers=((8, 25), (6, 15), (4, 10)),
    duration_bonuses=_DURATION_BONUSES,
    associated_bonuses=_ASSOCIATED_BONUSES,
    critical_threshold=70,
    high_threshold=40,
    medium_threshold=25,
)

RULESETS = {
    STANDARD_RULESET.name: STANDARD_RULESET,
    STRICT_RULESET.name: STRICT_RULESET,
}


def get_ruleset(name: str) -> ScoringRuleset:
    """Look up a shipped ruleset by name."""
    try:
        return RULESETS[name.lower()]
    except KeyError:
        raise ConfigurationError(
            f"Unknown symptom ruleset: {name}",
            details={"available": sorted(RULESETS)},
        ) from None


def urgency_band(score: int, ruleset: ScoringRuleset = STANDARD_RULESET) -> UrgencyBand:
    """Map a 0-100 score to its band."""
    if score >= ruleset.critical_threshold:
        return UrgencyBand.CRITICAL
    if score >= ruleset.high_threshold:
        return UrgencyBand.HIGH
    if score >= ruleset.medium_threshold:
        return UrgencyBand.MEDIUM
    return UrgencyBand.LOW


# =============================================================================
# Recommendations
# =============================================================================

BAND_RECOMMENDATIONS = {
    UrgencyBand.CRITICAL: (
        "Seek emergency medical care immediately",
        "Consider calling an ambulance (SAMU 192) if needed",
        "Go to the nearest emergency room",
    ),
    UrgencyBand.HIGH: (
        "Seek urgent medical care within the next 2-4 hours",
        "Go to an urgent care unit or emergency room",
    ),
    UrgencyBand.MEDIUM: (
        "Schedule a medical appointment within 24-48 hours",
        "Monitor your symptoms and seek help if they worsen",
    ),
    UrgencyBand.LOW: (
        "Consider a routine medical visit",
        "Keep up basic self-care",
    ),
}

BREATHING_RECOMMENDATION = "Stay in a comfortable position for breathing"
MEDICATION_RECOMMENDATION = "Bring your medication list to the appointment"
CHRONIC_RECOMMENDATION = "Report your medical history and chronic conditions"

_YES_ANSWERS = {"sim", "yes", "true", "s", "y"}
_TRIVIAL_MEDICATIONS = {
    "", "não", "nao", "none", "no",
    "não tomo medicamentos", "prefiro não informar",
}


# =============================================================================
# Scorer
# =============================================================================

def is_yes(value: Any) -> bool:
    """Case-insensitive yes test ("Sim", "sim", "yes", True)."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in _YES_ANSWERS
    return False


def parse_pain(value: Any) -> int:
    """
    Parse the 0-10 pain scale.

    Missing or blank answers are 0.

    Raises:
        MalformedAnswerError: the answer is present but not a finite number
    """
    if value is None:
        return 0
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        try:
            value = float(text.replace(",", "."))
        except ValueError:
            raise MalformedAnswerError(
                "pain_intensity must be numeric",
                details={"field": "pain_intensity"},
            ) from None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedAnswerError(
            "pain_intensity must be numeric",
            details={"field": "pain_intensity"},
        )
    if isinstance(value, float) and not math.isfinite(value):
        raise MalformedAnswerError(
            "pain_intensity must be a finite number",
            details={"field": "pain_intensity"},
        )
    return int(value)


class SymptomUrgencyScorer:
    """
    Scores a completed questionnaire against an injected ruleset.

    Scoring order:
    1. Breathing difficulty + chest pain -> 100 (critical override)
    2. Otherwise add the weighted answers, pain tier, duration bonus
       (compared against the running score) and associated symptoms
    3. Clamp to 0-100 and map to a band
    """

    def __init__(self, ruleset: ScoringRuleset = STANDARD_RULESET):
        self._ruleset = ruleset

    @property
    def ruleset(self) -> ScoringRuleset:
        return self._ruleset

    @property
    def scorer_id(self) -> str:
        return f"symptom-rules-{self._ruleset.name}-v1.0"

    def score(self, answers: SymptomAnswers) -> UrgencyAssessment:
        """
        Score one questionnaire.

        Raises:
            InvalidAnswerError: answers is not a mapping
        """
        if not isinstance(answers, Mapping):
            raise InvalidAnswerError(
                "Questionnaire answers must be a mapping",
                details={"type": type(answers).__name__},
            )

        malformed = []
        try:
            pain = parse_pain(answers.get("pain_intensity"))
        except MalformedAnswerError as e:
            logger.warning("Recovered malformed answer: %s (%s)", e.details.get("field"), e.message)
            malformed.append("pain_intensity")
            pain = 0

        breathing = is_yes(answers.get("breathing"))
        chest_pain = is_yes(answers.get("chest_pain"))

        if breathing and chest_pain:
            score = 100
        else:
            score = self._accumulate(answers, pain, breathing, chest_pain)

        band = urgency_band(score, self._ruleset)
        assessment = UrgencyAssessment(
            score=score,
            band=band,
            symptoms=self._symptoms(answers, pain, breathing, chest_pain),
            recommendations=self._recommendations(answers, band, breathing),
            malformed_fields=tuple(malformed),
        )

        if band in (UrgencyBand.HIGH, UrgencyBand.CRITICAL):
            logger.warning(
                "High urgency questionnaire: score=%d, band=%s, ruleset=%s",
                score, band.value, self._ruleset.name,
            )
        else:
            logger.debug(
                "Questionnaire scored: score=%d, band=%s, ruleset=%s",
                score, band.value, self._ruleset.name,
            )
        return assessment

    def _accumulate(
        self,
        answers: SymptomAnswers,
        pain: int,
        breathing: bool,
        chest_pain: bool,
    ) -> int:
        rules = self._ruleset
        score = 0
        if breathing:
            score += rules.breathing_weight
        if chest_pain:
            score += rules.chest_pain_weight
        if is_yes(answers.get("fever_check")):
            score += rules.fever_weight

        for minimum, weight in rules.pain_tiers:
            if pain >= minimum:
                score += weight
                break

        duration = answers.get("symptom_duration")
        for label, must_exceed, weight in rules.duration_bonuses:
            if duration == label and score > must_exceed:
                score += weight

        associated = answers.get("associated_symptoms")
        for label, weight in rules.associated_bonuses:
            if _mentions(associated, label):
                score += weight

        return max(0, min(100, score))

    @staticmethod
    def _symptoms(
        answers: SymptomAnswers,
        pain: int,
        breathing: bool,
        chest_pain: bool,
    ) -> tuple[str, ...]:
        symptoms = []
        main = answers.get("main_symptom")
        if isinstance(main, str) and main.strip():
            symptoms.append(main.strip())
        if breathing:
            symptoms.append("respiratory difficulty")
        if chest_pain:
            symptoms.append("chest pain")
        if is_yes(answers.get("fever_check")):
            symptoms.append("fever")
        if pain > 0:
            symptoms.append(f"pain level {pain}/10")
        return tuple(dict.fromkeys(symptoms))

    @staticmethod
    def _recommendations(
        answers: SymptomAnswers,
        band: UrgencyBand,
        breathing: bool,
    ) -> tuple[str, ...]:
        recommendations = list(BAND_RECOMMENDATIONS[band])
        if breathing:
            recommendations.append(BREATHING_RECOMMENDATION)
        if _has_medications(answers.get("medications")):
            recommendations.append(MEDICATION_RECOMMENDATION)
        if is_yes(answers.get("chronic_conditions")):
            recommendations.append(CHRONIC_RECOMMENDATION)
        return tuple(recommendations)


def _mentions(associated: Any, label: str) -> bool:
    if isinstance(associated, str):
        return label in associated
    if isinstance(associated, (list, tuple, set, frozenset)):
        return label in associated
    return False


def _has_medications(value: Optional[Any]) -> bool:
    if value is None:
        return False
    if isinstance(value, (list, tuple)):
        return any(_has_medications(v) for v in value)
    return str(value).strip().lower() not in _TRIVIAL_MEDICATIONS
