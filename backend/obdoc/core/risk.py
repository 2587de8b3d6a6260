"""
Health Risk Evaluator.

Scores a patient's health checklist, and optionally one day's fasting report,
against configured risk criteria. Pure and deterministic: identical inputs give
identical verdicts, and nothing here mutates state. The lifecycle manager
decides what to do with a verdict.
"""

from dataclasses import dataclass
from typing import Optional, List, Dict, Any, Iterable, Tuple

from ..models import ChallengeType, DifficultyLevel, HealthChecklist, RiskAssessment

CALORIC_RESTRICTION_TYPES = frozenset({
    ChallengeType.DII_ANALYSIS,
    ChallengeType.INTERMITTENT_FASTING,
})


@dataclass(frozen=True)
class RiskCriteria:
    """Thresholds and watch lists used by the evaluator."""
    high_risk_conditions: Tuple[str, ...]
    high_risk_medications: Tuple[str, ...]
    risk_symptoms: Tuple[str, ...]
    age_young: int = 18
    age_elderly: int = 65
    bmi_underweight: float = 18.5
    min_condition_score: int = 3

    @classmethod
    def from_settings(cls, config: Any) -> "RiskCriteria":
        return cls(
            high_risk_conditions=tuple(config.high_risk_conditions),
            high_risk_medications=tuple(config.high_risk_medications),
            risk_symptoms=tuple(config.risk_symptoms),
            age_young=config.age_risk_young,
            age_elderly=config.age_risk_elderly,
            bmi_underweight=config.bmi_underweight,
            min_condition_score=config.min_condition_score,
        )


def calculate_bmi(weight_kg: Optional[float], height_cm: Optional[float]) -> Optional[float]:
    """
    Calculate BMI from weight (kg) and height (cm).

    Formula: BMI = weight_kg / (height_m)^2

    Returns:
        BMI rounded to 1 decimal place, or None if inputs are missing or invalid
    """
    if weight_kg is None or height_cm is None:
        return None
    if weight_kg <= 0 or height_cm <= 0:
        return None
    height_m = height_cm / 100.0
    return round(weight_kg / (height_m ** 2), 1)


def _match(value: str, watch_list: Iterable[str]) -> Optional[str]:
    """Return the watch-list term contained in value (case-insensitive)."""
    lowered = value.strip().lower()
    if not lowered:
        return None
    for term in watch_list:
        if term.lower() in lowered:
            return term
    return None


def evaluate_checklist(
    checklist: HealthChecklist,
    challenge_type: ChallengeType,
    difficulty: DifficultyLevel,
    criteria: RiskCriteria,
) -> List[str]:
    """Checklist-level risk reasons for a challenge of the given type and difficulty."""
    reasons: List[str] = []

    for condition in checklist.medical_conditions:
        term = _match(condition, criteria.high_risk_conditions)
        if term:
            reasons.append(f"high_risk_condition:{term}")

    for medication in checklist.medications:
        term = _match(medication, criteria.high_risk_medications)
        if term:
            reasons.append(f"high_risk_medication:{term}")

    age_at_risk = checklist.age < criteria.age_young or checklist.age > criteria.age_elderly
    if age_at_risk and difficulty == DifficultyLevel.HARD:
        reasons.append(f"age_risk_hard_challenge:{checklist.age}")

    if challenge_type in CALORIC_RESTRICTION_TYPES:
        bmi = calculate_bmi(checklist.weight, checklist.height)
        if bmi is not None and bmi < criteria.bmi_underweight:
            reasons.append(f"underweight_caloric_restriction:{bmi}")

    return reasons


def evaluate_fasting_day(record_data: Optional[Dict[str, Any]], criteria: RiskCriteria) -> List[str]:
    """Day-level risk reasons for a fasting status report."""
    if not record_data:
        return []

    reasons: List[str] = []
    score = record_data.get("condition_score")
    if score is not None and score <= criteria.min_condition_score:
        reasons.append(f"low_condition_score:{score}")

    for symptom in record_data.get("symptoms") or []:
        term = _match(symptom, criteria.risk_symptoms)
        if term:
            reasons.append(f"risk_symptom:{term}")

    return reasons


def evaluate_risk(
    checklist: HealthChecklist,
    challenge_type: ChallengeType,
    difficulty: DifficultyLevel,
    criteria: RiskCriteria,
    record_data: Optional[Dict[str, Any]] = None,
) -> RiskAssessment:
    """
    Evaluate the full risk picture for an enrollment.

    Args:
        checklist: Health checklist snapshot of the enrollment
        challenge_type: Type of the challenge
        difficulty: Difficulty of the challenge
        criteria: Risk criteria
        record_data: Optional normalized payload of the day's record

    Returns:
        RiskAssessment with every triggered reason
    """
    reasons = evaluate_checklist(checklist, challenge_type, difficulty, criteria)
    if challenge_type == ChallengeType.INTERMITTENT_FASTING:
        reasons.extend(evaluate_fasting_day(record_data, criteria))
    return RiskAssessment(is_high_risk=bool(reasons), triggered_reasons=reasons)
