"""
Default challenge catalog seeding.
"""

from typing import List

from ..models import Challenge, ChallengeType, DifficultyLevel


def default_challenges() -> List[Challenge]:
    """The four standard challenges, one per challenge type."""
    return [
        Challenge(
            id="water-2l",
            name="Drink 2L of Water",
            type=ChallengeType.WATER_INTAKE,
            description="Drink at least 2 liters of water every day.",
            duration_days=30,
            requires_doctor_approval=False,
            difficulty_level=DifficultyLevel.EASY,
            target_metrics={"dailyTarget": 2000, "intervals": 8, "intervalAmount": 250},
        ),
        Challenge(
            id="colorful-diet",
            name="Colorful Diet",
            type=ChallengeType.COLORFUL_DIET,
            description="Eat foods of all five colors every day.",
            duration_days=30,
            requires_doctor_approval=False,
            difficulty_level=DifficultyLevel.MEDIUM,
            target_metrics={"requiredColors": 5, "bonusMultiplier": 1.5},
        ),
        Challenge(
            id="dii-diet",
            name="Anti-Inflammatory Diet (DII)",
            type=ChallengeType.DII_ANALYSIS,
            description="Lower your daily Dietary Inflammatory Index toward -2.0.",
            duration_days=28,
            requires_doctor_approval=True,
            difficulty_level=DifficultyLevel.MEDIUM,
            target_metrics={"targetDII": -2.0},
        ),
        Challenge(
            id="fasting-16-8",
            name="Intermittent Fasting 16:8",
            type=ChallengeType.INTERMITTENT_FASTING,
            description="Fast for 16 hours with an 8-hour eating window.",
            duration_days=21,
            requires_doctor_approval=True,
            difficulty_level=DifficultyLevel.HARD,
            target_metrics={"fastingHours": 16, "eatingWindow": 8},
        ),
    ]
