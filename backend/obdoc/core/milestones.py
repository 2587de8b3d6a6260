"""
Achievement/Milestone Tracker - streaks of goal-met days.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional, List, Iterable

from ..models import ChallengeType


@dataclass(frozen=True)
class MilestoneDefinition:
    days: int
    name: str
    description: str


# Streak milestones with names
MILESTONE_NAMES = {
    ChallengeType.WATER_INTAKE: {
        3: ("First Step", "Daily water target met 3 days in a row"),
        7: ("Weekly Champion", "Daily water target met 7 days in a row"),
        14: ("Two-Week Master", "Daily water target met 14 days in a row"),
        30: ("Hydration Expert", "Daily water target met for 30 days"),
    },
    ChallengeType.COLORFUL_DIET: {
        5: ("Rainbow Beginner", "All colors eaten 5 days in a row"),
        10: ("Color Master", "All colors eaten 10 days in a row"),
        21: ("Balanced Nutrition Champion", "All colors eaten 21 days in a row"),
        30: ("Colorful Expert", "All colors eaten for 30 days"),
    },
}


def milestone_definition(challenge_type: ChallengeType, days: int) -> MilestoneDefinition:
    name, description = MILESTONE_NAMES.get(challenge_type, {}).get(
        days, (f"{days}-Day Streak", f"Daily goal met {days} days in a row")
    )
    return MilestoneDefinition(days=days, name=name, description=description)


def current_streak(met_dates: Iterable[date], as_of: date) -> int:
    """
    Consecutive goal-met days ending on as_of.

    A day without a met record yet does not break the streak on that same
    day, so counting starts from the day before as_of in that case.
    """
    met = set(met_dates)
    day = as_of if as_of in met else as_of - timedelta(days=1)
    streak = 0
    while day in met:
        streak += 1
        day -= timedelta(days=1)
    return streak


def longest_streak(met_dates: Iterable[date]) -> int:
    longest = 0
    run = 0
    previous: Optional[date] = None
    for day in sorted(set(met_dates)):
        if previous is not None and day - previous == timedelta(days=1):
            run += 1
        else:
            run = 1
        longest = max(longest, run)
        previous = day
    return longest


def newly_unlocked(streak: int, thresholds: Iterable[int], unlocked: Iterable[int]) -> List[int]:
    """Thresholds crossed by streak that have not been unlocked before."""
    already = set(unlocked)
    return sorted(t for t in set(thresholds) if t <= streak and t not in already)


def next_milestone(thresholds: Iterable[int], unlocked: Iterable[int]) -> Optional[int]:
    already = set(unlocked)
    remaining = sorted(t for t in set(thresholds) if t not in already)
    return remaining[0] if remaining else None
