"""
Progress Calculator - per challenge type strategies.

Every strategy recomputes from the full record set of an enrollment. There are
no incremental counters, so recomputing after a late or corrected submission
always gives the same answer as a fresh calculation.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional, List, Dict, Any, Iterable, Callable

from ..models import Challenge, ChallengeType, DailyRecord, RecordType, COLOR_CATEGORIES, order_records
from .risk import RiskCriteria, evaluate_fasting_day

DEFAULT_TARGETS = {
    ChallengeType.WATER_INTAKE: {"dailyTarget": 2000.0},
    ChallengeType.COLORFUL_DIET: {"requiredColors": 5, "bonusMultiplier": 1.5},
    ChallengeType.DII_ANALYSIS: {"targetDII": -2.0},
    ChallengeType.INTERMITTENT_FASTING: {"fastingHours": 16.0, "eatingWindow": 8.0},
}

RECORD_TYPES = {
    ChallengeType.WATER_INTAKE: RecordType.WATER_INTAKE,
    ChallengeType.COLORFUL_DIET: RecordType.COLOR_CHECKLIST,
    ChallengeType.DII_ANALYSIS: RecordType.FOOD_LOG,
    ChallengeType.INTERMITTENT_FASTING: RecordType.FASTING_STATUS,
}

PRIMARY_TARGET_KEY = {
    ChallengeType.WATER_INTAKE: "dailyTarget",
    ChallengeType.COLORFUL_DIET: "requiredColors",
    ChallengeType.DII_ANALYSIS: "targetDII",
    ChallengeType.INTERMITTENT_FASTING: "fastingHours",
}


@dataclass
class ProgressResult:
    """Output of a progress strategy."""
    current_progress: float
    completion_rate: float
    goal_met_dates: List[date] = field(default_factory=list)
    daily_values: Dict[date, float] = field(default_factory=dict)
    metrics: Dict[str, Any] = field(default_factory=dict)


def target_metric(challenge: Challenge, key: str) -> Any:
    """Read a target metric, falling back to the type default."""
    if key in challenge.target_metrics:
        return challenge.target_metrics[key]
    return DEFAULT_TARGETS[challenge.type].get(key)


def primary_target(challenge: Challenge) -> float:
    return float(target_metric(challenge, PRIMARY_TARGET_KEY[challenge.type]))


def effective_records(records: Iterable[DailyRecord]) -> List[DailyRecord]:
    """
    Resolve corrections and order records ascending by date.

    When several records share a (date, type) key, the latest by creation time
    wins; on a tie the correction wins over the record it supersedes.
    """
    latest: Dict[tuple, DailyRecord] = {}
    for record in order_records(records):
        latest[(record.record_date, record.record_type)] = record
    return sorted(latest.values(), key=lambda r: (r.record_date, r.created_at))


def _rate(days: int, duration_days: int) -> float:
    return round(min(100.0, max(0.0, days / duration_days * 100.0)), 2)


def _as_of(values: Dict[date, float], as_of: Optional[date]) -> Optional[date]:
    if as_of is not None:
        return as_of
    return max(values) if values else None


def _water_intake(records, challenge, criteria, as_of) -> ProgressResult:
    daily_target = float(target_metric(challenge, "dailyTarget"))
    totals: Dict[date, float] = defaultdict(float)
    for record in records:
        totals[record.record_date] += float(record.record_data.get("total_ml", 0.0))

    met = [day for day in sorted(totals) if totals[day] >= daily_target]
    day = _as_of(totals, as_of)
    return ProgressResult(
        current_progress=totals.get(day, 0.0) if day else 0.0,
        completion_rate=_rate(len(met), challenge.duration_days),
        goal_met_dates=met,
        daily_values=dict(totals),
        metrics={"daily_target": daily_target},
    )


def _colorful_diet(records, challenge, criteria, as_of) -> ProgressResult:
    required = int(target_metric(challenge, "requiredColors"))
    bonus = float(target_metric(challenge, "bonusMultiplier"))
    covered: Dict[date, set] = defaultdict(set)
    for record in records:
        covered[record.record_date].update(record.record_data.get("colors", []))

    counts = {day: float(len(colors)) for day, colors in covered.items()}
    met = [day for day in sorted(counts) if counts[day] >= required]
    rainbow_days = [day for day in sorted(covered) if covered[day] >= set(COLOR_CATEGORIES)]

    # Rainbow bonus applies to the score, never to the completion rate
    score = sum(
        count * (bonus if day in rainbow_days else 1.0)
        for day, count in counts.items()
    )
    day = _as_of(counts, as_of)
    return ProgressResult(
        current_progress=counts.get(day, 0.0) if day else 0.0,
        completion_rate=_rate(len(met), challenge.duration_days),
        goal_met_dates=met,
        daily_values=counts,
        metrics={"score": round(score, 2), "rainbow_days": len(rainbow_days)},
    )


def _dii_analysis(records, challenge, criteria, as_of) -> ProgressResult:
    target = float(target_metric(challenge, "targetDII"))
    scores = [float(r.record_data["daily_dii"]) for r in records if "daily_dii" in r.record_data]

    per_day: Dict[date, List[float]] = defaultdict(list)
    for record in records:
        if "daily_dii" in record.record_data:
            per_day[record.record_date].append(float(record.record_data["daily_dii"]))
    daily = {day: round(sum(v) / len(v), 3) for day, v in per_day.items()}
    met = [day for day in sorted(daily) if daily[day] <= target]

    if not scores:
        return ProgressResult(current_progress=0.0, completion_rate=0.0, metrics={"target_dii": target})

    average = sum(scores) / len(scores)
    baseline = challenge.target_metrics.get("initialDII", scores[0])
    baseline = float(baseline)

    if baseline <= target:
        rate = 100.0 if average <= target else 0.0
    else:
        rate = (baseline - average) / (baseline - target) * 100.0
    rate = round(min(100.0, max(0.0, rate)), 2)

    return ProgressResult(
        current_progress=round(average, 3),
        completion_rate=rate,
        goal_met_dates=met,
        daily_values=daily,
        metrics={"target_dii": target, "baseline_dii": baseline},
    )


def _intermittent_fasting(records, challenge, criteria, as_of) -> ProgressResult:
    fasting_hours = float(target_metric(challenge, "fastingHours"))
    durations: Dict[date, float] = {}
    met = []
    risky = []
    for record in records:
        data = record.record_data
        duration = float(data.get("fasting_duration", 0.0))
        durations[record.record_date] = duration
        # Risk override: a flagged day never counts, whatever the duration
        if evaluate_fasting_day(data, criteria):
            risky.append(record.record_date)
            continue
        if duration >= fasting_hours:
            met.append(record.record_date)

    met = sorted(set(met))
    return ProgressResult(
        current_progress=float(len(met)),
        completion_rate=_rate(len(met), challenge.duration_days),
        goal_met_dates=met,
        daily_values=durations,
        metrics={"fasting_hours": fasting_hours, "risk_days": len(set(risky))},
    )


STRATEGIES: Dict[ChallengeType, Callable[..., ProgressResult]] = {
    ChallengeType.WATER_INTAKE: _water_intake,
    ChallengeType.COLORFUL_DIET: _colorful_diet,
    ChallengeType.DII_ANALYSIS: _dii_analysis,
    ChallengeType.INTERMITTENT_FASTING: _intermittent_fasting,
}


def calculate_progress(
    records: Iterable[DailyRecord],
    challenge: Challenge,
    criteria: RiskCriteria,
    as_of: Optional[date] = None,
) -> ProgressResult:
    """
    Calculate progress for an enrollment.

    Args:
        records: All records of the enrollment, in any order
        challenge: The challenge being tracked
        criteria: Risk criteria (used by the fasting risk override)
        as_of: Day whose value is reported as current progress; defaults to the
            latest record date

    Returns:
        ProgressResult
    """
    strategy = STRATEGIES[challenge.type]
    return strategy(effective_records(records), challenge, criteria, as_of)


def max_achievable_rate(
    result: ProgressResult,
    challenge: Challenge,
    start_date: date,
    end_date: date,
    today: date,
) -> Optional[float]:
    """
    Highest completion rate still reachable by end_date.

    Assumes every remaining day from today (inclusive) will be met. Returns
    None for DII challenges, whose average can always still move.
    """
    if challenge.type == ChallengeType.DII_ANALYSIS:
        return None

    met = set(result.goal_met_dates)
    day = max(today, start_date)
    remaining = 0
    while day < end_date:
        if day not in met:
            remaining += 1
        day += timedelta(days=1)
    return _rate(len(met) + remaining, challenge.duration_days)
