"""
Daily Record Models - Records, AI analyses and record payloads.
"""

from datetime import datetime, date, timezone
from enum import Enum
from typing import Optional, List, Dict, Any, Iterable, Union
from pydantic import Field, field_validator, model_validator

from .base import CamelModel
from .challenge import ChallengeStatus, RiskAssessment, UnlockedMilestone


class RecordType(str, Enum):
    WATER_INTAKE = "water_intake"
    FOOD_LOG = "food_log"
    COLOR_CHECKLIST = "color_checklist"
    FASTING_STATUS = "fasting_status"


class AIProviderName(str, Enum):
    OPENAI = "openai"
    CLAUDE = "claude"
    GOOGLE = "google"


class AIAnalysisType(str, Enum):
    FOOD_RECOGNITION = "food_recognition"
    DII_CALCULATION = "dii_calculation"
    HEALTH_ASSESSMENT = "health_assessment"
    RISK_DETECTION = "risk_detection"


class AIStatus(str, Enum):
    """Outcome of the AI annotation step of a submission."""
    ANNOTATED = "annotated"
    LOW_CONFIDENCE = "low_confidence"
    UNAVAILABLE = "unavailable"
    COST_LIMITED = "cost_limited"
    SKIPPED = "skipped"
    PENDING = "pending"


class AIAnalysis(CamelModel):
    """Structured AI annotation attached to a daily record."""
    provider: str
    analysis_type: AIAnalysisType
    result: Dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(..., ge=0.0, le=1.0)
    processing_time: float = 0.0  # ms
    cost: Optional[float] = None  # USD, None when the provider does not report one
    low_confidence: bool = False


class DailyRecord(CamelModel):
    """One day's submission for an enrollment. Append-only."""
    id: str
    customer_challenge_id: str
    record_date: date
    record_type: RecordType
    record_data: Dict[str, Any] = Field(default_factory=dict)
    ai_analysis: Optional[AIAnalysis] = None
    progress_value: float = 0.0
    notes: Optional[str] = None
    supersedes_id: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def key(self) -> tuple:
        return (self.customer_challenge_id, self.record_date, self.record_type)


def _correction_depth(record: DailyRecord, by_id: Dict[str, DailyRecord]) -> int:
    """Number of records in the supersedes chain below this one."""
    depth = 0
    seen = set()
    while record.supersedes_id and record.id not in seen:
        seen.add(record.id)
        depth += 1
        record = by_id.get(record.supersedes_id)
        if record is None:
            break
    return depth


def order_records(records: Iterable[DailyRecord]) -> List[DailyRecord]:
    """
    Order records by date, then creation time.

    On a creation-time tie a correction sorts after the record it supersedes,
    so the last record of a (date, type) key is always the effective one.
    """
    records = list(records)
    by_id = {r.id: r for r in records}
    return sorted(records, key=lambda r: (r.record_date, r.created_at, _correction_depth(r, by_id)))


class SubmissionResult(CamelModel):
    """Result of a record submission: the write plus auxiliary metadata."""
    record: DailyRecord
    enrollment_status: ChallengeStatus
    completion_rate: float
    current_progress: float
    risk: RiskAssessment
    ai_status: AIStatus = AIStatus.SKIPPED
    ai_message: Optional[str] = None
    requires_review: bool = False
    unlocked_milestones: List[UnlockedMilestone] = Field(default_factory=list)


# Record payloads. Both camelCase and snake_case keys are accepted.

COLOR_CATEGORIES = ("red", "yellow", "green", "purple", "white")
MEAL_SLOTS = ("breakfast", "lunch", "dinner", "snacks")


class WaterIntakeEntry(CamelModel):
    amount_ml: float
    time: Optional[str] = None


class WaterIntakeData(CamelModel):
    """Either a single intake (amountMl) or a list of intakes."""
    amount_ml: Optional[float] = None
    time: Optional[str] = None
    intakes: List[WaterIntakeEntry] = Field(default_factory=list)

    @model_validator(mode="after")
    def _collect_intakes(self) -> "WaterIntakeData":
        if self.amount_ml is not None:
            self.intakes = [WaterIntakeEntry(amount_ml=self.amount_ml, time=self.time)] + self.intakes
            self.amount_ml = None
        if not self.intakes:
            raise ValueError("at least one water intake amount is required")
        return self

    @property
    def total_ml(self) -> float:
        return sum(entry.amount_ml for entry in self.intakes)


class ColorChecklistData(CamelModel):
    """Colors eaten today, as a list of names or a color -> foods mapping."""
    colors: Union[List[str], Dict[str, List[str]]]

    @field_validator("colors")
    @classmethod
    def _known_colors(cls, value):
        names = value if isinstance(value, list) else list(value.keys())
        unknown = [name for name in names if name.lower() not in COLOR_CATEGORIES]
        if unknown:
            raise ValueError(f"unknown color categories: {', '.join(unknown)}")
        return value

    @property
    def covered(self) -> List[str]:
        if isinstance(self.colors, list):
            names = self.colors
        else:
            names = [color for color, foods in self.colors.items() if foods]
        return sorted({name.lower() for name in names})

    @property
    def foods(self) -> Dict[str, List[str]]:
        if isinstance(self.colors, dict):
            return {color.lower(): list(foods) for color, foods in self.colors.items() if foods}
        return {}


class FoodItem(CamelModel):
    name: str
    amount: float = 1.0
    unit: str = "serving"
    calories: Optional[float] = None
    dii_score: Optional[float] = Field(default=None, alias="diiScore")
    nutrients: Optional[Dict[str, float]] = None


class FoodLogData(CamelModel):
    """Meals of the day with a computed (or computable) daily DII."""
    daily_dii: Optional[float] = Field(default=None, alias="dailyDII")
    meals: Dict[str, List[FoodItem]] = Field(default_factory=dict)

    @field_validator("meals")
    @classmethod
    def _known_meals(cls, value):
        unknown = [slot for slot in value if slot not in MEAL_SLOTS]
        if unknown:
            raise ValueError(f"unknown meal slots: {', '.join(unknown)}")
        return value

    @model_validator(mode="after")
    def _resolve_dii(self) -> "FoodLogData":
        if self.daily_dii is None:
            scores = [
                item.dii_score
                for items in self.meals.values()
                for item in items
                if item.dii_score is not None
            ]
            if not scores:
                raise ValueError("dailyDII is required when meals carry no diiScore")
            self.daily_dii = round(sum(scores), 3)
        return self


class FastingStatusData(CamelModel):
    fasting_duration: float = Field(..., ge=0, le=48)  # hours
    condition_score: int = Field(..., ge=1, le=10)
    symptoms: List[str] = Field(default_factory=list)
    fasting_start_time: Optional[str] = None
    fasting_end_time: Optional[str] = None
