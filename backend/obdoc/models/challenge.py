"""
Challenge Models - Catalog entries, health checklists and enrollments.
"""

from datetime import datetime, date, timezone
from enum import Enum
from typing import Optional, List, Dict, Any
from pydantic import Field

from .base import CamelModel


class ChallengeType(str, Enum):
    WATER_INTAKE = "water_intake"
    COLORFUL_DIET = "colorful_diet"
    DII_ANALYSIS = "dii_analysis"
    INTERMITTENT_FASTING = "intermittent_fasting"


class DifficultyLevel(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class ChallengeStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ChallengeStatus.COMPLETED, ChallengeStatus.CANCELLED, ChallengeStatus.FAILED)


class ExerciseLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Challenge(CamelModel):
    """Challenge catalog entry. Seeded once, never mutated by the engine."""
    id: str
    name: str
    type: ChallengeType
    description: str = ""
    duration_days: int = Field(..., gt=0)
    requires_doctor_approval: bool = False
    difficulty_level: DifficultyLevel = DifficultyLevel.EASY
    target_metrics: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True


class HealthChecklist(CamelModel):
    """Health snapshot captured at enrollment time."""
    age: int = Field(..., ge=0, le=130)
    weight: float = Field(..., gt=0)  # kg
    height: float = Field(..., gt=0)  # cm
    medical_conditions: List[str] = Field(default_factory=list)
    medications: List[str] = Field(default_factory=list)
    allergies: List[str] = Field(default_factory=list)
    exercise_level: ExerciseLevel = ExerciseLevel.LOW
    dietary_restrictions: List[str] = Field(default_factory=list)
    previous_challenge_experience: bool = False
    additional_notes: Optional[str] = None

    class Config:
        frozen = True


class RiskAssessment(CamelModel):
    """Verdict of the health risk evaluator."""
    is_high_risk: bool = False
    triggered_reasons: List[str] = Field(default_factory=list)


class UnlockedMilestone(CamelModel):
    """A streak milestone reached by an enrollment."""
    days: int
    name: str
    description: str = ""
    unlocked_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CustomerChallenge(CamelModel):
    """One patient's enrollment in one challenge (aggregate root)."""
    id: str
    customer_id: str
    challenge_id: str
    doctor_id: Optional[str] = None
    status: ChallengeStatus = ChallengeStatus.PENDING
    start_date: date
    end_date: date  # exclusive: start_date + duration_days
    target_value: float = 0.0
    current_progress: float = 0.0
    completion_rate: float = 0.0
    health_checklist: HealthChecklist
    doctor_notes: Optional[str] = None
    approved_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    unlocked_milestones: List[UnlockedMilestone] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def accepts_date(self, record_date: date) -> bool:
        """Whether a record dated record_date falls inside the challenge window."""
        return self.start_date <= record_date < self.end_date

    @property
    def unlocked_days(self) -> List[int]:
        return [m.days for m in self.unlocked_milestones]
