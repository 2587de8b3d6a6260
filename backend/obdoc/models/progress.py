"""
Progress Models - Query results for enrollment progress and API request bodies.
"""

from datetime import datetime, date
from typing import Optional, List, Dict, Any
from pydantic import Field

from .base import CamelModel
from .challenge import ChallengeStatus, HealthChecklist
from .record import DailyRecord, RecordType


class Achievement(CamelModel):
    id: str
    name: str
    description: str
    icon_url: str = ""
    unlocked_at: datetime


class Milestone(CamelModel):
    target: int  # streak length in days
    description: str
    reward: Optional[str] = None


class ChallengeProgress(CamelModel):
    """Progress snapshot of an enrollment."""
    customer_challenge_id: str
    status: ChallengeStatus
    current_progress: float
    completion_rate: float
    daily_records: List[DailyRecord] = Field(default_factory=list)
    weekly_trend: List[float] = Field(default_factory=list)
    current_streak: int = 0
    longest_streak: int = 0
    achievements: List[Achievement] = Field(default_factory=list)
    next_milestone: Optional[Milestone] = None
    metrics: Dict[str, Any] = Field(default_factory=dict)


class CostSummary(CamelModel):
    """AI spend against the configured ceilings."""
    daily: float
    monthly: float
    daily_limit: float
    monthly_limit: float
    remaining_daily: float
    remaining_monthly: float
    by_provider: Dict[str, float] = Field(default_factory=dict)


class ChallengeJoinRequest(CamelModel):
    challenge_id: str
    health_checklist: HealthChecklist
    doctor_id: Optional[str] = None
    start_date: Optional[date] = None


class ChallengeApprovalRequest(CamelModel):
    approved: bool
    doctor_notes: Optional[str] = None


class DailyRecordSubmission(CamelModel):
    record_type: RecordType
    record_data: Dict[str, Any]
    notes: Optional[str] = None
    record_date: Optional[date] = None


class RecordCorrectionRequest(CamelModel):
    record_data: Dict[str, Any]
    notes: Optional[str] = None


class CancelRequest(CamelModel):
    reason: Optional[str] = None
