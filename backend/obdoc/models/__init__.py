"""Models module."""

from .challenge import (
    Challenge, ChallengeType, ChallengeStatus, DifficultyLevel, ExerciseLevel,
    HealthChecklist, CustomerChallenge, RiskAssessment, UnlockedMilestone,
)
from .record import (
    RecordType, AIProviderName, AIAnalysisType, AIStatus, AIAnalysis, DailyRecord,
    SubmissionResult, COLOR_CATEGORIES, order_records,
)
from .notification import (
    ChallengeNotification, NotificationType, NotificationPriority, RecipientType,
)
from .user import UserRole, TokenData, CurrentUser
from .progress import (
    Achievement, Milestone, ChallengeProgress, CostSummary, ChallengeJoinRequest,
    ChallengeApprovalRequest, DailyRecordSubmission, RecordCorrectionRequest, CancelRequest,
)

__all__ = [
    'Challenge', 'ChallengeType', 'ChallengeStatus', 'DifficultyLevel', 'ExerciseLevel',
    'HealthChecklist', 'CustomerChallenge', 'RiskAssessment', 'UnlockedMilestone',
    'RecordType', 'AIProviderName', 'AIAnalysisType', 'AIStatus', 'AIAnalysis', 'DailyRecord',
    'SubmissionResult', 'COLOR_CATEGORIES', 'order_records',
    'ChallengeNotification', 'NotificationType', 'NotificationPriority', 'RecipientType',
    'Achievement', 'Milestone', 'ChallengeProgress', 'CostSummary', 'ChallengeJoinRequest',
    'ChallengeApprovalRequest', 'DailyRecordSubmission', 'RecordCorrectionRequest', 'CancelRequest',
    'UserRole', 'TokenData', 'CurrentUser',
]
