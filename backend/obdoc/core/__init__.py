"""Core module - domain rules of the challenge engine."""

from .exceptions import (
    ChallengeError, ChallengeNotFound, EnrollmentNotFound, AlreadyParticipating,
    DoctorApprovalRequired, HealthRiskDetected, DailyRecordExists, InvalidRecordData,
    ChallengeNotActive, NotPending, InvalidTransition, InsufficientPermissions,
    AIServiceError, AIServiceUnavailable, CostLimitExceeded, DuplicateRecordError,
)
from .risk import RiskCriteria, evaluate_risk, evaluate_checklist, evaluate_fasting_day, calculate_bmi
from .progress import ProgressResult, RECORD_TYPES, calculate_progress, max_achievable_rate, primary_target

__all__ = [
    'ChallengeError', 'ChallengeNotFound', 'EnrollmentNotFound', 'AlreadyParticipating',
    'DoctorApprovalRequired', 'HealthRiskDetected', 'DailyRecordExists', 'InvalidRecordData',
    'ChallengeNotActive', 'NotPending', 'InvalidTransition', 'InsufficientPermissions',
    'AIServiceError', 'AIServiceUnavailable', 'CostLimitExceeded', 'DuplicateRecordError',
    'RiskCriteria', 'evaluate_risk', 'evaluate_checklist', 'evaluate_fasting_day', 'calculate_bmi',
    'ProgressResult', 'RECORD_TYPES', 'calculate_progress', 'max_achievable_rate', 'primary_target',
]
