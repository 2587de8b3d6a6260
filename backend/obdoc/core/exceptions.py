"""
Domain errors for the challenge engine.

Every error carries a stable machine-readable code, a human-readable message,
whether the caller may retry it, and a severity used for logging.
"""

from typing import Optional, List


class ChallengeError(Exception):
    """Base class for all challenge engine errors."""

    code = "CHALLENGE_ERROR"
    default_message = "Challenge operation failed."
    retryable = False
    severity = "error"

    def __init__(self, message: Optional[str] = None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        payload = {
            "error": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            payload["details"] = self.details
        return payload


# Validation errors

class ChallengeNotFound(ChallengeError):
    code = "CHALLENGE_NOT_FOUND"
    default_message = "Challenge not found."


class EnrollmentNotFound(ChallengeError):
    code = "NOT_FOUND"
    default_message = "Challenge enrollment not found."


class AlreadyParticipating(ChallengeError):
    code = "ALREADY_PARTICIPATING"
    default_message = "Already participating in this challenge."


class DoctorApprovalRequired(ChallengeError):
    code = "DOCTOR_APPROVAL_REQUIRED"
    default_message = "This challenge requires approval from an assigned doctor."


class HealthRiskDetected(ChallengeError):
    code = "HEALTH_RISK_DETECTED"
    default_message = "A health risk was detected. Please consult your doctor."


class DailyRecordExists(ChallengeError):
    code = "DAILY_RECORD_EXISTS"
    default_message = "A record already exists for this day."


class InvalidRecordData(ChallengeError):
    code = "INVALID_RECORD_DATA"
    default_message = "Invalid record data."


class ChallengeNotActive(ChallengeError):
    code = "CHALLENGE_NOT_ACTIVE"
    default_message = "The challenge is not active."


class NotPending(ChallengeError):
    code = "NOT_PENDING"
    default_message = "The enrollment is not awaiting approval."


class InvalidTransition(ChallengeError):
    code = "INVALID_TRANSITION"
    default_message = "Invalid challenge status transition."


# Permission errors

class InsufficientPermissions(ChallengeError):
    code = "INSUFFICIENT_PERMISSIONS"
    default_message = "Insufficient permissions."


# Provider errors

class AIServiceError(ChallengeError):
    """AI annotation could not be produced. Never fatal to a record write."""

    code = "AI_SERVICE_ERROR"
    retryable = True
    severity = "low"


class AIServiceUnavailable(AIServiceError):
    code = "AI_SERVICE_UNAVAILABLE"
    default_message = "AI analysis service is temporarily unavailable."

    def __init__(self, message: Optional[str] = None, attempted: Optional[List[str]] = None):
        super().__init__(message, attempted=list(attempted or []))
        self.attempted = list(attempted or [])


class CostLimitExceeded(AIServiceError):
    code = "AI_COST_LIMIT_EXCEEDED"
    default_message = "AI cost ceiling reached; analysis skipped."


# Storage errors

class DuplicateRecordError(Exception):
    """Raised by record stores when the (enrollment, date, type) key is taken."""
