"""
Challenge API endpoints - enrollment, approval, daily records and progress.
"""

from fastapi import APIRouter, Depends, status
from typing import List

from ..models import (
    Challenge, CustomerChallenge, ChallengeProgress, CostSummary, SubmissionResult,
    ChallengeJoinRequest, ChallengeApprovalRequest, DailyRecordSubmission,
    RecordCorrectionRequest, CancelRequest, CurrentUser, UserRole,
)
from ..services import ChallengeService, get_challenge_service
from ..utils.auth import get_current_user, get_current_user_id, require_role

router = APIRouter(prefix="/challenges", tags=["challenges"])


@router.get("", response_model=List[Challenge])
async def list_challenges(service: ChallengeService = Depends(get_challenge_service)):
    """List the active challenge catalog."""
    return await service.list_challenges()


@router.post("/join", response_model=CustomerChallenge, status_code=status.HTTP_201_CREATED)
async def join_challenge(
    request: ChallengeJoinRequest,
    user_id: str = Depends(get_current_user_id),
    service: ChallengeService = Depends(get_challenge_service),
):
    """
    Join a challenge.

    Args:
        request: Challenge, health checklist, optional doctor and start date
        user_id: Current user ID from token

    Returns:
        The new enrollment (pending when doctor approval is required)
    """
    return await service.join_challenge(
        customer_id=user_id,
        challenge_id=request.challenge_id,
        health_checklist=request.health_checklist,
        doctor_id=request.doctor_id,
        start_date=request.start_date,
    )


@router.get("/enrollments", response_model=List[CustomerChallenge])
async def list_enrollments(
    user_id: str = Depends(get_current_user_id),
    service: ChallengeService = Depends(get_challenge_service),
):
    """List the caller's enrollments."""
    return await service.list_enrollments(user_id)


@router.get("/ai-costs", response_model=CostSummary)
async def get_ai_costs(
    user_id: str = Depends(get_current_user_id),
    service: ChallengeService = Depends(get_challenge_service),
):
    """Current AI spend against the daily and monthly ceilings."""
    return await service.get_ai_cost_summary()


@router.post("/enrollments/{enrollment_id}/approval", response_model=CustomerChallenge)
async def approve_enrollment(
    enrollment_id: str,
    request: ChallengeApprovalRequest,
    doctor: CurrentUser = Depends(require_role(UserRole.DOCTOR)),
    service: ChallengeService = Depends(get_challenge_service),
):
    """Approve or reject a pending enrollment. Only the assigned doctor may call this."""
    return await service.approve_challenge(
        enrollment_id, doctor.user_id, request.approved, request.doctor_notes
    )


@router.post(
    "/enrollments/{enrollment_id}/records",
    response_model=SubmissionResult,
    status_code=status.HTTP_201_CREATED,
)
async def submit_record(
    enrollment_id: str,
    request: DailyRecordSubmission,
    user_id: str = Depends(get_current_user_id),
    service: ChallengeService = Depends(get_challenge_service),
):
    """
    Submit a daily record.

    Returns:
        The stored record with progress, risk and AI annotation status
    """
    return await service.submit_daily_record(
        enrollment_id,
        request.record_type,
        request.record_data,
        notes=request.notes,
        record_date=request.record_date,
        actor_id=user_id,
    )


@router.post(
    "/enrollments/{enrollment_id}/records/{record_id}/correction",
    response_model=SubmissionResult,
    status_code=status.HTTP_201_CREATED,
)
async def correct_record(
    enrollment_id: str,
    record_id: str,
    request: RecordCorrectionRequest,
    user_id: str = Depends(get_current_user_id),
    service: ChallengeService = Depends(get_challenge_service),
):
    """Replace a day's record with a corrected one."""
    return await service.correct_daily_record(
        enrollment_id, record_id, request.record_data, notes=request.notes, actor_id=user_id
    )


@router.get("/enrollments/{enrollment_id}/progress", response_model=ChallengeProgress)
async def get_progress(
    enrollment_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ChallengeService = Depends(get_challenge_service),
):
    """Progress of an enrollment, for its customer or assigned doctor."""
    return await service.get_progress(enrollment_id, actor_id=user_id)


@router.post("/enrollments/{enrollment_id}/cancel", response_model=CustomerChallenge)
async def cancel_enrollment(
    enrollment_id: str,
    request: CancelRequest,
    user: CurrentUser = Depends(get_current_user),
    service: ChallengeService = Depends(get_challenge_service),
):
    """Cancel an enrollment (customer, assigned doctor or administrator)."""
    return await service.cancel_challenge(
        enrollment_id, user.user_id, request.reason, is_admin=user.is_admin
    )
