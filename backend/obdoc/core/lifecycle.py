"""
Challenge Lifecycle Manager - owns the enrollment state machine.

pending -> approved -> active -> completed
active -> failed
pending | approved | active -> cancelled
pending -> active (only for challenges that need no doctor approval)

Time-driven transitions are applied lazily whenever an enrollment is loaded
(refresh) and in bulk by tick(). Every enrollment write happens under that
enrollment's lock.
"""

import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Optional, List, Dict, Set, Tuple, Iterable

from ..models import (
    Challenge, CustomerChallenge, ChallengeStatus, HealthChecklist, UnlockedMilestone,
    ChallengeNotification, NotificationType, NotificationPriority, RecipientType,
)
from ..notifications.emitter import NotificationEmitter
from ..storage.interface import ChallengeCatalog, EnrollmentStore, RecordStore
from ..utils.clock import Clock, utc_now
from ..utils.locks import KeyedLocks
from .exceptions import (
    ChallengeNotFound, EnrollmentNotFound, AlreadyParticipating, DoctorApprovalRequired,
    HealthRiskDetected, InsufficientPermissions, NotPending, InvalidTransition,
)
from .milestones import current_streak, newly_unlocked, milestone_definition
from .progress import (
    ProgressResult, RECORD_TYPES, calculate_progress, max_achievable_rate, primary_target,
)
from .risk import RiskCriteria, evaluate_risk

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    ChallengeStatus.PENDING: {ChallengeStatus.APPROVED, ChallengeStatus.ACTIVE, ChallengeStatus.CANCELLED},
    ChallengeStatus.APPROVED: {ChallengeStatus.ACTIVE, ChallengeStatus.CANCELLED},
    ChallengeStatus.ACTIVE: {ChallengeStatus.COMPLETED, ChallengeStatus.FAILED, ChallengeStatus.CANCELLED},
}


class LifecycleManager:
    """
    The only component that writes CustomerChallenge.status.
    """

    def __init__(
        self,
        catalog: ChallengeCatalog,
        enrollments: EnrollmentStore,
        records: RecordStore,
        emitter: NotificationEmitter,
        criteria: RiskCriteria,
        success_threshold: float = 80.0,
        fail_when_unreachable: bool = True,
        milestone_thresholds: Optional[Dict[str, List[int]]] = None,
        reminder_hours: Optional[Dict[str, List[int]]] = None,
        clock: Clock = utc_now,
    ):
        self.catalog = catalog
        self.enrollments = enrollments
        self.records = records
        self.emitter = emitter
        self.criteria = criteria
        self.success_threshold = success_threshold
        self.fail_when_unreachable = fail_when_unreachable
        self.milestone_thresholds = milestone_thresholds or {}
        self.reminder_hours = reminder_hours or {}
        self.clock = clock
        self._locks = KeyedLocks()
        self._reminders_sent: Set[Tuple[str, date, int]] = set()

    def today(self) -> date:
        return self.clock().date()

    def lock_for(self, key: str):
        """Async context manager holding the lock for an enrollment or customer key."""
        return self._locks.hold(key)

    # ==================== Loading ====================

    async def fetch(
        self,
        enrollment_id: str,
        today: Optional[date] = None
    ) -> Tuple[CustomerChallenge, Challenge]:
        """
        Load and refresh an enrollment. The caller must hold its lock.

        Raises:
            EnrollmentNotFound: If the enrollment does not exist
        """
        enrollment = await self.enrollments.get(enrollment_id)
        if enrollment is None:
            raise EnrollmentNotFound(enrollment_id=enrollment_id)
        challenge = await self.catalog.get(enrollment.challenge_id)
        if challenge is None:
            raise ChallengeNotFound(challenge_id=enrollment.challenge_id)

        if await self.refresh(enrollment, challenge, today):
            await self.save(enrollment)
        return enrollment, challenge

    async def load(
        self,
        enrollment_id: str,
        today: Optional[date] = None
    ) -> Tuple[CustomerChallenge, Challenge]:
        async with self.lock_for(enrollment_id):
            return await self.fetch(enrollment_id, today)

    async def save(self, enrollment: CustomerChallenge) -> CustomerChallenge:
        enrollment.updated_at = self.clock()
        return await self.enrollments.update(enrollment)

    def progress_day(self, enrollment: CustomerChallenge, today: Optional[date] = None) -> date:
        """Day whose value is current progress: today, capped at the last day of the window."""
        return min(today or self.today(), enrollment.end_date - timedelta(days=1))

    async def recompute(
        self,
        enrollment: CustomerChallenge,
        challenge: Challenge,
        as_of: Optional[date] = None
    ) -> ProgressResult:
        """Recalculate progress from every stored record of the enrollment, as of progress_day by default."""
        if as_of is None:
            as_of = self.progress_day(enrollment)
        records = await self.records.list_for_enrollment(enrollment.id)
        return calculate_progress(records, challenge, self.criteria, as_of=as_of)

    # ==================== Transitions ====================

    def _transition(self, enrollment: CustomerChallenge, status: ChallengeStatus, reason: str = "") -> None:
        allowed = ALLOWED_TRANSITIONS.get(enrollment.status, set())
        if status not in allowed:
            raise InvalidTransition(
                f"Cannot move enrollment from {enrollment.status.value} to {status.value}.",
                enrollment_id=enrollment.id,
            )

        previous = enrollment.status
        enrollment.status = status
        enrollment.updated_at = self.clock()
        logger.info(
            f"Enrollment {enrollment.id}: {previous.value} -> {status.value}",
            extra={"extra_fields": {
                "enrollment_id": enrollment.id,
                "customer_id": enrollment.customer_id,
                "challenge_id": enrollment.challenge_id,
                "from_status": previous.value,
                "to_status": status.value,
                "reason": reason,
            }}
        )

    async def create_enrollment(
        self,
        customer_id: str,
        challenge_id: str,
        checklist: HealthChecklist,
        doctor_id: Optional[str] = None,
        start_date: Optional[date] = None,
    ) -> CustomerChallenge:
        """
        Enroll a customer in a challenge.

        Args:
            customer_id: Enrolling customer
            challenge_id: Catalog challenge to join
            checklist: Health checklist captured at enrollment
            doctor_id: Assigned doctor, required for approval-gated challenges
            start_date: First day of the challenge window, defaults to today

        Returns:
            CustomerChallenge: pending when approval is required, otherwise active

        Raises:
            ChallengeNotFound, DoctorApprovalRequired, HealthRiskDetected, AlreadyParticipating
        """
        challenge = await self.catalog.get(challenge_id)
        if challenge is None or not challenge.is_active:
            raise ChallengeNotFound(challenge_id=challenge_id)

        if challenge.requires_doctor_approval and not doctor_id:
            raise DoctorApprovalRequired(challenge_id=challenge_id)

        risk = evaluate_risk(checklist, challenge.type, challenge.difficulty_level, self.criteria)
        if risk.is_high_risk:
            logger.warning(
                f"Enrollment rejected for {customer_id} in {challenge_id}: health risk",
                extra={"extra_fields": {"reasons": risk.triggered_reasons}}
            )
            raise HealthRiskDetected(reasons=risk.triggered_reasons)

        start = start_date or self.today()
        end = start + timedelta(days=challenge.duration_days)

        async with self.lock_for(f"customer:{customer_id}"):
            for existing in await self.enrollments.list_for_customer(customer_id):
                if existing.challenge_id != challenge_id or existing.status.is_terminal:
                    continue
                if existing.start_date < end and start < existing.end_date:
                    raise AlreadyParticipating(enrollment_id=existing.id)

            now = self.clock()
            enrollment = CustomerChallenge(
                id=str(uuid.uuid4()),
                customer_id=customer_id,
                challenge_id=challenge_id,
                doctor_id=doctor_id,
                start_date=start,
                end_date=end,
                target_value=primary_target(challenge),
                health_checklist=checklist.model_copy(deep=True),
                created_at=now,
                updated_at=now,
            )
            if not challenge.requires_doctor_approval:
                self._transition(enrollment, ChallengeStatus.ACTIVE, "no_approval_required")
            await self.enrollments.insert(enrollment)

        logger.info(
            f"Customer {customer_id} joined {challenge_id} as {enrollment.status.value}",
            extra={"extra_fields": {
                "enrollment_id": enrollment.id,
                "start_date": start.isoformat(),
                "end_date": end.isoformat(),
            }}
        )

        if challenge.requires_doctor_approval:
            await self._notify(
                enrollment,
                recipient_id=doctor_id,
                recipient_type=RecipientType.DOCTOR,
                notification_type=NotificationType.APPROVAL_REQUEST,
                title="Challenge approval requested",
                message=f"A patient asked to join '{challenge.name}' starting {start.isoformat()}.",
                priority=NotificationPriority.HIGH,
            )
        return enrollment

    async def approve(
        self,
        enrollment_id: str,
        doctor_id: str,
        approved: bool,
        notes: Optional[str] = None
    ) -> CustomerChallenge:
        """
        Record the assigned doctor's decision on a pending enrollment.

        Raises:
            EnrollmentNotFound, InsufficientPermissions, NotPending
        """
        async with self.lock_for(enrollment_id):
            enrollment, challenge = await self.fetch(enrollment_id)
            if enrollment.doctor_id != doctor_id:
                raise InsufficientPermissions(enrollment_id=enrollment_id)
            if enrollment.status != ChallengeStatus.PENDING:
                raise NotPending(status=enrollment.status.value)

            enrollment.doctor_notes = notes
            if approved:
                self._transition(enrollment, ChallengeStatus.APPROVED, "doctor_approved")
                enrollment.approved_at = self.clock()
                await self.refresh(enrollment, challenge)
            else:
                self._transition(enrollment, ChallengeStatus.CANCELLED, "doctor_rejected")
                enrollment.failure_reason = "rejected_by_doctor"
            await self.save(enrollment)

        await self.emitter.mark_read(doctor_id, enrollment_id, NotificationType.APPROVAL_REQUEST)
        if approved:
            title = "Challenge approved"
            message = f"Your doctor approved '{challenge.name}'."
        else:
            title = "Challenge not approved"
            message = f"Your doctor did not approve '{challenge.name}'."
        if notes:
            message = f"{message} Notes: {notes}"
        await self._notify(
            enrollment,
            recipient_id=enrollment.customer_id,
            recipient_type=RecipientType.CUSTOMER,
            notification_type=NotificationType.PROGRESS_UPDATE,
            title=title,
            message=message,
        )
        return enrollment

    async def cancel(
        self,
        enrollment_id: str,
        actor_id: str,
        reason: Optional[str] = None,
        is_admin: bool = False
    ) -> CustomerChallenge:
        """
        Cancel a non-terminal enrollment.

        Raises:
            EnrollmentNotFound, InsufficientPermissions, InvalidTransition
        """
        async with self.lock_for(enrollment_id):
            enrollment, challenge = await self.fetch(enrollment_id)
            if not is_admin and actor_id not in (enrollment.customer_id, enrollment.doctor_id):
                raise InsufficientPermissions(enrollment_id=enrollment_id)

            self._transition(enrollment, ChallengeStatus.CANCELLED, reason or "cancelled")
            enrollment.failure_reason = reason or "cancelled"
            await self.save(enrollment)

        recipients = [(enrollment.customer_id, RecipientType.CUSTOMER)]
        if enrollment.doctor_id:
            recipients.append((enrollment.doctor_id, RecipientType.DOCTOR))
        for recipient_id, recipient_type in recipients:
            if recipient_id == actor_id:
                continue
            await self._notify(
                enrollment,
                recipient_id=recipient_id,
                recipient_type=recipient_type,
                notification_type=NotificationType.PROGRESS_UPDATE,
                title="Challenge cancelled",
                message=f"'{challenge.name}' was cancelled." + (f" Reason: {reason}" if reason else ""),
            )
        return enrollment

    async def refresh(
        self,
        enrollment: CustomerChallenge,
        challenge: Challenge,
        today: Optional[date] = None
    ) -> bool:
        """
        Apply time-driven transitions to an enrollment in place.

        Returns:
            bool: True if the enrollment changed and must be saved
        """
        today = today or self.today()
        changed = False

        if enrollment.status == ChallengeStatus.APPROVED and enrollment.start_date <= today:
            self._transition(enrollment, ChallengeStatus.ACTIVE, "start_date_reached")
            changed = True

        if enrollment.status == ChallengeStatus.ACTIVE:
            if today >= enrollment.end_date or self.fail_when_unreachable:
                result = await self.recompute(enrollment, challenge, as_of=self.progress_day(enrollment, today))
                changed = await self._check_window(enrollment, challenge, result, today) or changed

        return changed

    async def apply_progress(
        self,
        enrollment: CustomerChallenge,
        challenge: Challenge,
        result: ProgressResult,
        today: Optional[date] = None
    ) -> List[UnlockedMilestone]:
        """
        Store a progress result on an active enrollment, unlock milestones and
        check unreachability and completion.

        Returns:
            List[UnlockedMilestone]: Milestones unlocked by this update
        """
        today = today or self.today()
        enrollment.current_progress = result.current_progress
        enrollment.completion_rate = result.completion_rate

        unlocked = await self._unlock_milestones(enrollment, challenge, result, today)
        await self._check_window(enrollment, challenge, result, today)
        return unlocked

    async def fail_for_risk(self, enrollment: CustomerChallenge, challenge: Challenge, reasons: List[str]) -> None:
        """Fail an active enrollment because a submission showed high risk."""
        self._transition(enrollment, ChallengeStatus.FAILED, "health_risk")
        enrollment.failure_reason = "health_risk: " + ", ".join(reasons)
        await self._alert(
            enrollment,
            title="Health risk detected",
            message=(
                f"'{challenge.name}' was stopped because of a health risk "
                f"({', '.join(reasons)}). Please consult your doctor."
            ),
            priority=NotificationPriority.URGENT,
            data={"reasons": reasons},
        )

    async def _check_window(
        self,
        enrollment: CustomerChallenge,
        challenge: Challenge,
        result: ProgressResult,
        today: date
    ) -> bool:
        if enrollment.status != ChallengeStatus.ACTIVE:
            return False

        if today >= enrollment.end_date:
            await self._finish(enrollment, challenge, result)
            return True

        if self.fail_when_unreachable:
            ceiling = max_achievable_rate(
                result, challenge, enrollment.start_date, enrollment.end_date, today
            )
            if ceiling is not None and ceiling < self.success_threshold:
                self._transition(enrollment, ChallengeStatus.FAILED, "target_unreachable")
                enrollment.failure_reason = f"target_unreachable: at most {ceiling}% still achievable"
                await self._alert(
                    enrollment,
                    title="Challenge target out of reach",
                    message=(
                        f"'{challenge.name}' can no longer reach {self.success_threshold}% "
                        f"completion (at most {ceiling}%)."
                    ),
                    priority=NotificationPriority.HIGH,
                    data={"max_achievable_rate": ceiling},
                )
                return True
        return False

    async def _finish(self, enrollment: CustomerChallenge, challenge: Challenge, result: ProgressResult) -> None:
        last_day = enrollment.end_date - timedelta(days=1)
        enrollment.current_progress = result.current_progress
        enrollment.completion_rate = result.completion_rate
        await self._unlock_milestones(enrollment, challenge, result, last_day)

        succeeded = enrollment.completion_rate >= self.success_threshold
        if succeeded:
            self._transition(enrollment, ChallengeStatus.COMPLETED, "end_date_reached")
            enrollment.completed_at = self.clock()
            title = "Challenge completed"
            message = f"Congratulations! You completed '{challenge.name}' with {enrollment.completion_rate}%."
        else:
            self._transition(enrollment, ChallengeStatus.FAILED, "below_success_threshold")
            enrollment.failure_reason = (
                f"completion_rate {enrollment.completion_rate}% below {self.success_threshold}%"
            )
            title = "Challenge ended"
            message = (
                f"'{challenge.name}' ended at {enrollment.completion_rate}%, "
                f"below the {self.success_threshold}% goal."
            )

        await self._notify(
            enrollment,
            recipient_id=enrollment.customer_id,
            recipient_type=RecipientType.CUSTOMER,
            notification_type=NotificationType.COMPLETION,
            title=title,
            message=message,
            data={"succeeded": succeeded, "completion_rate": enrollment.completion_rate},
        )

    async def _unlock_milestones(
        self,
        enrollment: CustomerChallenge,
        challenge: Challenge,
        result: ProgressResult,
        as_of: date
    ) -> List[UnlockedMilestone]:
        thresholds = self.milestone_thresholds.get(challenge.type.value, [])
        streak = current_streak(result.goal_met_dates, as_of)
        unlocked = []
        for days in newly_unlocked(streak, thresholds, enrollment.unlocked_days):
            definition = milestone_definition(challenge.type, days)
            milestone = UnlockedMilestone(
                days=days,
                name=definition.name,
                description=definition.description,
                unlocked_at=self.clock(),
            )
            enrollment.unlocked_milestones.append(milestone)
            unlocked.append(milestone)
            logger.info(f"Enrollment {enrollment.id} unlocked milestone {days} ({definition.name})")
            await self._notify(
                enrollment,
                recipient_id=enrollment.customer_id,
                recipient_type=RecipientType.CUSTOMER,
                notification_type=NotificationType.PROGRESS_UPDATE,
                title=f"Milestone reached: {definition.name}",
                message=definition.description,
                data={"milestone_days": days, "streak": streak},
            )
        return unlocked

    # ==================== Time-driven work ====================

    async def tick(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Apply time-driven transitions to every live enrollment and send due
        reminders.

        Returns:
            Dict with the number of transitions and reminders
        """
        now = now or self.clock()
        today = now.date()
        transitions = 0
        reminders = 0
        # reminders for earlier days can no longer repeat
        self._reminders_sent = {key for key in self._reminders_sent if key[1] >= today}

        live = await self.enrollments.list_by_status([ChallengeStatus.APPROVED, ChallengeStatus.ACTIVE])
        for candidate in live:
            async with self.lock_for(candidate.id):
                enrollment = await self.enrollments.get(candidate.id)
                if enrollment is None:
                    continue
                challenge = await self.catalog.get(enrollment.challenge_id)
                if challenge is None:
                    continue
                if await self.refresh(enrollment, challenge, today):
                    await self.save(enrollment)
                    transitions += 1

            if await self._remind(enrollment, challenge, now):
                reminders += 1

        if transitions or reminders:
            logger.info(f"Tick at {now.isoformat()}: {transitions} transitions, {reminders} reminders")
        return {"transitions": transitions, "reminders": reminders}

    async def _remind(self, enrollment: CustomerChallenge, challenge: Challenge, now: datetime) -> bool:
        today = now.date()
        if enrollment.status != ChallengeStatus.ACTIVE or not enrollment.accepts_date(today):
            return False
        if now.hour not in self.reminder_hours.get(challenge.type.value, []):
            return False

        key = (enrollment.id, today, now.hour)
        if key in self._reminders_sent:
            return False
        if await self.records.find(enrollment.id, today, RECORD_TYPES[challenge.type]) is not None:
            return False

        self._reminders_sent.add(key)
        await self._notify(
            enrollment,
            recipient_id=enrollment.customer_id,
            recipient_type=RecipientType.CUSTOMER,
            notification_type=NotificationType.REMINDER,
            title=f"Reminder: {challenge.name}",
            message="Don't forget to log today's progress.",
            priority=NotificationPriority.LOW,
        )
        return True

    # ==================== Notifications ====================

    async def _alert(
        self,
        enrollment: CustomerChallenge,
        title: str,
        message: str,
        priority: NotificationPriority,
        data: Optional[dict] = None
    ) -> None:
        recipients: Iterable[Tuple[str, RecipientType]] = [(enrollment.customer_id, RecipientType.CUSTOMER)]
        if enrollment.doctor_id:
            recipients = list(recipients) + [(enrollment.doctor_id, RecipientType.DOCTOR)]
        for recipient_id, recipient_type in recipients:
            await self._notify(
                enrollment,
                recipient_id=recipient_id,
                recipient_type=recipient_type,
                notification_type=NotificationType.RISK_ALERT,
                title=title,
                message=message,
                priority=priority,
                data=data,
            )

    async def _notify(
        self,
        enrollment: CustomerChallenge,
        recipient_id: str,
        recipient_type: RecipientType,
        notification_type: NotificationType,
        title: str,
        message: str,
        priority: NotificationPriority = NotificationPriority.NORMAL,
        data: Optional[dict] = None
    ) -> None:
        notification = ChallengeNotification(
            id=str(uuid.uuid4()),
            recipient_id=recipient_id,
            recipient_type=recipient_type,
            notification_type=notification_type,
            title=title,
            message=message,
            related_challenge_id=enrollment.id,
            priority=priority,
            data=data or {},
            created_at=self.clock(),
        )
        try:
            await self.emitter.emit(notification)
        except Exception as e:
            logger.error(
                f"Failed to emit {notification_type.value} notification: {str(e)}",
                exc_info=True,
                extra={"extra_fields": {"enrollment_id": enrollment.id, "recipient_id": recipient_id}}
            )
