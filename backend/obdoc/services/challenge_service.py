"""
Challenge Service - the engine's operation surface.

Wires the lifecycle manager, record ingestor and AI orchestrator to the
storage boundary and exposes the operations used by the HTTP API.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional, List, Dict, Any

from ..ai import AIOrchestrator, AnalysisProvider, CostLedger, build_providers
from ..config import Settings, settings
from ..core.exceptions import InsufficientPermissions
from ..core.ingestor import DailyRecordIngestor
from ..core.lifecycle import LifecycleManager
from ..core.milestones import current_streak, longest_streak, milestone_definition, next_milestone
from ..core.risk import RiskCriteria
from ..models import (
    Achievement, Challenge, ChallengeProgress, CostSummary, CustomerChallenge, HealthChecklist,
    Milestone, RecordType, SubmissionResult,
)
from ..notifications import NotificationEmitter, LoggingNotificationEmitter
from ..storage import (
    ChallengeCatalog, EnrollmentStore, RecordStore, InMemoryChallengeCatalog,
    InMemoryEnrollmentStore, InMemoryRecordStore, LocalDocumentStorage, LocalEnrollmentStore,
    LocalRecordStore, default_challenges,
)
from ..utils.clock import Clock, utc_now

logger = logging.getLogger(__name__)

TREND_DAYS = 7


class ChallengeService:
    """
    Facade over the challenge engine.

    Operations that accept an actor id check that the actor takes part in the
    enrollment; internal callers may omit it.
    """

    def __init__(
        self,
        catalog: ChallengeCatalog,
        enrollments: EnrollmentStore,
        records: RecordStore,
        lifecycle: LifecycleManager,
        ingestor: DailyRecordIngestor,
        ledger: CostLedger,
        clock: Clock = utc_now,
    ):
        self.catalog = catalog
        self.enrollments = enrollments
        self.records = records
        self.lifecycle = lifecycle
        self.ingestor = ingestor
        self.ledger = ledger
        self.clock = clock

    @staticmethod
    def _authorize(enrollment: CustomerChallenge, actor_id: Optional[str], allow_doctor: bool = True) -> None:
        if actor_id is None:
            return
        allowed = {enrollment.customer_id}
        if allow_doctor and enrollment.doctor_id:
            allowed.add(enrollment.doctor_id)
        if actor_id not in allowed:
            raise InsufficientPermissions(enrollment_id=enrollment.id)

    # ==================== Catalog ====================

    async def list_challenges(self) -> List[Challenge]:
        return await self.catalog.list(active_only=True)

    async def list_enrollments(self, customer_id: str) -> List[CustomerChallenge]:
        """List a customer's enrollments with time-driven transitions applied."""
        refreshed = []
        for enrollment in await self.enrollments.list_for_customer(customer_id):
            current, _ = await self.lifecycle.load(enrollment.id)
            refreshed.append(current)
        return refreshed

    # ==================== Lifecycle ====================

    async def join_challenge(
        self,
        customer_id: str,
        challenge_id: str,
        health_checklist: HealthChecklist,
        doctor_id: Optional[str] = None,
        start_date: Optional[date] = None,
    ) -> CustomerChallenge:
        """
        Enroll a customer in a challenge.

        Raises:
            ChallengeNotFound, DoctorApprovalRequired, HealthRiskDetected, AlreadyParticipating
        """
        return await self.lifecycle.create_enrollment(
            customer_id, challenge_id, health_checklist, doctor_id, start_date
        )

    async def approve_challenge(
        self,
        customer_challenge_id: str,
        doctor_id: str,
        approved: bool,
        notes: Optional[str] = None,
    ) -> CustomerChallenge:
        """
        Record the assigned doctor's decision.

        Raises:
            EnrollmentNotFound, InsufficientPermissions, NotPending
        """
        return await self.lifecycle.approve(customer_challenge_id, doctor_id, approved, notes)

    async def cancel_challenge(
        self,
        customer_challenge_id: str,
        actor_id: str,
        reason: Optional[str] = None,
        is_admin: bool = False,
    ) -> CustomerChallenge:
        return await self.lifecycle.cancel(customer_challenge_id, actor_id, reason, is_admin)

    async def tick(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Apply time-driven transitions and emit due reminders."""
        return await self.lifecycle.tick(now)

    # ==================== Records ====================

    async def submit_daily_record(
        self,
        customer_challenge_id: str,
        record_type: RecordType,
        record_data: Dict[str, Any],
        notes: Optional[str] = None,
        record_date: Optional[date] = None,
        actor_id: Optional[str] = None,
    ) -> SubmissionResult:
        """
        Submit a daily record.

        Raises:
            EnrollmentNotFound, InsufficientPermissions, ChallengeNotActive,
            InvalidRecordData, DailyRecordExists
        """
        if actor_id is not None:
            enrollment, _ = await self.lifecycle.load(customer_challenge_id)
            self._authorize(enrollment, actor_id, allow_doctor=False)
        return await self.ingestor.submit(
            customer_challenge_id, RecordType(record_type), record_data, notes, record_date
        )

    async def correct_daily_record(
        self,
        customer_challenge_id: str,
        record_id: str,
        record_data: Dict[str, Any],
        notes: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> SubmissionResult:
        """Replace a day's record with a corrected one."""
        if actor_id is not None:
            enrollment, _ = await self.lifecycle.load(customer_challenge_id)
            self._authorize(enrollment, actor_id, allow_doctor=False)
        return await self.ingestor.correct(customer_challenge_id, record_id, record_data, notes)

    # ==================== Queries ====================

    async def get_progress(
        self,
        customer_challenge_id: str,
        actor_id: Optional[str] = None,
    ) -> ChallengeProgress:
        """
        Progress snapshot of an enrollment.

        Args:
            customer_challenge_id: Enrollment to inspect
            actor_id: Optional caller, must be the customer or the assigned doctor

        Returns:
            ChallengeProgress with weekly trend, streaks and milestones
        """
        enrollment, challenge = await self.lifecycle.load(customer_challenge_id)
        self._authorize(enrollment, actor_id)

        records = await self.records.list_for_enrollment(enrollment.id)
        as_of = self.lifecycle.progress_day(enrollment)
        result = await self.lifecycle.recompute(enrollment, challenge, as_of=as_of)
        trend = [
            result.daily_values.get(as_of - timedelta(days=offset), 0.0)
            for offset in range(TREND_DAYS - 1, -1, -1)
        ]

        achievements = [
            Achievement(
                id=f"{challenge.type.value}-{milestone.days}",
                name=milestone.name,
                description=milestone.description,
                unlocked_at=milestone.unlocked_at,
            )
            for milestone in enrollment.unlocked_milestones
        ]

        thresholds = self.lifecycle.milestone_thresholds.get(challenge.type.value, [])
        upcoming = next_milestone(thresholds, enrollment.unlocked_days)
        next_one = None
        if upcoming is not None:
            definition = milestone_definition(challenge.type, upcoming)
            next_one = Milestone(target=upcoming, description=definition.description, reward=definition.name)

        return ChallengeProgress(
            customer_challenge_id=enrollment.id,
            status=enrollment.status,
            current_progress=result.current_progress,
            completion_rate=result.completion_rate,
            daily_records=records,
            weekly_trend=trend,
            current_streak=current_streak(result.goal_met_dates, as_of),
            longest_streak=longest_streak(result.goal_met_dates),
            achievements=achievements,
            next_milestone=next_one,
            metrics=result.metrics,
        )

    async def get_ai_cost_summary(self) -> CostSummary:
        return self.ledger.summary()

    async def aclose(self) -> None:
        """Stop background annotation work."""
        await self.ingestor.aclose()


def create_challenge_service(
    config: Settings = settings,
    clock: Optional[Clock] = None,
    providers: Optional[List[AnalysisProvider]] = None,
    emitter: Optional[NotificationEmitter] = None,
    catalog: Optional[ChallengeCatalog] = None,
) -> ChallengeService:
    """
    Build a ChallengeService from settings.

    Args:
        config: Application settings
        clock: Time source, defaults to UTC now
        providers: Analysis providers; built from settings when omitted
        emitter: Notification sink; logs notifications when omitted
        catalog: Challenge catalog; the default catalog when omitted

    Returns:
        ChallengeService
    """
    clock = clock or utc_now
    criteria = RiskCriteria.from_settings(config)

    if config.storage_type == "local":
        storage = LocalDocumentStorage(config.local_storage_path)
        enrollments: EnrollmentStore = LocalEnrollmentStore(storage)
        records: RecordStore = LocalRecordStore(storage)
    elif config.storage_type == "memory":
        enrollments = InMemoryEnrollmentStore()
        records = InMemoryRecordStore()
    else:
        raise ValueError(f"Unsupported storage type: {config.storage_type}")

    catalog = catalog or InMemoryChallengeCatalog(default_challenges())
    emitter = emitter or LoggingNotificationEmitter()
    if providers is None:
        providers = build_providers(config)

    ledger = CostLedger(config.ai_daily_cost_limit, config.ai_monthly_cost_limit, clock=clock)
    orchestrator = AIOrchestrator(
        providers,
        ledger,
        confidence_threshold=config.ai_confidence_threshold,
        type_preferences=config.ai_type_preferences,
        cache_ttl=config.ai_cache_ttl_seconds,
        cache_max_entries=config.ai_cache_max_entries,
    )
    lifecycle = LifecycleManager(
        catalog,
        enrollments,
        records,
        emitter,
        criteria,
        success_threshold=config.success_threshold,
        fail_when_unreachable=config.fail_when_unreachable,
        milestone_thresholds=config.milestone_thresholds,
        reminder_hours=config.reminder_hours,
        clock=clock,
    )
    ingestor = DailyRecordIngestor(
        lifecycle,
        records,
        orchestrator=orchestrator,
        annotation_mode=config.ai_annotation_mode,
        water_min_amount_ml=config.water_min_amount_ml,
        water_max_daily_ml=config.water_max_daily_ml,
    )

    logger.info(
        f"Challenge service ready: storage={config.storage_type}, "
        f"ai_providers={[p.name for p in providers] or 'none'}, "
        f"annotation_mode={config.ai_annotation_mode}"
    )
    return ChallengeService(catalog, enrollments, records, lifecycle, ingestor, ledger, clock=clock)


# Global challenge service instance
_challenge_service: Optional[ChallengeService] = None


def init_challenge_service(service: Optional[ChallengeService] = None) -> ChallengeService:
    """
    Initialize the global challenge service.

    Args:
        service: Service to install; built from settings when omitted
    """
    global _challenge_service
    _challenge_service = service or create_challenge_service()
    return _challenge_service


def get_challenge_service() -> ChallengeService:
    """
    Get the global challenge service instance.

    Raises:
        RuntimeError: If init_challenge_service() has not been called
    """
    if _challenge_service is None:
        raise RuntimeError("Challenge service not initialized. Call init_challenge_service() first.")
    return _challenge_service
