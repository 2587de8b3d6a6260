"""
Tests for the challenge service: enrollment lifecycle, record ingestion,
risk handling, AI annotation and time-driven transitions.
"""

import asyncio
from datetime import timedelta

import pytest

from obdoc.core.exceptions import (
    AlreadyParticipating, ChallengeNotActive, ChallengeNotFound, DailyRecordExists,
    DoctorApprovalRequired, EnrollmentNotFound, HealthRiskDetected, InsufficientPermissions,
    InvalidRecordData, InvalidTransition, NotPending,
)
from obdoc.models import (
    AIStatus, Challenge, ChallengeStatus, ChallengeType, HealthChecklist,
    NotificationPriority, NotificationType, RecordType,
)
from obdoc.storage import InMemoryChallengeCatalog

CUSTOMER = "customer-1"
DOCTOR = "doctor-1"


def _short_water_catalog(days=3):
    return InMemoryChallengeCatalog([
        Challenge(
            id="water-short",
            name="Short Water",
            type=ChallengeType.WATER_INTAKE,
            duration_days=days,
            target_metrics={"dailyTarget": 2000},
        )
    ])


class TestJoin:

    @pytest.mark.asyncio
    async def test_join_without_approval_is_active(self, make_service, checklist, clock):
        service = make_service()
        enrollment = await service.join_challenge(CUSTOMER, "water-2l", checklist)

        assert enrollment.status == ChallengeStatus.ACTIVE
        assert enrollment.start_date == clock.now.date()
        assert enrollment.end_date == clock.now.date() + timedelta(days=30)
        assert enrollment.target_value == 2000

    @pytest.mark.asyncio
    async def test_join_with_approval_is_pending_and_notifies_doctor(self, make_service, checklist, emitter):
        service = make_service()
        enrollment = await service.join_challenge(CUSTOMER, "fasting-16-8", checklist, doctor_id=DOCTOR)

        assert enrollment.status == ChallengeStatus.PENDING
        requests = emitter.for_recipient(DOCTOR, NotificationType.APPROVAL_REQUEST)
        assert len(requests) == 1
        assert requests[0].related_challenge_id == enrollment.id

    @pytest.mark.asyncio
    async def test_unknown_challenge(self, make_service, checklist):
        with pytest.raises(ChallengeNotFound):
            await make_service().join_challenge(CUSTOMER, "missing", checklist)

    @pytest.mark.asyncio
    async def test_approval_required_without_doctor(self, make_service, checklist):
        with pytest.raises(DoctorApprovalRequired):
            await make_service().join_challenge(CUSTOMER, "dii-diet", checklist)

    @pytest.mark.asyncio
    async def test_high_risk_checklist_rejected(self, make_service):
        risky = HealthChecklist(age=40, weight=80, height=170, medical_conditions=["hypertension"])
        with pytest.raises(HealthRiskDetected) as exc_info:
            await make_service().join_challenge(CUSTOMER, "water-2l", risky)
        assert exc_info.value.details["reasons"] == ["high_risk_condition:hypertension"]

    @pytest.mark.asyncio
    async def test_elderly_patient_hard_challenge_rejected(self, make_service):
        elderly = HealthChecklist(age=70, weight=80, height=170)
        service = make_service()
        with pytest.raises(HealthRiskDetected):
            await service.join_challenge(CUSTOMER, "fasting-16-8", elderly, doctor_id=DOCTOR)
        enrollment = await service.join_challenge(CUSTOMER, "water-2l", elderly)
        assert enrollment.status == ChallengeStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_overlapping_enrollment_rejected(self, make_service, checklist, clock):
        service = make_service()
        await service.join_challenge(CUSTOMER, "water-2l", checklist)
        with pytest.raises(AlreadyParticipating):
            await service.join_challenge(CUSTOMER, "water-2l", checklist)

        later = clock.now.date() + timedelta(days=30)
        enrollment = await service.join_challenge(CUSTOMER, "water-2l", checklist, start_date=later)
        assert enrollment.start_date == later

    @pytest.mark.asyncio
    async def test_checklist_is_snapshotted(self, make_service, checklist):
        service = make_service()
        enrollment = await service.join_challenge(CUSTOMER, "water-2l", checklist)
        stored = await service.enrollments.get(enrollment.id)
        assert stored.health_checklist == checklist
        with pytest.raises(Exception):
            stored.health_checklist.age = 99


class TestApproval:

    @pytest.mark.asyncio
    async def test_pending_rejects_records(self, make_service, checklist):
        service = make_service()
        enrollment = await service.join_challenge(CUSTOMER, "fasting-16-8", checklist, doctor_id=DOCTOR)

        with pytest.raises(ChallengeNotActive):
            await service.submit_daily_record(
                enrollment.id, RecordType.FASTING_STATUS, {"fastingDuration": 16, "conditionScore": 7}
            )

    @pytest.mark.asyncio
    async def test_approve_activates(self, make_service, checklist, emitter):
        service = make_service()
        enrollment = await service.join_challenge(CUSTOMER, "fasting-16-8", checklist, doctor_id=DOCTOR)

        approved = await service.approve_challenge(enrollment.id, DOCTOR, True, "Stay hydrated")

        assert approved.status == ChallengeStatus.ACTIVE
        assert approved.approved_at is not None
        assert approved.doctor_notes == "Stay hydrated"
        assert all(n.is_read for n in emitter.for_recipient(DOCTOR, NotificationType.APPROVAL_REQUEST))
        assert emitter.for_recipient(CUSTOMER, NotificationType.PROGRESS_UPDATE)

    @pytest.mark.asyncio
    async def test_future_start_stays_approved(self, make_service, checklist, clock):
        service = make_service()
        start = clock.now.date() + timedelta(days=2)
        enrollment = await service.join_challenge(
            CUSTOMER, "fasting-16-8", checklist, doctor_id=DOCTOR, start_date=start
        )

        approved = await service.approve_challenge(enrollment.id, DOCTOR, True)
        assert approved.status == ChallengeStatus.APPROVED

        clock.advance(days=2)
        result = await service.tick()
        assert result["transitions"] == 1
        current = await service.enrollments.get(enrollment.id)
        assert current.status == ChallengeStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_reject_cancels(self, make_service, checklist):
        service = make_service()
        enrollment = await service.join_challenge(CUSTOMER, "fasting-16-8", checklist, doctor_id=DOCTOR)
        rejected = await service.approve_challenge(enrollment.id, DOCTOR, False, "Not now")
        assert rejected.status == ChallengeStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_only_assigned_doctor(self, make_service, checklist):
        service = make_service()
        enrollment = await service.join_challenge(CUSTOMER, "fasting-16-8", checklist, doctor_id=DOCTOR)
        with pytest.raises(InsufficientPermissions):
            await service.approve_challenge(enrollment.id, "doctor-2", True)

    @pytest.mark.asyncio
    async def test_not_pending(self, make_service, checklist):
        service = make_service()
        enrollment = await service.join_challenge(CUSTOMER, "fasting-16-8", checklist, doctor_id=DOCTOR)
        await service.approve_challenge(enrollment.id, DOCTOR, True)
        with pytest.raises(NotPending):
            await service.approve_challenge(enrollment.id, DOCTOR, True)

    @pytest.mark.asyncio
    async def test_unknown_enrollment(self, make_service):
        with pytest.raises(EnrollmentNotFound):
            await make_service().approve_challenge("missing", DOCTOR, True)


class TestSubmission:

    @pytest.mark.asyncio
    async def test_water_day_one(self, make_service, checklist):
        service = make_service()
        enrollment = await service.join_challenge(CUSTOMER, "water-2l", checklist)

        result = await service.submit_daily_record(enrollment.id, RecordType.WATER_INTAKE, {"amountMl": 2100})

        assert result.completion_rate == pytest.approx(3.33)
        assert result.current_progress == 2100
        assert result.enrollment_status == ChallengeStatus.ACTIVE
        assert result.record.progress_value == 2100
        assert result.ai_status == AIStatus.SKIPPED

    @pytest.mark.asyncio
    async def test_water_intakes_are_summed(self, make_service, checklist):
        service = make_service()
        enrollment = await service.join_challenge(CUSTOMER, "water-2l", checklist)
        result = await service.submit_daily_record(
            enrollment.id, RecordType.WATER_INTAKE,
            {"intakes": [{"amountMl": 1000, "time": "09:00"}, {"amountMl": 999}]},
        )
        assert result.current_progress == 1999
        assert result.completion_rate == 0.0

    @pytest.mark.asyncio
    async def test_duplicate_record(self, make_service, checklist):
        service = make_service()
        enrollment = await service.join_challenge(CUSTOMER, "water-2l", checklist)
        await service.submit_daily_record(enrollment.id, RecordType.WATER_INTAKE, {"amountMl": 500})
        with pytest.raises(DailyRecordExists):
            await service.submit_daily_record(enrollment.id, RecordType.WATER_INTAKE, {"amountMl": 700})

    @pytest.mark.asyncio
    async def test_concurrent_duplicates(self, make_service, checklist):
        service = make_service()
        enrollment = await service.join_challenge(CUSTOMER, "water-2l", checklist)

        results = await asyncio.gather(
            service.submit_daily_record(enrollment.id, RecordType.WATER_INTAKE, {"amountMl": 500}),
            service.submit_daily_record(enrollment.id, RecordType.WATER_INTAKE, {"amountMl": 600}),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], DailyRecordExists)
        assert len(await service.records.list_for_enrollment(enrollment.id)) == 1

    @pytest.mark.asyncio
    async def test_correction(self, make_service, checklist):
        service = make_service()
        enrollment = await service.join_challenge(CUSTOMER, "water-2l", checklist)
        first = await service.submit_daily_record(enrollment.id, RecordType.WATER_INTAKE, {"amountMl": 1500})

        corrected = await service.correct_daily_record(enrollment.id, first.record.id, {"amountMl": 2100})

        assert corrected.record.supersedes_id == first.record.id
        assert corrected.completion_rate == pytest.approx(3.33)
        assert corrected.current_progress == 2100

    @pytest.mark.asyncio
    async def test_invalid_payloads(self, make_service, checklist, clock):
        service = make_service()
        enrollment = await service.join_challenge(CUSTOMER, "water-2l", checklist)

        with pytest.raises(InvalidRecordData):
            await service.submit_daily_record(enrollment.id, RecordType.WATER_INTAKE, {"amountMl": 30})
        with pytest.raises(InvalidRecordData):
            await service.submit_daily_record(enrollment.id, RecordType.WATER_INTAKE, {"amountMl": 12000})
        with pytest.raises(InvalidRecordData):
            await service.submit_daily_record(enrollment.id, RecordType.WATER_INTAKE, {})
        with pytest.raises(InvalidRecordData):
            await service.submit_daily_record(enrollment.id, RecordType.COLOR_CHECKLIST, {"colors": ["red"]})
        with pytest.raises(InvalidRecordData):
            await service.submit_daily_record(
                enrollment.id, RecordType.WATER_INTAKE, {"amountMl": 500},
                record_date=clock.now.date() + timedelta(days=1),
            )
        with pytest.raises(InvalidRecordData):
            await service.submit_daily_record(
                enrollment.id, RecordType.WATER_INTAKE, {"amountMl": 500},
                record_date=clock.now.date() - timedelta(days=1),
            )

    @pytest.mark.asyncio
    async def test_late_submission_within_window(self, make_service, checklist, clock):
        service = make_service()
        enrollment = await service.join_challenge(CUSTOMER, "water-2l", checklist)
        clock.advance(days=1)

        result = await service.submit_daily_record(
            enrollment.id, RecordType.WATER_INTAKE, {"amountMl": 2000},
            record_date=enrollment.start_date,
        )
        assert result.completion_rate == pytest.approx(3.33)

    @pytest.mark.asyncio
    async def test_colorful_record(self, make_service, checklist):
        service = make_service()
        enrollment = await service.join_challenge(CUSTOMER, "colorful-diet", checklist)
        result = await service.submit_daily_record(
            enrollment.id, RecordType.COLOR_CHECKLIST,
            {"colors": {"red": ["tomato"], "yellow": ["corn"], "green": ["spinach"],
                        "purple": ["eggplant"], "white": ["garlic"]}},
        )
        assert result.current_progress == 5
        assert result.completion_rate == pytest.approx(3.33)
        assert result.record.record_data["foods"]["red"] == ["tomato"]

    @pytest.mark.asyncio
    async def test_food_log_sums_item_scores(self, make_service, checklist):
        service = make_service()
        enrollment = await service.join_challenge(CUSTOMER, "dii-diet", checklist, doctor_id=DOCTOR)
        await service.approve_challenge(enrollment.id, DOCTOR, True)

        result = await service.submit_daily_record(
            enrollment.id, RecordType.FOOD_LOG,
            {"meals": {"breakfast": [{"name": "oatmeal", "diiScore": -0.5}],
                       "dinner": [{"name": "salmon", "diiScore": -1.0}]}},
        )
        assert result.record.record_data["daily_dii"] == -1.5
        assert result.current_progress == -1.5

    @pytest.mark.asyncio
    async def test_unknown_actor_cannot_submit(self, make_service, checklist):
        service = make_service()
        enrollment = await service.join_challenge(CUSTOMER, "water-2l", checklist)
        with pytest.raises(InsufficientPermissions):
            await service.submit_daily_record(
                enrollment.id, RecordType.WATER_INTAKE, {"amountMl": 500}, actor_id="someone-else"
            )


class TestRisk:

    async def _active_fasting(self, service, checklist):
        enrollment = await service.join_challenge(CUSTOMER, "fasting-16-8", checklist, doctor_id=DOCTOR)
        await service.approve_challenge(enrollment.id, DOCTOR, True)
        return enrollment

    @pytest.mark.asyncio
    async def test_good_fasting_day_counts(self, make_service, checklist):
        service = make_service()
        enrollment = await self._active_fasting(service, checklist)
        result = await service.submit_daily_record(
            enrollment.id, RecordType.FASTING_STATUS, {"fastingDuration": 18, "conditionScore": 8}
        )
        assert result.risk.is_high_risk is False
        assert result.completion_rate == pytest.approx(4.76)

    @pytest.mark.asyncio
    async def test_low_condition_fails_enrollment(self, make_service, checklist, emitter):
        service = make_service()
        enrollment = await self._active_fasting(service, checklist)

        result = await service.submit_daily_record(
            enrollment.id, RecordType.FASTING_STATUS, {"fastingDuration": 18, "conditionScore": 2}
        )

        assert result.risk.is_high_risk is True
        assert result.enrollment_status == ChallengeStatus.FAILED
        assert result.completion_rate == 0.0
        assert result.ai_status == AIStatus.SKIPPED

        for recipient in (CUSTOMER, DOCTOR):
            alerts = emitter.for_recipient(recipient, NotificationType.RISK_ALERT)
            assert len(alerts) == 1
            assert alerts[0].priority == NotificationPriority.URGENT

        with pytest.raises(ChallengeNotActive):
            await service.submit_daily_record(
                enrollment.id, RecordType.FASTING_STATUS, {"fastingDuration": 16, "conditionScore": 8},
            )

    @pytest.mark.asyncio
    async def test_risk_symptom_fails_enrollment(self, make_service, checklist):
        service = make_service()
        enrollment = await self._active_fasting(service, checklist)
        result = await service.submit_daily_record(
            enrollment.id, RecordType.FASTING_STATUS,
            {"fastingDuration": 16, "conditionScore": 7, "symptoms": ["heart palpitations"]},
        )
        assert result.enrollment_status == ChallengeStatus.FAILED
        assert result.risk.triggered_reasons == ["risk_symptom:heart palpitations"]


class TestAIAnnotation:

    @pytest.mark.asyncio
    async def test_annotation_attached(self, make_service, checklist, provider_factory):
        provider = provider_factory("openai", cost=0.002)
        service = make_service(providers=[provider])
        enrollment = await service.join_challenge(CUSTOMER, "colorful-diet", checklist)

        result = await service.submit_daily_record(enrollment.id, RecordType.COLOR_CHECKLIST, {"colors": ["red"]})

        assert result.ai_status == AIStatus.ANNOTATED
        assert result.record.ai_analysis.provider == "openai"
        stored = await service.records.get(result.record.id)
        assert stored.ai_analysis is not None

    @pytest.mark.asyncio
    async def test_fallback_provider_cost(self, make_service, checklist, provider_factory):
        failing = provider_factory("openai", cost=0.002, fail=True)
        working = provider_factory("claude", cost=0.003)
        service = make_service(providers=[failing, working])
        enrollment = await service.join_challenge(CUSTOMER, "colorful-diet", checklist)

        result = await service.submit_daily_record(enrollment.id, RecordType.COLOR_CHECKLIST, {"colors": ["red"]})

        assert result.record.ai_analysis.provider == "claude"
        summary = await service.get_ai_cost_summary()
        assert summary.daily == pytest.approx(0.003)
        assert summary.by_provider == {"claude": 0.003}

    @pytest.mark.asyncio
    async def test_cost_limit_keeps_record(self, make_service, checklist, provider_factory):
        provider = provider_factory("openai", cost=0.002)
        service = make_service(providers=[provider], ai_daily_cost_limit=0.01)
        await service.ledger.record("openai", 0.01)
        enrollment = await service.join_challenge(CUSTOMER, "colorful-diet", checklist)

        result = await service.submit_daily_record(enrollment.id, RecordType.COLOR_CHECKLIST, {"colors": ["red"]})

        assert result.ai_status == AIStatus.COST_LIMITED
        assert provider.calls == 0
        stored = await service.records.get(result.record.id)
        assert stored is not None
        assert stored.ai_analysis is None
        assert service.ledger.daily_total() == pytest.approx(0.01)

    @pytest.mark.asyncio
    async def test_all_providers_down(self, make_service, checklist, provider_factory):
        service = make_service(providers=[provider_factory("openai", fail=True)])
        enrollment = await service.join_challenge(CUSTOMER, "colorful-diet", checklist)
        result = await service.submit_daily_record(enrollment.id, RecordType.COLOR_CHECKLIST, {"colors": ["red"]})
        assert result.ai_status == AIStatus.UNAVAILABLE
        assert result.record.ai_analysis is None

    @pytest.mark.asyncio
    async def test_low_confidence_requires_review(self, make_service, checklist, provider_factory):
        service = make_service(providers=[provider_factory("openai", confidence=0.4)])
        enrollment = await service.join_challenge(CUSTOMER, "colorful-diet", checklist)
        result = await service.submit_daily_record(enrollment.id, RecordType.COLOR_CHECKLIST, {"colors": ["red"]})
        assert result.ai_status == AIStatus.LOW_CONFIDENCE
        assert result.requires_review is True

    @pytest.mark.asyncio
    async def test_background_annotation(self, make_service, checklist, provider_factory):
        service = make_service(providers=[provider_factory("openai")], ai_annotation_mode="background")
        enrollment = await service.join_challenge(CUSTOMER, "colorful-diet", checklist)

        result = await service.submit_daily_record(enrollment.id, RecordType.COLOR_CHECKLIST, {"colors": ["red"]})
        assert result.ai_status == AIStatus.PENDING

        await service.ingestor.drain()
        stored = await service.records.get(result.record.id)
        assert stored.ai_analysis.provider == "openai"


class TestTimeDriven:

    @pytest.mark.asyncio
    async def test_completion_and_milestone(self, make_service, checklist, clock, emitter):
        service = make_service(catalog=_short_water_catalog(days=3))
        enrollment = await service.join_challenge(CUSTOMER, "water-short", checklist)

        unlocked = []
        for day in range(3):
            result = await service.submit_daily_record(enrollment.id, RecordType.WATER_INTAKE, {"amountMl": 2000})
            unlocked.extend(result.unlocked_milestones)
            clock.advance(days=1)

        assert [m.days for m in unlocked] == [3]
        assert result.completion_rate == 100.0

        await service.tick()
        current = await service.enrollments.get(enrollment.id)
        assert current.status == ChallengeStatus.COMPLETED
        assert current.completed_at is not None
        assert emitter.for_recipient(CUSTOMER, NotificationType.COMPLETION)

    @pytest.mark.asyncio
    async def test_below_threshold_at_end_fails(self, make_service, checklist, clock):
        service = make_service(catalog=_short_water_catalog(days=3), fail_when_unreachable=False)
        enrollment = await service.join_challenge(CUSTOMER, "water-short", checklist)
        await service.submit_daily_record(enrollment.id, RecordType.WATER_INTAKE, {"amountMl": 2000})

        clock.advance(days=3)
        progress = await service.get_progress(enrollment.id)
        assert progress.status == ChallengeStatus.FAILED
        assert progress.completion_rate == pytest.approx(33.33)

    @pytest.mark.asyncio
    async def test_unreachable_target_fails_early(self, make_service, checklist, clock, emitter):
        service = make_service()
        enrollment = await service.join_challenge(CUSTOMER, "water-2l", checklist)

        clock.advance(days=6)
        await service.tick()
        assert (await service.enrollments.get(enrollment.id)).status == ChallengeStatus.ACTIVE

        clock.advance(days=1)
        await service.tick()
        current = await service.enrollments.get(enrollment.id)
        assert current.status == ChallengeStatus.FAILED
        assert current.failure_reason.startswith("target_unreachable")
        alerts = emitter.for_recipient(CUSTOMER, NotificationType.RISK_ALERT)
        assert alerts[0].priority == NotificationPriority.HIGH

    @pytest.mark.asyncio
    async def test_reminders(self, make_service, checklist, clock, emitter):
        service = make_service()
        enrollment = await service.join_challenge(CUSTOMER, "water-2l", checklist)

        clock.set_hour(12)
        assert (await service.tick())["reminders"] == 1
        assert (await service.tick())["reminders"] == 0

        await service.submit_daily_record(enrollment.id, RecordType.WATER_INTAKE, {"amountMl": 500})
        clock.set_hour(15)
        assert (await service.tick())["reminders"] == 0
        assert len(emitter.for_recipient(CUSTOMER, NotificationType.REMINDER)) == 1


class TestCancelAndQueries:

    @pytest.mark.asyncio
    async def test_cancel(self, make_service, checklist):
        service = make_service()
        enrollment = await service.join_challenge(CUSTOMER, "water-2l", checklist)

        with pytest.raises(InsufficientPermissions):
            await service.cancel_challenge(enrollment.id, "stranger")

        cancelled = await service.cancel_challenge(enrollment.id, CUSTOMER, "travelling")
        assert cancelled.status == ChallengeStatus.CANCELLED

        with pytest.raises(InvalidTransition):
            await service.cancel_challenge(enrollment.id, "admin-1", is_admin=True)
        with pytest.raises(ChallengeNotActive):
            await service.submit_daily_record(enrollment.id, RecordType.WATER_INTAKE, {"amountMl": 500})

    @pytest.mark.asyncio
    async def test_progress_snapshot(self, make_service, checklist, clock):
        service = make_service()
        enrollment = await service.join_challenge(CUSTOMER, "water-2l", checklist)
        await service.submit_daily_record(enrollment.id, RecordType.WATER_INTAKE, {"amountMl": 2100})
        clock.advance(days=1)
        await service.submit_daily_record(enrollment.id, RecordType.WATER_INTAKE, {"amountMl": 2500})

        progress = await service.get_progress(enrollment.id, actor_id=CUSTOMER)

        assert progress.weekly_trend == [0.0, 0.0, 0.0, 0.0, 0.0, 2100.0, 2500.0]
        assert progress.current_streak == 2
        assert progress.longest_streak == 2
        assert progress.completion_rate == pytest.approx(6.67)
        assert progress.next_milestone.target == 3
        assert len(progress.daily_records) == 2

    @pytest.mark.asyncio
    async def test_progress_requires_participant(self, make_service, checklist):
        service = make_service()
        enrollment = await service.join_challenge(CUSTOMER, "water-2l", checklist)
        with pytest.raises(InsufficientPermissions):
            await service.get_progress(enrollment.id, actor_id="stranger")

    @pytest.mark.asyncio
    async def test_listings(self, make_service, checklist):
        service = make_service()
        challenges = await service.list_challenges()
        assert {c.id for c in challenges} == {"water-2l", "colorful-diet", "dii-diet", "fasting-16-8"}

        await service.join_challenge(CUSTOMER, "water-2l", checklist)
        enrollments = await service.list_enrollments(CUSTOMER)
        assert [e.challenge_id for e in enrollments] == ["water-2l"]


class TestConsistency:

    @pytest.mark.asyncio
    async def test_record_after_risk_failure_is_rejected(self, make_service, checklist, clock, monkeypatch):
        service = make_service()
        yesterday = clock.now.date() - timedelta(days=1)
        enrollment = await service.join_challenge(
            CUSTOMER, "fasting-16-8", checklist, doctor_id=DOCTOR, start_date=yesterday
        )
        await service.approve_challenge(enrollment.id, DOCTOR, True)

        store_insert = service.records.insert

        async def slow_insert(record):
            await asyncio.sleep(0.05)
            return await store_insert(record)

        monkeypatch.setattr(service.records, "insert", slow_insert)

        results = await asyncio.gather(
            service.submit_daily_record(
                enrollment.id, RecordType.FASTING_STATUS,
                {"fastingDuration": 18, "conditionScore": 2}, record_date=yesterday,
            ),
            service.submit_daily_record(
                enrollment.id, RecordType.FASTING_STATUS, {"fastingDuration": 16, "conditionScore": 8},
            ),
            return_exceptions=True,
        )

        assert results[0].enrollment_status == ChallengeStatus.FAILED
        assert isinstance(results[1], ChallengeNotActive)
        stored = await service.records.list_for_enrollment(enrollment.id)
        assert [r.record_date for r in stored] == [yesterday]

    @pytest.mark.asyncio
    async def test_progress_reports_today(self, make_service, checklist, clock):
        service = make_service()
        enrollment = await service.join_challenge(CUSTOMER, "water-2l", checklist)
        await service.submit_daily_record(enrollment.id, RecordType.WATER_INTAKE, {"amountMl": 2100})
        clock.advance(days=1)

        progress = await service.get_progress(enrollment.id, actor_id=CUSTOMER)

        assert progress.current_progress == 0.0
        assert progress.weekly_trend[-2:] == [2100.0, 0.0]
        assert progress.completion_rate == pytest.approx(3.33)

    @pytest.mark.asyncio
    async def test_late_record_reports_today(self, make_service, checklist, clock):
        service = make_service()
        enrollment = await service.join_challenge(CUSTOMER, "water-2l", checklist)
        clock.advance(days=1)

        result = await service.submit_daily_record(
            enrollment.id, RecordType.WATER_INTAKE, {"amountMl": 2100}, record_date=enrollment.start_date,
        )
        assert result.current_progress == 0.0
        assert result.completion_rate == pytest.approx(3.33)

    @pytest.mark.asyncio
    async def test_idle_locks_are_released(self, make_service, checklist):
        service = make_service()
        enrollment = await service.join_challenge(CUSTOMER, "water-2l", checklist)
        await asyncio.gather(
            service.submit_daily_record(enrollment.id, RecordType.WATER_INTAKE, {"amountMl": 500}),
            service.get_progress(enrollment.id, actor_id=CUSTOMER),
            service.list_enrollments(CUSTOMER),
        )
        assert len(service.lifecycle._locks) == 0
        assert len(service.ingestor._key_locks) == 0

    @pytest.mark.asyncio
    async def test_sent_reminders_pruned_on_new_day(self, make_service, checklist, clock):
        service = make_service()
        await service.join_challenge(CUSTOMER, "water-2l", checklist)

        clock.set_hour(12)
        await service.tick()
        await service.tick(clock.now.replace(hour=15))
        assert len(service.lifecycle._reminders_sent) == 2

        clock.advance(days=1)
        clock.set_hour(10)
        await service.tick()
        assert service.lifecycle._reminders_sent == set()
