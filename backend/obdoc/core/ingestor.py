"""
Daily Record Ingestor.

Flow:
1. Load the enrollment and make sure it is active
2. Validate and normalize the payload for the challenge type
3. Write the record under its (enrollment, date, type) lock
4. Recompute progress, evaluate risk and update the enrollment
5. Annotate the record with AI analysis (inline or in the background)
"""

import asyncio
import logging
import uuid
from datetime import date
from typing import Optional, Dict, Any, Set, Tuple

from pydantic import ValidationError

from ..ai.orchestrator import AIOrchestrator
from ..models import (
    Challenge, CustomerChallenge, ChallengeStatus, DailyRecord, RecordType,
    AIAnalysisType, AIStatus, RiskAssessment, SubmissionResult,
)
from ..models.record import WaterIntakeData, ColorChecklistData, FoodLogData, FastingStatusData
from ..storage.interface import RecordStore
from ..utils.locks import KeyedLocks
from .exceptions import (
    AIServiceError, CostLimitExceeded, ChallengeNotActive, DailyRecordExists,
    DuplicateRecordError, EnrollmentNotFound, InvalidRecordData,
)
from .lifecycle import LifecycleManager
from .progress import RECORD_TYPES
from .risk import evaluate_risk

logger = logging.getLogger(__name__)

ANALYSIS_TYPES = {
    RecordType.WATER_INTAKE: None,
    RecordType.COLOR_CHECKLIST: AIAnalysisType.FOOD_RECOGNITION,
    RecordType.FOOD_LOG: AIAnalysisType.DII_CALCULATION,
    RecordType.FASTING_STATUS: AIAnalysisType.RISK_DETECTION,
}


class DailyRecordIngestor:
    """Validates, stores and post-processes daily submissions."""

    def __init__(
        self,
        lifecycle: LifecycleManager,
        records: RecordStore,
        orchestrator: Optional[AIOrchestrator] = None,
        annotation_mode: str = "inline",
        water_min_amount_ml: float = 50.0,
        water_max_daily_ml: float = 10000.0,
    ):
        self.lifecycle = lifecycle
        self.records = records
        self.orchestrator = orchestrator
        self.annotation_mode = annotation_mode
        self.water_min_amount_ml = water_min_amount_ml
        self.water_max_daily_ml = water_max_daily_ml
        self._key_locks = KeyedLocks()
        self._background: Set[asyncio.Task] = set()

    # ==================== Validation ====================

    def normalize(self, record_type: RecordType, record_data: Dict[str, Any]) -> Tuple[Dict[str, Any], float]:
        """
        Validate a payload and convert it to its stored form.

        Returns:
            (normalized record_data, progress_value)

        Raises:
            InvalidRecordData: If the payload is not valid for record_type
        """
        if not isinstance(record_data, dict):
            raise InvalidRecordData("Record data must be an object.")

        try:
            if record_type == RecordType.WATER_INTAKE:
                data = WaterIntakeData.model_validate(record_data)
                for entry in data.intakes:
                    if entry.amount_ml < self.water_min_amount_ml:
                        raise InvalidRecordData(
                            f"Each water intake must be at least {self.water_min_amount_ml:g} ml."
                        )
                if data.total_ml > self.water_max_daily_ml:
                    raise InvalidRecordData(
                        f"Daily water intake cannot exceed {self.water_max_daily_ml:g} ml."
                    )
                normalized = {
                    "intakes": [entry.model_dump() for entry in data.intakes],
                    "total_ml": data.total_ml,
                }
                return normalized, data.total_ml

            if record_type == RecordType.COLOR_CHECKLIST:
                data = ColorChecklistData.model_validate(record_data)
                normalized = {"colors": data.covered, "foods": data.foods}
                return normalized, float(len(data.covered))

            if record_type == RecordType.FOOD_LOG:
                data = FoodLogData.model_validate(record_data)
                normalized = {
                    "daily_dii": data.daily_dii,
                    "meals": {
                        slot: [item.model_dump() for item in items]
                        for slot, items in data.meals.items()
                    },
                }
                return normalized, data.daily_dii

            if record_type == RecordType.FASTING_STATUS:
                data = FastingStatusData.model_validate(record_data)
                return data.model_dump(), data.fasting_duration
        except ValidationError as e:
            errors = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'record'}: {err['msg']}"
                for err in e.errors()
            )
            raise InvalidRecordData(f"Invalid record data: {errors}")

        raise InvalidRecordData(f"Unsupported record type: {record_type}")

    def _check_submission(
        self,
        enrollment: CustomerChallenge,
        challenge: Challenge,
        record_type: RecordType,
        record_date: date
    ) -> None:
        if enrollment.status != ChallengeStatus.ACTIVE:
            raise ChallengeNotActive(status=enrollment.status.value)

        expected = RECORD_TYPES[challenge.type]
        if record_type != expected:
            raise InvalidRecordData(
                f"A {challenge.type.value} challenge accepts {expected.value} records, not {record_type.value}."
            )

        if record_date > self.lifecycle.today():
            raise InvalidRecordData("Records cannot be submitted for future dates.")
        if not enrollment.accepts_date(record_date):
            raise InvalidRecordData(
                f"Record date {record_date.isoformat()} is outside the challenge window "
                f"{enrollment.start_date.isoformat()} to {enrollment.end_date.isoformat()}."
            )

    # ==================== Submission ====================

    async def submit(
        self,
        enrollment_id: str,
        record_type: RecordType,
        record_data: Dict[str, Any],
        notes: Optional[str] = None,
        record_date: Optional[date] = None,
    ) -> SubmissionResult:
        """
        Submit the daily record for a (date, type) key.

        Raises:
            EnrollmentNotFound, ChallengeNotActive, InvalidRecordData, DailyRecordExists
        """
        return await self._ingest(enrollment_id, record_type, record_data, notes, record_date)

    async def correct(
        self,
        enrollment_id: str,
        record_id: str,
        record_data: Dict[str, Any],
        notes: Optional[str] = None,
    ) -> SubmissionResult:
        """
        Append a record that supersedes an earlier one for the same key.

        Raises:
            EnrollmentNotFound, ChallengeNotActive, InvalidRecordData
        """
        original = await self.records.get(record_id)
        if original is None or original.customer_challenge_id != enrollment_id:
            raise EnrollmentNotFound(f"Record {record_id} not found for this enrollment.", record_id=record_id)

        return await self._ingest(
            enrollment_id,
            original.record_type,
            record_data,
            notes,
            original.record_date,
            supersedes=original,
        )

    async def _ingest(
        self,
        enrollment_id: str,
        record_type: RecordType,
        record_data: Dict[str, Any],
        notes: Optional[str],
        record_date: Optional[date],
        supersedes: Optional[DailyRecord] = None,
    ) -> SubmissionResult:
        enrollment, challenge = await self.lifecycle.load(enrollment_id)
        record_date = record_date or self.lifecycle.today()
        self._check_submission(enrollment, challenge, record_type, record_date)
        normalized, progress_value = self.normalize(record_type, record_data)

        key = (enrollment_id, record_date, record_type)
        async with self._key_locks.hold(key), self.lifecycle.lock_for(enrollment_id):
            # Status may have changed while waiting, e.g. a risky record for another day
            enrollment, challenge = await self.lifecycle.fetch(enrollment_id)
            self._check_submission(enrollment, challenge, record_type, record_date)

            latest = await self.records.find(enrollment_id, record_date, record_type)
            if supersedes is None and latest is not None:
                raise DailyRecordExists(record_date=record_date.isoformat())
            if supersedes is not None and latest is not None and latest.id != supersedes.id:
                supersedes = latest

            record = DailyRecord(
                id=str(uuid.uuid4()),
                customer_challenge_id=enrollment_id,
                record_date=record_date,
                record_type=record_type,
                record_data=normalized,
                progress_value=progress_value,
                notes=notes,
                supersedes_id=supersedes.id if supersedes else None,
                created_at=self.lifecycle.clock(),
            )
            try:
                # The write completes even if the caller is cancelled
                await asyncio.shield(self.records.insert(record))
            except DuplicateRecordError:
                raise DailyRecordExists(record_date=record_date.isoformat())

            logger.info(
                f"Stored {record_type.value} record for {record_date.isoformat()}",
                extra={"extra_fields": {
                    "enrollment_id": enrollment_id,
                    "record_id": record.id,
                    "progress_value": progress_value,
                    "correction": supersedes is not None,
                }}
            )

            result = await self.lifecycle.recompute(enrollment, challenge)
            enrollment.current_progress = result.current_progress
            enrollment.completion_rate = result.completion_rate

            risk = evaluate_risk(
                enrollment.health_checklist,
                challenge.type,
                challenge.difficulty_level,
                self.lifecycle.criteria,
                record_data=normalized,
            )
            unlocked = []
            if risk.is_high_risk:
                await self.lifecycle.fail_for_risk(enrollment, challenge, risk.triggered_reasons)
            else:
                unlocked = await self.lifecycle.apply_progress(enrollment, challenge, result)
            await self.lifecycle.save(enrollment)

        if risk.is_high_risk:
            ai_status, ai_message = AIStatus.SKIPPED, "Analysis skipped: health risk detected."
        else:
            ai_status, ai_message, record = await self._annotate(record, enrollment, challenge)

        return SubmissionResult(
            record=record,
            enrollment_status=enrollment.status,
            completion_rate=enrollment.completion_rate,
            current_progress=enrollment.current_progress,
            risk=risk,
            ai_status=ai_status,
            ai_message=ai_message,
            requires_review=ai_status == AIStatus.LOW_CONFIDENCE,
            unlocked_milestones=unlocked,
        )

    # ==================== AI annotation ====================

    async def _annotate(
        self,
        record: DailyRecord,
        enrollment: CustomerChallenge,
        challenge: Challenge
    ) -> Tuple[AIStatus, Optional[str], DailyRecord]:
        analysis_type = ANALYSIS_TYPES.get(record.record_type)
        if analysis_type is None or self.orchestrator is None or not self.orchestrator.enabled:
            return AIStatus.SKIPPED, None, record

        payload = {
            "challenge_type": challenge.type.value,
            "record_type": record.record_type.value,
            "record_date": record.record_date.isoformat(),
            "record_data": record.record_data,
            "notes": record.notes,
        }

        if self.annotation_mode == "background":
            task = asyncio.create_task(self._annotate_now(record, payload, analysis_type))
            self._background.add(task)
            task.add_done_callback(self._background.discard)
            return AIStatus.PENDING, "Analysis scheduled.", record

        return await self._annotate_now(record, payload, analysis_type)

    async def _annotate_now(
        self,
        record: DailyRecord,
        payload: Dict[str, Any],
        analysis_type: AIAnalysisType
    ) -> Tuple[AIStatus, Optional[str], DailyRecord]:
        try:
            analysis = await self.orchestrator.analyze(payload, analysis_type)
        except CostLimitExceeded as e:
            logger.warning(f"AI annotation skipped for record {record.id}: {e.message}")
            return AIStatus.COST_LIMITED, e.message, record
        except AIServiceError as e:
            logger.warning(f"AI annotation unavailable for record {record.id}: {e.message}")
            return AIStatus.UNAVAILABLE, e.message, record

        updated = await self.records.attach_analysis(record.id, analysis)
        record = updated or record.model_copy(update={"ai_analysis": analysis})
        if analysis.low_confidence:
            return AIStatus.LOW_CONFIDENCE, "Low-confidence analysis; doctor review recommended.", record
        return AIStatus.ANNOTATED, None, record

    async def drain(self) -> None:
        """Wait for background annotations to finish."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def aclose(self) -> None:
        for task in list(self._background):
            task.cancel()
        await self.drain()
