"""
In-Memory Storage Implementation.
Keeps enrollments and records in process memory. Suitable for tests and
single-process deployments; every read returns a copy.
"""

import asyncio
from datetime import date
from typing import Optional, List, Dict, Iterable

from ..core.exceptions import DuplicateRecordError
from ..models import (
    Challenge, CustomerChallenge, ChallengeStatus, DailyRecord, RecordType, AIAnalysis, order_records,
)
from .interface import ChallengeCatalog, EnrollmentStore, RecordStore


class InMemoryChallengeCatalog(ChallengeCatalog):
    """Catalog backed by a fixed list of challenges."""

    def __init__(self, challenges: Iterable[Challenge]):
        self._challenges: Dict[str, Challenge] = {c.id: c for c in challenges}

    async def get(self, challenge_id: str) -> Optional[Challenge]:
        return self._challenges.get(challenge_id)

    async def list(self, active_only: bool = True) -> List[Challenge]:
        return [c for c in self._challenges.values() if c.is_active or not active_only]


class InMemoryEnrollmentStore(EnrollmentStore):

    def __init__(self):
        self._items: Dict[str, CustomerChallenge] = {}
        self._lock = asyncio.Lock()

    async def get(self, enrollment_id: str) -> Optional[CustomerChallenge]:
        item = self._items.get(enrollment_id)
        return item.model_copy(deep=True) if item else None

    async def insert(self, enrollment: CustomerChallenge) -> CustomerChallenge:
        async with self._lock:
            if enrollment.id in self._items:
                raise ValueError(f"Enrollment {enrollment.id} already exists")
            self._items[enrollment.id] = enrollment.model_copy(deep=True)
        return enrollment

    async def update(self, enrollment: CustomerChallenge) -> CustomerChallenge:
        async with self._lock:
            if enrollment.id not in self._items:
                raise KeyError(enrollment.id)
            self._items[enrollment.id] = enrollment.model_copy(deep=True)
        return enrollment

    async def list_for_customer(self, customer_id: str) -> List[CustomerChallenge]:
        items = [e for e in self._items.values() if e.customer_id == customer_id]
        return [e.model_copy(deep=True) for e in sorted(items, key=lambda e: e.created_at)]

    async def list_by_status(self, statuses: Iterable[ChallengeStatus]) -> List[CustomerChallenge]:
        wanted = set(statuses)
        return [e.model_copy(deep=True) for e in self._items.values() if e.status in wanted]


class InMemoryRecordStore(RecordStore):

    def __init__(self):
        self._records: Dict[str, DailyRecord] = {}
        self._by_key: Dict[tuple, List[str]] = {}
        self._lock = asyncio.Lock()

    async def insert(self, record: DailyRecord) -> DailyRecord:
        async with self._lock:
            taken = self._by_key.get(record.key, [])
            if taken and record.supersedes_id is None:
                raise DuplicateRecordError(str(record.key))
            self._records[record.id] = record.model_copy(deep=True)
            self._by_key.setdefault(record.key, []).append(record.id)
        return record

    async def get(self, record_id: str) -> Optional[DailyRecord]:
        record = self._records.get(record_id)
        return record.model_copy(deep=True) if record else None

    async def find(
        self,
        enrollment_id: str,
        record_date: date,
        record_type: RecordType
    ) -> Optional[DailyRecord]:
        ids = self._by_key.get((enrollment_id, record_date, record_type))
        if not ids:
            return None
        return order_records(self._records[i] for i in ids)[-1].model_copy(deep=True)

    async def list_for_enrollment(self, enrollment_id: str) -> List[DailyRecord]:
        records = [r for r in self._records.values() if r.customer_challenge_id == enrollment_id]
        return [r.model_copy(deep=True) for r in order_records(records)]

    async def attach_analysis(self, record_id: str, analysis: AIAnalysis) -> Optional[DailyRecord]:
        async with self._lock:
            record = self._records.get(record_id)
            if record is None:
                return None
            record.ai_analysis = analysis
            return record.model_copy(deep=True)
