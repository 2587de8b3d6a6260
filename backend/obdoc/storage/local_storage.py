"""
Local Filesystem Storage Implementation.
Stores enrollments and records as JSON documents under a base directory.
"""

import asyncio
import logging
import aiofiles
from pathlib import Path
from datetime import date
from typing import Optional, List, Iterable

from ..core.exceptions import DuplicateRecordError
from ..models import CustomerChallenge, ChallengeStatus, DailyRecord, RecordType, AIAnalysis, order_records
from .interface import EnrollmentStore, RecordStore

logger = logging.getLogger(__name__)


class LocalDocumentStorage:
    """
    Minimal JSON document storage on the local filesystem.
    All paths are relative to the base directory.
    """

    def __init__(self, base_dir: str = "./data"):
        """
        Initialize local storage with a base directory.

        Args:
            base_dir: Base directory for all stored documents
        """
        self.base_dir = Path(base_dir).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _get_full_path(self, path: str) -> Path:
        """Convert relative path to full absolute path within base directory."""
        full_path = (self.base_dir / path).resolve()

        # Security check: ensure path is within base_dir
        if not str(full_path).startswith(str(self.base_dir)):
            raise ValueError(f"Invalid path: {path} - path traversal detected")

        return full_path

    async def save(self, path: str, content: str) -> None:
        """Write a document, replacing any previous content."""
        full_path = self._get_full_path(path)
        full_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = full_path.with_suffix(full_path.suffix + ".tmp")
        async with aiofiles.open(tmp_path, 'w', encoding='utf-8') as f:
            await f.write(content)
        tmp_path.replace(full_path)

    async def load(self, path: str) -> Optional[str]:
        """Read a document, or None if it does not exist."""
        full_path = self._get_full_path(path)
        if not full_path.exists():
            return None
        async with aiofiles.open(full_path, 'r', encoding='utf-8') as f:
            return await f.read()

    async def exists(self, path: str) -> bool:
        return self._get_full_path(path).exists()

    async def list(self, path: str, pattern: str = "*.json") -> List[str]:
        """List documents matching pattern under path, as relative paths."""
        full_path = self._get_full_path(path)
        if not full_path.exists():
            return []
        return sorted(
            str(p.relative_to(self.base_dir))
            for p in full_path.glob(pattern)
            if p.is_file()
        )


class LocalEnrollmentStore(EnrollmentStore):
    """Enrollments stored as enrollments/<id>.json."""

    def __init__(self, storage: LocalDocumentStorage):
        self.storage = storage
        self.enrollments_dir = "enrollments"
        self._lock = asyncio.Lock()

    def _path(self, enrollment_id: str) -> str:
        return f"{self.enrollments_dir}/{enrollment_id}.json"

    async def get(self, enrollment_id: str) -> Optional[CustomerChallenge]:
        content = await self.storage.load(self._path(enrollment_id))
        if content is None:
            return None
        return CustomerChallenge.model_validate_json(content)

    async def insert(self, enrollment: CustomerChallenge) -> CustomerChallenge:
        async with self._lock:
            if await self.storage.exists(self._path(enrollment.id)):
                raise ValueError(f"Enrollment {enrollment.id} already exists")
            await self.storage.save(self._path(enrollment.id), enrollment.model_dump_json(indent=2))
        return enrollment

    async def update(self, enrollment: CustomerChallenge) -> CustomerChallenge:
        async with self._lock:
            if not await self.storage.exists(self._path(enrollment.id)):
                raise KeyError(enrollment.id)
            await self.storage.save(self._path(enrollment.id), enrollment.model_dump_json(indent=2))
        return enrollment

    async def _load_all(self) -> List[CustomerChallenge]:
        enrollments = []
        for path in await self.storage.list(self.enrollments_dir):
            content = await self.storage.load(path)
            if content is None:
                continue
            enrollments.append(CustomerChallenge.model_validate_json(content))
        return enrollments

    async def list_for_customer(self, customer_id: str) -> List[CustomerChallenge]:
        items = [e for e in await self._load_all() if e.customer_id == customer_id]
        return sorted(items, key=lambda e: e.created_at)

    async def list_by_status(self, statuses: Iterable[ChallengeStatus]) -> List[CustomerChallenge]:
        wanted = set(statuses)
        return [e for e in await self._load_all() if e.status in wanted]


class LocalRecordStore(RecordStore):
    """Records stored as records/<enrollment_id>/<record_id>.json."""

    def __init__(self, storage: LocalDocumentStorage):
        self.storage = storage
        self.records_dir = "records"
        self._lock = asyncio.Lock()

    def _path(self, record: DailyRecord) -> str:
        return f"{self.records_dir}/{record.customer_challenge_id}/{record.id}.json"

    async def _save(self, record: DailyRecord) -> None:
        await self.storage.save(self._path(record), record.model_dump_json(indent=2))

    async def insert(self, record: DailyRecord) -> DailyRecord:
        async with self._lock:
            existing = await self.find(record.customer_challenge_id, record.record_date, record.record_type)
            if existing is not None and record.supersedes_id is None:
                raise DuplicateRecordError(str(record.key))
            await self._save(record)
        logger.debug(f"Stored record {record.id} for enrollment {record.customer_challenge_id}")
        return record

    async def get(self, record_id: str) -> Optional[DailyRecord]:
        matches = await self.storage.list(self.records_dir, pattern=f"*/{record_id}.json")
        if not matches:
            return None
        content = await self.storage.load(matches[0])
        return DailyRecord.model_validate_json(content) if content else None

    async def find(
        self,
        enrollment_id: str,
        record_date: date,
        record_type: RecordType
    ) -> Optional[DailyRecord]:
        matches = [
            r for r in await self.list_for_enrollment(enrollment_id)
            if r.record_date == record_date and r.record_type == record_type
        ]
        return matches[-1] if matches else None

    async def list_for_enrollment(self, enrollment_id: str) -> List[DailyRecord]:
        records = []
        for path in await self.storage.list(f"{self.records_dir}/{enrollment_id}"):
            content = await self.storage.load(path)
            if content is None:
                continue
            records.append(DailyRecord.model_validate_json(content))
        return order_records(records)

    async def attach_analysis(self, record_id: str, analysis: AIAnalysis) -> Optional[DailyRecord]:
        async with self._lock:
            record = await self.get(record_id)
            if record is None:
                return None
            record.ai_analysis = analysis
            await self._save(record)
        return record
