"""
Storage Interfaces - persistence boundary of the challenge engine.
Implementations can be swapped (in-memory, local JSON files, a database).
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional, List, Iterable

from ..models import (
    Challenge, CustomerChallenge, ChallengeStatus, DailyRecord, RecordType, AIAnalysis,
)


class ChallengeCatalog(ABC):
    """Read-only challenge catalog."""

    @abstractmethod
    async def get(self, challenge_id: str) -> Optional[Challenge]:
        """
        Get a challenge by id.

        Args:
            challenge_id: Challenge identifier

        Returns:
            Optional[Challenge]: The challenge, or None if unknown
        """
        pass

    @abstractmethod
    async def list(self, active_only: bool = True) -> List[Challenge]:
        """List catalog challenges."""
        pass


class EnrollmentStore(ABC):
    """Storage for CustomerChallenge aggregates."""

    @abstractmethod
    async def get(self, enrollment_id: str) -> Optional[CustomerChallenge]:
        """
        Load an enrollment.

        Args:
            enrollment_id: Enrollment identifier

        Returns:
            Optional[CustomerChallenge]: A copy of the stored enrollment, or None
        """
        pass

    @abstractmethod
    async def insert(self, enrollment: CustomerChallenge) -> CustomerChallenge:
        """Store a new enrollment. Raises ValueError if the id already exists."""
        pass

    @abstractmethod
    async def update(self, enrollment: CustomerChallenge) -> CustomerChallenge:
        """Replace a stored enrollment. Raises KeyError if it does not exist."""
        pass

    @abstractmethod
    async def list_for_customer(self, customer_id: str) -> List[CustomerChallenge]:
        """List every enrollment of a customer, oldest first."""
        pass

    @abstractmethod
    async def list_by_status(self, statuses: Iterable[ChallengeStatus]) -> List[CustomerChallenge]:
        """List enrollments whose status is in statuses."""
        pass


class RecordStore(ABC):
    """
    Append-only storage for DailyRecords.

    Implementations must enforce the (enrollment, date, record type) key: a
    record without supersedes_id is rejected with DuplicateRecordError when
    the key is already taken.
    """

    @abstractmethod
    async def insert(self, record: DailyRecord) -> DailyRecord:
        """
        Append a record.

        Args:
            record: Record to store

        Returns:
            DailyRecord: The stored record

        Raises:
            DuplicateRecordError: If the key is taken and record is not a correction
        """
        pass

    @abstractmethod
    async def get(self, record_id: str) -> Optional[DailyRecord]:
        """Load a record by id."""
        pass

    @abstractmethod
    async def find(
        self,
        enrollment_id: str,
        record_date: date,
        record_type: RecordType
    ) -> Optional[DailyRecord]:
        """Latest record for the key, or None."""
        pass

    @abstractmethod
    async def list_for_enrollment(self, enrollment_id: str) -> List[DailyRecord]:
        """All records of an enrollment ordered by (record_date, created_at)."""
        pass

    @abstractmethod
    async def attach_analysis(self, record_id: str, analysis: AIAnalysis) -> Optional[DailyRecord]:
        """
        Attach an AI analysis to a stored record.
        This is the only update a record ever receives.
        """
        pass
