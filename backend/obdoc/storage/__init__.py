"""Storage module - persistence boundary and its implementations."""

from .interface import ChallengeCatalog, EnrollmentStore, RecordStore
from .memory_storage import InMemoryChallengeCatalog, InMemoryEnrollmentStore, InMemoryRecordStore
from .local_storage import LocalDocumentStorage, LocalEnrollmentStore, LocalRecordStore
from .catalog import default_challenges

__all__ = [
    'ChallengeCatalog', 'EnrollmentStore', 'RecordStore',
    'InMemoryChallengeCatalog', 'InMemoryEnrollmentStore', 'InMemoryRecordStore',
    'LocalDocumentStorage', 'LocalEnrollmentStore', 'LocalRecordStore',
    'default_challenges',
]
