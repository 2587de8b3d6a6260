"""
Shared test fixtures and configuration.
"""

import asyncio
import os
from datetime import datetime, timedelta, timezone

import pytest

# Set test environment variables before importing app modules
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("STORAGE_TYPE", "memory")
os.environ.setdefault("LOCAL_STORAGE_PATH", "/tmp/obdoc_test_data")
os.environ.setdefault("LOG_FILE_ENABLED", "false")
os.environ.setdefault("LOG_CONSOLE_ENABLED", "false")

from obdoc.ai.base import AnalysisProvider
from obdoc.config import Settings
from obdoc.models import AIAnalysis, HealthChecklist
from obdoc.notifications import InMemoryNotificationEmitter
from obdoc.services import create_challenge_service


class FakeClock:
    """Settable clock for time-driven behavior."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: int = 0, hours: int = 0) -> None:
        self.now += timedelta(days=days, hours=hours)

    def set_hour(self, hour: int) -> None:
        self.now = self.now.replace(hour=hour)


class FakeProvider(AnalysisProvider):
    """Scripted analysis provider."""

    def __init__(self, name, cost=0.01, confidence=0.9, fail=False, delay=0.0, timeout=1.0, reported_cost=None):
        super().__init__(name, cost, timeout)
        self.reported_cost = cost if reported_cost is None else reported_cost
        self.confidence = confidence
        self.fail = fail
        self.delay = delay
        self.calls = 0

    async def analyze(self, payload, analysis_type):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError(f"{self.name} unavailable")
        return AIAnalysis(
            provider=self.name,
            analysis_type=analysis_type,
            result={"echo": payload.get("record_type")},
            confidence=self.confidence,
            processing_time=1.0,
            cost=self.reported_cost,
        )


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 3, 10, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
def test_settings():
    return Settings(storage_type="memory", log_file_enabled=False, log_console_enabled=False)


@pytest.fixture
def checklist():
    return HealthChecklist(age=35, weight=80, height=170)


@pytest.fixture
def provider_factory():
    return FakeProvider


@pytest.fixture
def emitter():
    return InMemoryNotificationEmitter()


@pytest.fixture
def make_service(clock, test_settings, emitter):
    """Build a memory-backed service; keyword overrides patch settings."""

    def _make(providers=None, catalog=None, **overrides):
        config = test_settings.model_copy(update=overrides) if overrides else test_settings
        return create_challenge_service(
            config,
            clock=clock,
            providers=providers or [],
            emitter=emitter,
            catalog=catalog,
        )

    return _make
