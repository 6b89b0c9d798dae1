"""
Mama Mind - Test Configuration and Fixtures

Shared fixtures for all test modules.
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Generator, List, Tuple

import pytest
from fastapi.testclient import TestClient

# Ensure backend package is importable
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from mamamind.config import Settings
from mamamind.core.datastore import InMemoryDatastore
from mamamind.core.exceptions import NotificationError
from mamamind.core.notifier import ChannelNotifier
from mamamind.core.pipeline import IntakeOrchestrator
from mamamind.core.types import (
    ContractionIntensity,
    Reading,
    ReadingKind,
    SubjectId,
)


PATIENT_ID = "patient-1"
OTHER_PATIENT_ID = "patient-2"
CLINICIAN_ID = "clinician-1"

BASE_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
    config.addinivalue_line("markers", "integration: marks tests requiring external dependencies")


# =============================================================================
# Test Doubles
# =============================================================================

class RecordingNotifier(ChannelNotifier):
    """ChannelNotifier that records every publish and can be told to fail."""

    def __init__(self):
        super().__init__()
        self.events: List[Tuple[str, str, Dict[str, Any]]] = []
        self.fail = False

    async def publish(self, subject_id: str, event: str, payload: Dict[str, Any]) -> int:
        self.events.append((subject_id, event, payload))
        if self.fail:
            raise NotificationError("channel unavailable")
        return await super().publish(subject_id, event, payload)

    def events_named(self, event: str) -> List[Tuple[str, str, Dict[str, Any]]]:
        return [e for e in self.events if e[1] == event]


def make_reading(
    kind: ReadingKind,
    at: datetime = BASE_TIME,
    subject_id: str = PATIENT_ID,
    **values: Any,
) -> Reading:
    """Build a reading for ``subject_id`` recorded at ``at``."""
    return Reading(subject_id=SubjectId(subject_id), kind=kind, recorded_at=at, **values)


def make_contraction(
    at: datetime,
    intensity: ContractionIntensity = ContractionIntensity.MODERATE,
    subject_id: str = PATIENT_ID,
) -> Reading:
    return make_reading(
        ReadingKind.CONTRACTION,
        at=at,
        subject_id=subject_id,
        duration_seconds=50,
        intensity=intensity,
    )


def make_kick_session(at: datetime, count: int, duration_minutes: float = 60) -> Reading:
    return make_reading(
        ReadingKind.KICK_COUNT,
        at=at,
        count=count,
        duration_minutes=duration_minutes,
    )


def minutes(n: float) -> timedelta:
    return timedelta(minutes=n)


# =============================================================================
# Settings Fixtures
# =============================================================================

@pytest.fixture
def test_settings() -> Settings:
    """
    Create test settings with safe defaults.

    In-memory datastore, static tokens for two patients and one clinician.
    """
    return Settings(
        app_env="testing",
        app_debug=True,
        app_log_level="WARNING",  # Reduce noise in tests
        datastore_backend="memory",
        auth_backend="static",
        api_tokens=(
            f"patient-token={PATIENT_ID}:patient,"
            f"other-token={OTHER_PATIENT_ID}:patient,"
            f"clinician-token={CLINICIAN_ID}:clinician"
        ),
        intake_timeout_seconds=2.0,
        notify_on_critical=True,
        anonymize_logs=True,
    )


# =============================================================================
# Core Fixtures
# =============================================================================

@pytest.fixture
def datastore() -> InMemoryDatastore:
    """Create a fresh in-memory datastore."""
    return InMemoryDatastore()


@pytest.fixture
def notifier() -> RecordingNotifier:
    """Create a notifier that records published events."""
    return RecordingNotifier()


@pytest.fixture
def orchestrator(
    test_settings: Settings,
    datastore: InMemoryDatastore,
    notifier: RecordingNotifier,
) -> IntakeOrchestrator:
    """Create an orchestrator over the in-memory datastore."""
    return IntakeOrchestrator(
        datastore=datastore,
        notifier=notifier,
        settings=test_settings,
    )


# =============================================================================
# FastAPI App Fixture
# =============================================================================

@pytest.fixture
def app(test_settings: Settings, datastore: InMemoryDatastore, notifier: RecordingNotifier):
    """Create a FastAPI app wired to the shared test datastore and notifier."""
    # Import here so sys.path is set up first
    from main import create_app

    return create_app(test_settings, datastore=datastore, notifier=notifier)


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app."""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def patient_headers() -> Dict[str, str]:
    return {"Authorization": "Bearer patient-token"}


@pytest.fixture
def other_patient_headers() -> Dict[str, str]:
    return {"Authorization": "Bearer other-token"}


@pytest.fixture
def clinician_headers() -> Dict[str, str]:
    return {"Authorization": "Bearer clinician-token"}
