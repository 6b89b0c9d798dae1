"""
Mama Mind - Datastore Tests

Tests for the InMemoryDatastore and the datastore factory.

Run with: pytest tests/test_datastore.py -v
"""

from datetime import timedelta

import pytest

from mamamind.config import Settings
from mamamind.core.datastore import Datastore, InMemoryDatastore, create_datastore
from mamamind.core.exceptions import ConfigurationError
from mamamind.core.types import (
    Alert,
    FindingCategory,
    ReadingKind,
    Severity,
    SubjectId,
)

from conftest import BASE_TIME, OTHER_PATIENT_ID, PATIENT_ID, make_contraction, make_reading


def make_alert(subject_id: str = PATIENT_ID, severity: Severity = Severity.WARNING) -> Alert:
    return Alert(
        subject_id=SubjectId(subject_id),
        severity=severity,
        category=FindingCategory.BLOOD_PRESSURE,
        message="Blood pressure is elevated.",
    )


class TestReadings:

    @pytest.mark.asyncio
    async def test_insert_assigns_id(self, datastore: InMemoryDatastore):
        reading = make_reading(ReadingKind.HEART_RATE, heart_rate=80)
        stored = await datastore.insert_reading(reading)
        assert stored.id
        assert stored.reading == reading

    @pytest.mark.asyncio
    async def test_query_recent_filters_kind_subject_and_time(self, datastore: InMemoryDatastore):
        await datastore.insert_reading(make_contraction(BASE_TIME - timedelta(minutes=10)))
        await datastore.insert_reading(make_contraction(BASE_TIME - timedelta(minutes=30)))
        await datastore.insert_reading(make_contraction(BASE_TIME - timedelta(hours=3)))
        await datastore.insert_reading(make_contraction(BASE_TIME, subject_id=OTHER_PATIENT_ID))
        await datastore.insert_reading(make_reading(ReadingKind.HEART_RATE, heart_rate=80))

        recent = await datastore.query_recent_readings(
            PATIENT_ID,
            ReadingKind.CONTRACTION,
            since=BASE_TIME - timedelta(hours=2),
            limit=10,
        )

        assert [r.recorded_at for r in recent] == [
            BASE_TIME - timedelta(minutes=10),
            BASE_TIME - timedelta(minutes=30),
        ]

    @pytest.mark.asyncio
    async def test_query_recent_applies_until_before_limit(self, datastore: InMemoryDatastore):
        for offset in (0, 8, 16, 40, 50, 60):
            await datastore.insert_reading(make_contraction(BASE_TIME + timedelta(minutes=offset)))

        recent = await datastore.query_recent_readings(
            PATIENT_ID,
            ReadingKind.CONTRACTION,
            since=BASE_TIME - timedelta(hours=2),
            until=BASE_TIME + timedelta(minutes=24),
            limit=2,
        )

        assert [r.recorded_at for r in recent] == [
            BASE_TIME + timedelta(minutes=16),
            BASE_TIME + timedelta(minutes=8),
        ]

    @pytest.mark.asyncio
    async def test_list_and_count(self, datastore: InMemoryDatastore):
        await datastore.insert_reading(make_reading(ReadingKind.HEART_RATE, heart_rate=80))
        await datastore.insert_reading(
            make_reading(ReadingKind.BLOOD_PRESSURE, at=BASE_TIME - timedelta(days=10), systolic=120, diastolic=80)
        )

        assert len(await datastore.list_readings(PATIENT_ID)) == 2
        assert len(await datastore.list_readings(PATIENT_ID, kind=ReadingKind.HEART_RATE)) == 1
        assert await datastore.count_readings(PATIENT_ID) == 2
        assert await datastore.count_readings(PATIENT_ID, since=BASE_TIME - timedelta(days=7)) == 1
        assert await datastore.reading_kinds(PATIENT_ID) == [
            ReadingKind.BLOOD_PRESSURE,
            ReadingKind.HEART_RATE,
        ]
        assert await datastore.count_readings(OTHER_PATIENT_ID) == 0


class TestAlerts:

    @pytest.mark.asyncio
    async def test_insert_and_list(self, datastore: InMemoryDatastore):
        stored = await datastore.insert_alert(make_alert())
        alerts = await datastore.list_alerts(PATIENT_ID)

        assert [a.id for a in alerts] == [stored.id]
        assert not stored.acknowledged
        assert await datastore.count_alerts(PATIENT_ID, unread_only=True) == 1

    @pytest.mark.asyncio
    async def test_acknowledge_is_idempotent(self, datastore: InMemoryDatastore):
        stored = await datastore.insert_alert(make_alert())

        first = await datastore.update_alert_acknowledged(stored.id, PATIENT_ID, BASE_TIME)
        second = await datastore.update_alert_acknowledged(
            stored.id, PATIENT_ID, BASE_TIME + timedelta(hours=1)
        )

        assert first.acknowledged_at == BASE_TIME
        assert second.acknowledged_at == BASE_TIME
        assert await datastore.count_alerts(PATIENT_ID, unread_only=True) == 0
        assert await datastore.list_alerts(PATIENT_ID, unread_only=True) == []

    @pytest.mark.asyncio
    async def test_acknowledge_unknown_or_foreign(self, datastore: InMemoryDatastore):
        stored = await datastore.insert_alert(make_alert())

        assert await datastore.update_alert_acknowledged("missing", PATIENT_ID, BASE_TIME) is None
        assert await datastore.update_alert_acknowledged(stored.id, OTHER_PATIENT_ID, BASE_TIME) is None
        assert (await datastore.list_alerts(PATIENT_ID))[0].acknowledged_at is None


class TestFactory:

    def test_memory_backend(self):
        store = create_datastore(Settings(datastore_backend="memory"))
        assert isinstance(store, InMemoryDatastore)
        assert isinstance(store, Datastore)

    def test_unknown_backend(self):
        with pytest.raises(ConfigurationError):
            create_datastore(Settings(datastore_backend="sqlite"))
