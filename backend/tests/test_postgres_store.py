"""
Mama Mind - Postgres Datastore Tests

Exercises PostgresDatastore against a mocked asyncpg pool: row mapping,
error translation and the SQL each method sends.

Run with: pytest tests/test_postgres_store.py -v
"""

import json
import uuid
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import asyncpg
import pytest

from mamamind.core.exceptions import PersistenceError, UpstreamUnavailableError
from mamamind.core.postgres_store import (
    PostgresDatastore,
    _row_to_alert,
    _row_to_reading,
    _translate_errors,
)
from mamamind.core.types import (
    AlertSource,
    ContractionIntensity,
    FindingCategory,
    ReadingKind,
    Severity,
)

from conftest import BASE_TIME, PATIENT_ID


_READING_ID = uuid.UUID("7f3c1a52-9a0e-4c41-8f55-2d8a9c4e1b10")
_ALERT_ID = uuid.UUID("0b6e2f44-5c7d-4e8a-9b1f-3a2c4d5e6f70")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _reading_row(**overrides) -> dict:
    row = {
        "id": _READING_ID,
        "subject_id": PATIENT_ID,
        "kind": "contraction",
        "measurements": {"duration_seconds": 55, "intensity": "strong"},
        "notes": None,
        "recorded_at": BASE_TIME,
        "created_at": BASE_TIME + timedelta(seconds=1),
    }
    row.update(overrides)
    return row


def _alert_row(**overrides) -> dict:
    row = {
        "id": _ALERT_ID,
        "subject_id": PATIENT_ID,
        "reading_id": _READING_ID,
        "severity": "critical",
        "category": "blood_pressure",
        "message": "Blood pressure 145/95 mmHg is in the hypertensive range.",
        "metadata": {"systolic": 145, "diastolic": 95},
        "source": "triage",
        "created_at": BASE_TIME,
        "acknowledged_at": None,
    }
    row.update(overrides)
    return row


def _make_store(fetch=None, fetchrow=None, fetchval=None):
    """Create a datastore whose pool is a mock with AsyncMock query methods."""
    pool = MagicMock()
    pool.fetch = AsyncMock(return_value=fetch if fetch is not None else [])
    pool.fetchrow = AsyncMock(return_value=fetchrow)
    pool.fetchval = AsyncMock(return_value=fetchval)
    pool.close = AsyncMock()

    store = PostgresDatastore(dsn="postgresql://unused")
    store._pool = pool
    return store, pool


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------


class TestRowMapping:

    def test_reading_row(self):
        stored = _row_to_reading(_reading_row())

        assert stored.id == str(_READING_ID)
        assert stored.kind is ReadingKind.CONTRACTION
        assert stored.reading.intensity is ContractionIntensity.STRONG
        assert stored.reading.duration_seconds == 55
        assert stored.recorded_at == BASE_TIME

    def test_reading_measurements_as_json_text(self):
        row = _reading_row(
            kind="blood_pressure",
            measurements=json.dumps({"systolic": 120, "diastolic": 80}),
        )
        stored = _row_to_reading(row)
        assert stored.reading.values() == {"systolic": 120, "diastolic": 80}

    def test_alert_row(self):
        alert = _row_to_alert(_alert_row(metadata=json.dumps({"systolic": 145})))

        assert alert.id == str(_ALERT_ID)
        assert alert.reading_id == str(_READING_ID)
        assert alert.severity is Severity.CRITICAL
        assert alert.category is FindingCategory.BLOOD_PRESSURE
        assert alert.source is AlertSource.TRIAGE
        assert alert.metadata == {"systolic": 145}
        assert not alert.acknowledged

    def test_clinician_alert_without_reading(self):
        alert = _row_to_alert(_alert_row(reading_id=None, source="clinician", category="clinician_note"))
        assert alert.reading_id is None
        assert alert.source is AlertSource.CLINICIAN


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------


class TestTranslateErrors:

    @pytest.mark.parametrize("error", [
        OSError("connection refused"),
        asyncpg.exceptions.PostgresConnectionError("connection lost"),
    ])
    def test_connection_errors_are_upstream_unavailable(self, error):
        with pytest.raises(UpstreamUnavailableError):
            with _translate_errors("insert_reading"):
                raise error

    def test_query_errors_are_persistence_errors(self):
        with pytest.raises(PersistenceError) as exc_info:
            with _translate_errors("insert_alert"):
                raise asyncpg.UniqueViolationError("duplicate key")
        assert not isinstance(exc_info.value, UpstreamUnavailableError)

    def test_other_errors_pass_through(self):
        with pytest.raises(KeyError):
            with _translate_errors("list_alerts"):
                raise KeyError("x")

    @pytest.mark.asyncio
    async def test_pool_errors_surface_from_methods(self):
        store, pool = _make_store()
        pool.fetchval.side_effect = OSError("connection reset")

        with pytest.raises(UpstreamUnavailableError):
            await store.ping()


# ---------------------------------------------------------------------------
# Pool lifecycle
# ---------------------------------------------------------------------------


class TestPoolLifecycle:

    def test_pool_before_startup(self):
        store = PostgresDatastore(dsn="postgresql://unused")
        with pytest.raises(UpstreamUnavailableError):
            store.pool

    @pytest.mark.asyncio
    async def test_query_before_startup(self):
        store = PostgresDatastore(dsn="postgresql://unused")
        with pytest.raises(UpstreamUnavailableError):
            await store.count_alerts(PATIENT_ID)

    @pytest.mark.asyncio
    async def test_shutdown_closes_pool(self):
        store, pool = _make_store()

        await store.shutdown()
        await store.shutdown()

        pool.close.assert_awaited_once()
        assert store._pool is None


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestReadingQueries:

    @pytest.mark.asyncio
    async def test_insert_reading_serializes_measurements(self):
        store, pool = _make_store(fetchrow=_reading_row())
        reading = _row_to_reading(_reading_row()).reading

        stored = await store.insert_reading(reading)

        args = pool.fetchrow.call_args[0]
        assert "INSERT INTO readings" in args[0]
        assert json.loads(args[3]) == {"duration_seconds": 55, "intensity": "strong"}
        assert stored.id == str(_READING_ID)

    @pytest.mark.asyncio
    async def test_list_readings_without_kind(self):
        store, pool = _make_store(fetch=[_reading_row()])

        readings = await store.list_readings(PATIENT_ID, limit=5)

        sql, *params = pool.fetch.call_args[0]
        assert "WHERE subject_id = $1 ORDER BY" in sql
        assert sql.endswith("LIMIT $2")
        assert params == [PATIENT_ID, 5]
        assert len(readings) == 1

    @pytest.mark.asyncio
    async def test_list_readings_with_kind(self):
        store, pool = _make_store()

        await store.list_readings(PATIENT_ID, kind=ReadingKind.HEART_RATE, limit=5)

        sql, *params = pool.fetch.call_args[0]
        assert "subject_id = $1 AND kind = $2" in sql
        assert sql.endswith("LIMIT $3")
        assert params == [PATIENT_ID, "heart_rate", 5]

    @pytest.mark.asyncio
    async def test_query_recent_with_upper_bound(self):
        store, pool = _make_store()
        since = BASE_TIME - timedelta(hours=2)

        await store.query_recent_readings(
            PATIENT_ID, ReadingKind.CONTRACTION, since=since, until=BASE_TIME, limit=10
        )

        sql, *params = pool.fetch.call_args[0]
        assert "recorded_at >= $3 AND recorded_at <= $4" in sql
        assert sql.endswith("LIMIT $5")
        assert params == [PATIENT_ID, "contraction", since, BASE_TIME, 10]

    @pytest.mark.asyncio
    async def test_query_recent_without_upper_bound(self):
        store, pool = _make_store()
        since = BASE_TIME - timedelta(hours=2)

        await store.query_recent_readings(PATIENT_ID, ReadingKind.CONTRACTION, since=since, limit=10)

        sql, *params = pool.fetch.call_args[0]
        assert "recorded_at <=" not in sql
        assert sql.endswith("LIMIT $4")
        assert params == [PATIENT_ID, "contraction", since, 10]


class TestAlertQueries:

    @pytest.mark.asyncio
    async def test_acknowledge_no_matching_row(self):
        store, pool = _make_store(fetchrow=None)

        result = await store.update_alert_acknowledged(str(_ALERT_ID), PATIENT_ID, BASE_TIME)

        assert result is None
        sql, alert_id, subject_id, _ = pool.fetchrow.call_args[0]
        assert "id = $1::uuid" in sql
        assert "id::text" not in sql
        assert alert_id == _ALERT_ID
        assert subject_id == PATIENT_ID

    @pytest.mark.asyncio
    async def test_acknowledge_malformed_id_skips_query(self):
        store, pool = _make_store()

        assert await store.update_alert_acknowledged("not-a-uuid", PATIENT_ID, BASE_TIME) is None
        pool.fetchrow.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_acknowledge_returns_alert(self):
        store, _ = _make_store(fetchrow=_alert_row(acknowledged_at=BASE_TIME))

        alert = await store.update_alert_acknowledged(str(_ALERT_ID), PATIENT_ID, BASE_TIME)

        assert alert.acknowledged
        assert alert.acknowledged_at == BASE_TIME

    @pytest.mark.asyncio
    async def test_list_unread_alerts(self):
        store, pool = _make_store(fetch=[_alert_row()])

        alerts = await store.list_alerts(PATIENT_ID, unread_only=True, limit=20)

        sql, *params = pool.fetch.call_args[0]
        assert "acknowledged_at IS NULL" in sql
        assert params == [PATIENT_ID, 20]
        assert [a.id for a in alerts] == [str(_ALERT_ID)]
