"""Postgres datastore backed by an asyncpg pool.

Targets the Supabase Postgres database. Expected tables::

    CREATE TABLE readings (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        subject_id TEXT NOT NULL,
        kind TEXT NOT NULL,
        measurements JSONB NOT NULL,
        notes TEXT,
        recorded_at TIMESTAMPTZ NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    CREATE INDEX readings_subject_kind_time ON readings (subject_id, kind, recorded_at DESC);

    CREATE TABLE alerts (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        subject_id TEXT NOT NULL,
        reading_id UUID REFERENCES readings(id),
        severity TEXT NOT NULL,
        category TEXT NOT NULL,
        message TEXT NOT NULL,
        metadata JSONB NOT NULL DEFAULT '{}',
        source TEXT NOT NULL DEFAULT 'triage',
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        acknowledged_at TIMESTAMPTZ
    );
    CREATE INDEX alerts_subject_time ON alerts (subject_id, created_at DESC);

Schema changes are applied with the project's migration tooling, not here.
"""

from __future__ import annotations

import json
import logging
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, List, Optional

import asyncpg

from mamamind.core.exceptions import PersistenceError, UpstreamUnavailableError
from mamamind.core.types import (
    Alert,
    AlertSource,
    FindingCategory,
    Reading,
    ReadingKind,
    Severity,
    StoredAlert,
    StoredReading,
    SubjectId,
)

logger = logging.getLogger(__name__)

_CONNECTION_ERRORS = (
    OSError,
    asyncpg.InterfaceError,
    asyncpg.exceptions.PostgresConnectionError,
)


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    """Map driver exceptions onto the service's error taxonomy."""
    try:
        yield
    except _CONNECTION_ERRORS as exc:
        raise UpstreamUnavailableError(
            f"Datastore unreachable during {operation}",
        ) from exc
    except asyncpg.PostgresError as exc:
        raise PersistenceError(f"Datastore error during {operation}") from exc


def _json_field(value: Any) -> dict[str, Any]:
    """JSONB columns arrive as strings unless a codec is registered."""
    if isinstance(value, str):
        return json.loads(value)
    return dict(value or {})


def _row_to_reading(row: asyncpg.Record) -> StoredReading:
    reading = Reading.from_values(
        subject_id=row["subject_id"],
        kind=ReadingKind(row["kind"]),
        values=_json_field(row["measurements"]),
        recorded_at=row["recorded_at"],
        notes=row["notes"],
    )
    return StoredReading(id=str(row["id"]), reading=reading, created_at=row["created_at"])


def _row_to_alert(row: asyncpg.Record) -> StoredAlert:
    return StoredAlert(
        id=str(row["id"]),
        subject_id=SubjectId(row["subject_id"]),
        severity=Severity(row["severity"]),
        category=FindingCategory(row["category"]),
        message=row["message"],
        created_at=row["created_at"],
        metadata=_json_field(row["metadata"]),
        reading_id=str(row["reading_id"]) if row["reading_id"] is not None else None,
        source=AlertSource(row["source"]),
        acknowledged_at=row["acknowledged_at"],
    )


class PostgresDatastore:
    """Datastore implementation over an asyncpg connection pool."""

    def __init__(
        self,
        dsn: str,
        min_pool_size: int = 1,
        max_pool_size: int = 5,
    ) -> None:
        self._dsn = dsn
        self._min_pool_size = min_pool_size
        self._max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise UpstreamUnavailableError("Datastore pool not started")
        return self._pool

    async def startup(self) -> None:
        with _translate_errors("pool creation"):
            self._pool = await asyncpg.create_pool(
                dsn=self._dsn,
                min_size=self._min_pool_size,
                max_size=self._max_pool_size,
            )
        logger.info(
            "Postgres pool ready (min=%d, max=%d)",
            self._min_pool_size,
            self._max_pool_size,
        )

    async def ping(self) -> None:
        with _translate_errors("ping"):
            await self.pool.fetchval("SELECT 1")

    async def shutdown(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("Postgres pool closed")

    # -------------------------------------------------------------------------
    # Readings
    # -------------------------------------------------------------------------

    async def insert_reading(self, reading: Reading) -> StoredReading:
        with _translate_errors("insert_reading"):
            row = await self.pool.fetchrow(
                """
                INSERT INTO readings (subject_id, kind, measurements, notes, recorded_at)
                VALUES ($1, $2, $3::jsonb, $4, $5)
                RETURNING *
                """,
                reading.subject_id,
                reading.kind.value,
                json.dumps(reading.values()),
                reading.notes,
                reading.recorded_at,
            )
        return _row_to_reading(row)

    async def query_recent_readings(
        self,
        subject_id: str,
        kind: ReadingKind,
        since: datetime,
        limit: int,
        until: Optional[datetime] = None,
    ) -> List[StoredReading]:
        conditions = ["subject_id = $1", "kind = $2", "recorded_at >= $3"]
        params: list[Any] = [subject_id, kind.value, since]
        if until is not None:
            params.append(until)
            conditions.append(f"recorded_at <= ${len(params)}")
        params.append(limit)

        where = " AND ".join(conditions)
        with _translate_errors("query_recent_readings"):
            rows = await self.pool.fetch(
                f"SELECT * FROM readings WHERE {where} "
                f"ORDER BY recorded_at DESC LIMIT ${len(params)}",
                *params,
            )
        return [_row_to_reading(r) for r in rows]

    async def list_readings(
        self,
        subject_id: str,
        kind: Optional[ReadingKind] = None,
        limit: int = 50,
    ) -> List[StoredReading]:
        conditions = ["subject_id = $1"]
        params: list[Any] = [subject_id]
        if kind is not None:
            conditions.append("kind = $2")
            params.append(kind.value)
        params.append(limit)

        where = " AND ".join(conditions)
        with _translate_errors("list_readings"):
            rows = await self.pool.fetch(
                f"SELECT * FROM readings WHERE {where} "
                f"ORDER BY recorded_at DESC LIMIT ${len(params)}",
                *params,
            )
        return [_row_to_reading(r) for r in rows]

    async def count_readings(self, subject_id: str, since: Optional[datetime] = None) -> int:
        with _translate_errors("count_readings"):
            if since is None:
                return await self.pool.fetchval(
                    "SELECT count(*) FROM readings WHERE subject_id = $1",
                    subject_id,
                )
            return await self.pool.fetchval(
                "SELECT count(*) FROM readings WHERE subject_id = $1 AND recorded_at >= $2",
                subject_id,
                since,
            )

    async def reading_kinds(self, subject_id: str) -> List[ReadingKind]:
        with _translate_errors("reading_kinds"):
            rows = await self.pool.fetch(
                "SELECT DISTINCT kind FROM readings WHERE subject_id = $1 ORDER BY kind",
                subject_id,
            )
        return [ReadingKind(r["kind"]) for r in rows]

    # -------------------------------------------------------------------------
    # Alerts
    # -------------------------------------------------------------------------

    async def insert_alert(self, alert: Alert) -> StoredAlert:
        with _translate_errors("insert_alert"):
            row = await self.pool.fetchrow(
                """
                INSERT INTO alerts
                    (subject_id, reading_id, severity, category, message, metadata, source)
                VALUES ($1, $2::uuid, $3, $4, $5, $6::jsonb, $7)
                RETURNING *
                """,
                alert.subject_id,
                alert.reading_id,
                alert.severity.value,
                alert.category.value,
                alert.message,
                json.dumps(alert.metadata),
                alert.source.value,
            )
        return _row_to_alert(row)

    async def list_alerts(
        self,
        subject_id: str,
        unread_only: bool = False,
        limit: int = 50,
    ) -> List[StoredAlert]:
        unread_clause = " AND acknowledged_at IS NULL" if unread_only else ""
        with _translate_errors("list_alerts"):
            rows = await self.pool.fetch(
                f"SELECT * FROM alerts WHERE subject_id = $1{unread_clause} "
                "ORDER BY created_at DESC LIMIT $2",
                subject_id,
                limit,
            )
        return [_row_to_alert(r) for r in rows]

    async def count_alerts(self, subject_id: str, unread_only: bool = False) -> int:
        unread_clause = " AND acknowledged_at IS NULL" if unread_only else ""
        with _translate_errors("count_alerts"):
            return await self.pool.fetchval(
                f"SELECT count(*) FROM alerts WHERE subject_id = $1{unread_clause}",
                subject_id,
            )

    async def update_alert_acknowledged(
        self,
        alert_id: str,
        subject_id: str,
        timestamp: datetime,
    ) -> Optional[StoredAlert]:
        try:
            alert_uuid = uuid.UUID(alert_id)
        except ValueError:
            return None

        # COALESCE keeps the first acknowledgment time.
        with _translate_errors("update_alert_acknowledged"):
            row = await self.pool.fetchrow(
                """
                UPDATE alerts
                SET acknowledged_at = COALESCE(acknowledged_at, $3)
                WHERE id = $1::uuid AND subject_id = $2
                RETURNING *
                """,
                alert_uuid,
                subject_id,
                timestamp,
            )
        if row is None:
            return None
        return _row_to_alert(row)
