"""
Mama Mind - Datastore

Persistence boundary for readings and alerts.

Notes:
    - The orchestrator only talks to the Datastore protocol; implementations
      are chosen at startup by ``create_datastore``.
    - Readings are append-only. There is no update or delete for readings.
    - Alerts change only through acknowledgment, and are never deleted.
    - The in-memory implementation is for development and tests; all data
      is lost on restart.
"""

from __future__ import annotations

import logging
import uuid
from abc import abstractmethod
from datetime import datetime
from threading import Lock
from typing import Dict, List, Optional, Protocol, runtime_checkable

from mamamind.config import Settings
from mamamind.core.exceptions import ConfigurationError
from mamamind.core.types import (
    Alert,
    Reading,
    ReadingKind,
    StoredAlert,
    StoredReading,
    utcnow,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Protocol
# =============================================================================

@runtime_checkable
class Datastore(Protocol):
    """
    Protocol for reading and alert storage.

    Query methods return records most recent first.
    """

    @abstractmethod
    async def insert_reading(self, reading: Reading) -> StoredReading:
        """Persist a reading."""
        ...

    @abstractmethod
    async def query_recent_readings(
        self,
        subject_id: str,
        kind: ReadingKind,
        since: datetime,
        limit: int,
        until: Optional[datetime] = None,
    ) -> List[StoredReading]:
        """
        Readings of ``kind`` recorded in ``[since, until]``, newest first.

        ``limit`` applies after the time bounds, so readings recorded later
        than ``until`` never take a slot.
        """
        ...

    @abstractmethod
    async def list_readings(
        self,
        subject_id: str,
        kind: Optional[ReadingKind] = None,
        limit: int = 50,
    ) -> List[StoredReading]:
        """Most recent readings for a subject, optionally of one kind."""
        ...

    @abstractmethod
    async def count_readings(self, subject_id: str, since: Optional[datetime] = None) -> int:
        """Number of readings for a subject, optionally since a time."""
        ...

    @abstractmethod
    async def reading_kinds(self, subject_id: str) -> List[ReadingKind]:
        """Distinct kinds the subject has recorded."""
        ...

    @abstractmethod
    async def insert_alert(self, alert: Alert) -> StoredAlert:
        """Persist an alert."""
        ...

    @abstractmethod
    async def list_alerts(
        self,
        subject_id: str,
        unread_only: bool = False,
        limit: int = 50,
    ) -> List[StoredAlert]:
        """Alerts for a subject, newest first."""
        ...

    @abstractmethod
    async def count_alerts(self, subject_id: str, unread_only: bool = False) -> int:
        """Number of alerts for a subject."""
        ...

    @abstractmethod
    async def update_alert_acknowledged(
        self,
        alert_id: str,
        subject_id: str,
        timestamp: datetime,
    ) -> Optional[StoredAlert]:
        """
        Mark an alert acknowledged.

        Returns None when no alert with ``alert_id`` belongs to ``subject_id``.
        An already-acknowledged alert is returned unchanged.
        """
        ...

    async def ping(self) -> None:
        """Raise if the store cannot serve requests."""
        ...

    async def startup(self) -> None:
        """Acquire connections or other resources."""
        ...

    async def shutdown(self) -> None:
        """Release resources."""
        ...


# =============================================================================
# In-Memory Implementation
# =============================================================================

class InMemoryDatastore:
    """
    In-memory implementation of Datastore.

    Thread-safe: the test client drives the app from a worker thread while
    fixtures inspect the store from the main one.
    """

    def __init__(self):
        self._lock = Lock()
        self._readings: List[StoredReading] = []
        self._alerts: Dict[str, StoredAlert] = {}

        logger.info("InMemoryDatastore initialized")

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    # -------------------------------------------------------------------------
    # Readings
    # -------------------------------------------------------------------------

    async def insert_reading(self, reading: Reading) -> StoredReading:
        stored = StoredReading(id=self._new_id(), reading=reading, created_at=utcnow())
        with self._lock:
            self._readings.append(stored)
        return stored

    async def query_recent_readings(
        self,
        subject_id: str,
        kind: ReadingKind,
        since: datetime,
        limit: int,
        until: Optional[datetime] = None,
    ) -> List[StoredReading]:
        with self._lock:
            matches = [
                r for r in self._readings
                if r.subject_id == subject_id
                and r.kind is kind
                and r.recorded_at >= since
                and (until is None or r.recorded_at <= until)
            ]
        matches.sort(key=lambda r: r.recorded_at, reverse=True)
        return matches[:limit]

    async def list_readings(
        self,
        subject_id: str,
        kind: Optional[ReadingKind] = None,
        limit: int = 50,
    ) -> List[StoredReading]:
        with self._lock:
            matches = [
                r for r in self._readings
                if r.subject_id == subject_id and (kind is None or r.kind is kind)
            ]
        matches.sort(key=lambda r: r.recorded_at, reverse=True)
        return matches[:limit]

    async def count_readings(self, subject_id: str, since: Optional[datetime] = None) -> int:
        with self._lock:
            return sum(
                1 for r in self._readings
                if r.subject_id == subject_id and (since is None or r.recorded_at >= since)
            )

    async def reading_kinds(self, subject_id: str) -> List[ReadingKind]:
        with self._lock:
            kinds = {r.kind for r in self._readings if r.subject_id == subject_id}
        return sorted(kinds, key=lambda k: k.value)

    # -------------------------------------------------------------------------
    # Alerts
    # -------------------------------------------------------------------------

    async def insert_alert(self, alert: Alert) -> StoredAlert:
        stored = StoredAlert.from_alert(alert, alert_id=self._new_id(), created_at=utcnow())
        with self._lock:
            self._alerts[stored.id] = stored
        return stored

    async def list_alerts(
        self,
        subject_id: str,
        unread_only: bool = False,
        limit: int = 50,
    ) -> List[StoredAlert]:
        with self._lock:
            matches = [
                a for a in self._alerts.values()
                if a.subject_id == subject_id and not (unread_only and a.acknowledged)
            ]
        matches.sort(key=lambda a: a.created_at, reverse=True)
        return matches[:limit]

    async def count_alerts(self, subject_id: str, unread_only: bool = False) -> int:
        with self._lock:
            return sum(
                1 for a in self._alerts.values()
                if a.subject_id == subject_id and not (unread_only and a.acknowledged)
            )

    async def update_alert_acknowledged(
        self,
        alert_id: str,
        subject_id: str,
        timestamp: datetime,
    ) -> Optional[StoredAlert]:
        with self._lock:
            current = self._alerts.get(alert_id)
            if current is None or current.subject_id != subject_id:
                return None
            updated = current.acknowledge(timestamp)
            self._alerts[alert_id] = updated
            return updated

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def ping(self) -> None:
        pass

    async def startup(self) -> None:
        pass

    async def shutdown(self) -> None:
        pass


# =============================================================================
# Factory Function
# =============================================================================

def create_datastore(settings: Settings) -> Datastore:
    """
    Create a datastore based on settings.

    Args:
        settings: Application settings

    Returns:
        Configured Datastore instance (not yet started)
    """
    backend = settings.datastore_backend.lower()

    if backend == "memory":
        logger.info("Using InMemoryDatastore (data is lost on restart)")
        return InMemoryDatastore()

    if backend == "postgres":
        from mamamind.core.postgres_store import PostgresDatastore

        logger.info("Using PostgresDatastore")
        return PostgresDatastore(
            dsn=settings.database_url,
            min_pool_size=settings.database_min_pool_size,
            max_pool_size=settings.database_max_pool_size,
        )

    raise ConfigurationError(
        f"Unknown datastore backend: {settings.datastore_backend!r}",
        details={"allowed": ["memory", "postgres"]},
    )
