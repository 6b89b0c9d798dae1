"""
Mama Mind - Intake Orchestrator

Central orchestration layer for recording readings and managing alerts.
This is the single entry point the API layer uses for triage.

Architecture:
    One reading flows through strictly ordered stages:

    1. VALIDATE: Required fields and plausible ranges for the kind
    2. CLASSIFY: Stateless threshold findings
    3. PATTERN: Recent history of the same kind (contractions, kick counts)
    4. AGGREGATE: Fold findings into a RiskAssessment
    5. PERSIST READING: Fatal on failure
    6. PERSIST ALERTS: One alert per non-normal finding, failures logged
    7. NOTIFY: Publish critical assessments to the subject channel
    8. RETURN: Stored reading, assessment and persisted alerts

    Only stages 1 and 5 can fail the request. Everything after the reading is
    stored degrades to a logged warning, so a subject never gets an error for
    a reading that was actually saved.

Usage:
    from mamamind.core.pipeline import create_orchestrator
    from mamamind.config import get_settings

    orchestrator = create_orchestrator(get_settings())
    await orchestrator.startup()
    result = await orchestrator.record_reading(reading)
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from mamamind.config import Settings
from mamamind.core.aggregator import aggregate
from mamamind.core.classifier import classify_reading
from mamamind.core.datastore import Datastore, create_datastore
from mamamind.core.exceptions import (
    AlertNotFoundError,
    AlertPersistenceError,
    IntakeTimeoutError,
    NotificationError,
    ReadingPersistenceError,
    UpstreamUnavailableError,
    ValidationError,
)
from mamamind.core.logging import LogContext, correlation_id_var, mask_subject_id
from mamamind.core.notifier import (
    EVENT_ALERT_CREATED,
    EVENT_CRITICAL_VITALS,
    NoOpNotifier,
    NotificationPublisher,
)
from mamamind.core.patterns import analyze_pattern, history_window
from mamamind.core.types import (
    Alert,
    AlertListing,
    AlertSource,
    Finding,
    FindingCategory,
    IntakeResult,
    Reading,
    ReadingKind,
    RiskAssessment,
    Severity,
    StoredAlert,
    StoredReading,
    SubjectId,
    VitalsSummary,
    utcnow,
)
from mamamind.core.validation import validate_reading

logger = logging.getLogger(__name__)


SUMMARY_RECENT_DAYS = 7


# =============================================================================
# Intake Metrics (for observability)
# =============================================================================

@dataclass
class IntakeMetrics:
    """Metrics for a single reading intake."""
    request_id: str
    subject_id: str
    kind: str
    status: Optional[str] = None
    history_ms: Optional[float] = None
    persist_ms: Optional[float] = None
    total_ms: Optional[float] = None
    history_skipped: bool = False
    alerts_written: int = 0
    alerts_failed: int = 0
    notified: bool = False
    success: bool = True
    error_stage: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "request_id": self.request_id,
            "subject_id": mask_subject_id(self.subject_id),
            "kind": self.kind,
            "status": self.status,
            "history_ms": round(self.history_ms, 2) if self.history_ms else None,
            "persist_ms": round(self.persist_ms, 2) if self.persist_ms else None,
            "total_ms": round(self.total_ms, 2) if self.total_ms else None,
            "history_skipped": self.history_skipped,
            "alerts_written": self.alerts_written,
            "alerts_failed": self.alerts_failed,
            "notified": self.notified,
            "success": self.success,
            "error_stage": self.error_stage,
        }


MetricsCallback = Callable[[IntakeMetrics], None]


# =============================================================================
# Intake Orchestrator
# =============================================================================

class IntakeOrchestrator:
    """
    Coordinates validation, triage, persistence and notification.

    Attributes:
        datastore: Reading and alert storage
        notifier: Publisher for the subject's real-time channel
        settings: Application configuration
    """

    def __init__(
        self,
        datastore: Datastore,
        notifier: Optional[NotificationPublisher] = None,
        settings: Optional[Settings] = None,
        metrics_callback: Optional[MetricsCallback] = None,
    ):
        self._datastore = datastore
        self._notifier = notifier or NoOpNotifier()
        self._settings = settings or Settings()
        self._metrics_callback = metrics_callback

        logger.info(
            "IntakeOrchestrator initialized: datastore=%s, notifier=%s, timeout=%.1fs",
            type(datastore).__name__,
            type(self._notifier).__name__,
            self._settings.intake_timeout_seconds,
        )

    @property
    def datastore(self) -> Datastore:
        return self._datastore

    @property
    def notifier(self) -> NotificationPublisher:
        return self._notifier

    # -------------------------------------------------------------------------
    # Reading Intake
    # -------------------------------------------------------------------------

    async def record_reading(self, reading: Reading) -> IntakeResult:
        """
        Validate, triage and persist one reading.

        Args:
            reading: The submitted reading

        Returns:
            IntakeResult with the stored reading, assessment and persisted alerts

        Raises:
            ValidationError: reading failed field or range checks
            ReadingPersistenceError: the reading could not be stored
            UpstreamUnavailableError: the datastore is unreachable
            IntakeTimeoutError: intake exceeded ``intake_timeout_seconds``

        Note:
            On timeout the in-flight intake is not cancelled. It keeps running
            and may still store the reading, so a retry can create a duplicate.
        """
        request_id = correlation_id_var.get() or self._generate_request_id()
        task = asyncio.ensure_future(self._record(reading, request_id))

        try:
            return await asyncio.wait_for(
                asyncio.shield(task),
                timeout=self._settings.intake_timeout_seconds,
            )
        except asyncio.TimeoutError:
            task.add_done_callback(self._log_late_completion)
            logger.error(
                "[%s] Intake timed out after %.1fs",
                request_id,
                self._settings.intake_timeout_seconds,
            )
            raise IntakeTimeoutError(
                "Reading intake timed out",
                details={"timeout_seconds": self._settings.intake_timeout_seconds},
            )

    async def _record(self, reading: Reading, request_id: str) -> IntakeResult:
        start_time = time.time()
        metrics = IntakeMetrics(
            request_id=request_id,
            subject_id=reading.subject_id,
            kind=reading.kind.value,
        )

        with LogContext(correlation_id=request_id, subject_id=reading.subject_id):
            try:
                # Stage 1: Validation
                metrics.error_stage = "validation"
                reading = validate_reading(reading)

                # Stages 2-4: Triage
                metrics.error_stage = "triage"
                findings = classify_reading(reading)
                history_start = time.time()
                pattern_finding = await self._run_pattern_analysis(reading, metrics)
                metrics.history_ms = (time.time() - history_start) * 1000
                if pattern_finding is not None:
                    findings.append(pattern_finding)
                assessment = aggregate(findings)
                metrics.status = assessment.status.value

                # Stage 5: Reading persistence
                metrics.error_stage = "persist_reading"
                persist_start = time.time()
                stored = await self._persist_reading(reading)
                metrics.persist_ms = (time.time() - persist_start) * 1000
                metrics.error_stage = None

                # Stage 6: Alerts
                alerts = await self._persist_alerts(stored, assessment, metrics)

                # Stage 7: Notification
                notified = False
                if assessment.status is Severity.CRITICAL:
                    notified = await self._notify_critical(stored, assessment)
                metrics.notified = notified

                metrics.total_ms = (time.time() - start_time) * 1000
                self._log_output(request_id, stored, assessment, metrics)

                return IntakeResult(
                    reading=stored,
                    assessment=assessment,
                    alerts=alerts,
                    notified=notified,
                )

            except Exception as e:
                metrics.success = False
                metrics.total_ms = (time.time() - start_time) * 1000
                if isinstance(e, ValidationError):
                    logger.info("[%s] Reading rejected: %s", request_id, e.message)
                else:
                    logger.error(
                        "[%s] Intake failed at %s: %s",
                        request_id,
                        metrics.error_stage,
                        e,
                    )
                raise
            finally:
                self._emit_metrics(metrics)

    async def _run_pattern_analysis(
        self,
        reading: Reading,
        metrics: IntakeMetrics,
    ) -> Optional[Finding]:
        """Query recent history for the kind and run its analyzer."""
        window = history_window(reading.kind)
        if window is None:
            return None

        lookback, limit = window
        try:
            history = await self._datastore.query_recent_readings(
                reading.subject_id,
                reading.kind,
                since=reading.recorded_at - lookback,
                until=reading.recorded_at,
                limit=limit,
            )
        except Exception as e:
            metrics.history_skipped = True
            logger.warning(
                "History read failed, skipping %s pattern analysis: %s",
                reading.kind.value,
                e,
            )
            return None

        return analyze_pattern([s.reading for s in history], reading)

    async def _persist_reading(self, reading: Reading) -> StoredReading:
        try:
            return await self._datastore.insert_reading(reading)
        except UpstreamUnavailableError:
            raise
        except Exception as e:
            raise ReadingPersistenceError(
                "Failed to store reading",
                details={"kind": reading.kind.value},
            ) from e

    async def _persist_alerts(
        self,
        stored: StoredReading,
        assessment: RiskAssessment,
        metrics: IntakeMetrics,
    ) -> List[StoredAlert]:
        """Write one alert per finding; a failed write never fails the intake."""
        persisted: List[StoredAlert] = []
        for finding in assessment.findings:
            try:
                persisted.append(
                    await self._datastore.insert_alert(Alert.from_finding(finding, stored))
                )
            except Exception as e:
                metrics.alerts_failed += 1
                logger.warning(
                    "%s: %s alert for reading %s not stored: %s",
                    AlertPersistenceError.code,
                    finding.category.value,
                    stored.id,
                    e,
                )
        metrics.alerts_written = len(persisted)
        return persisted

    async def _notify_critical(self, stored: StoredReading, assessment: RiskAssessment) -> bool:
        if not self._settings.notify_on_critical:
            return False

        payload = {
            "reading_id": stored.id,
            "kind": stored.kind.value,
            "recorded_at": stored.recorded_at.isoformat(),
            "status": assessment.status.value,
            "risk_score": assessment.risk_score,
            "findings": [f.to_dict() for f in assessment.critical_findings],
        }
        return await self._publish(stored.subject_id, EVENT_CRITICAL_VITALS, payload)

    async def _publish(self, subject_id: str, event: str, payload: Dict[str, Any]) -> bool:
        """Publish and swallow delivery failures; returns True if publish succeeded."""
        try:
            await self._notifier.publish(subject_id, event, payload)
            return True
        except NotificationError as e:
            logger.warning("%s: %s not delivered: %s", e.code, event, e.message)
        except Exception as e:
            logger.warning("%s: %s not delivered: %s", NotificationError.code, event, e)
        return False

    # -------------------------------------------------------------------------
    # Alerts
    # -------------------------------------------------------------------------

    async def list_alerts(
        self,
        subject_id: str,
        unread_only: bool = False,
        limit: int = 50,
    ) -> AlertListing:
        """Alerts newest first, with total and unread counters."""
        alerts = await self._datastore.list_alerts(subject_id, unread_only=unread_only, limit=limit)
        total = await self._datastore.count_alerts(subject_id, unread_only=False)
        unread = await self._datastore.count_alerts(subject_id, unread_only=True)
        return AlertListing(alerts=alerts, total=total, unread=unread)

    async def acknowledge_alert(self, alert_id: str, subject_id: str) -> StoredAlert:
        """
        Acknowledge an alert owned by ``subject_id``.

        Raises:
            AlertNotFoundError: unknown id, or the alert belongs to someone else
        """
        updated = await self._datastore.update_alert_acknowledged(alert_id, subject_id, utcnow())
        if updated is None:
            raise AlertNotFoundError(
                "Alert not found",
                details={"alert_id": alert_id},
            )
        logger.info("Alert %s acknowledged", alert_id)
        return updated

    async def create_note_alert(
        self,
        subject_id: str,
        severity: Severity,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        author_id: Optional[str] = None,
    ) -> StoredAlert:
        """
        Record a clinician-authored alert and push it to the subject.

        Raises:
            ValidationError: severity is normal or the message is blank
            PersistenceError: the alert could not be stored
        """
        fields: Dict[str, str] = {}
        if severity is Severity.NORMAL:
            fields["severity"] = "must be warning or critical"
        if not message or not message.strip():
            fields["message"] = "must not be empty"
        if not subject_id:
            fields["subject_id"] = "must not be empty"
        if fields:
            raise ValidationError("Invalid alert", fields=fields)

        alert_metadata = dict(metadata or {})
        if author_id:
            alert_metadata["author_id"] = author_id

        alert = Alert(
            subject_id=SubjectId(subject_id),
            severity=severity,
            category=FindingCategory.CLINICIAN_NOTE,
            message=message.strip(),
            metadata=alert_metadata,
            source=AlertSource.CLINICIAN,
        )
        stored = await self._datastore.insert_alert(alert)
        logger.info("Clinician alert %s created (severity=%s)", stored.id, severity.value)

        await self._publish(subject_id, EVENT_ALERT_CREATED, stored.to_dict())
        return stored

    # -------------------------------------------------------------------------
    # Readings
    # -------------------------------------------------------------------------

    async def list_readings(
        self,
        subject_id: str,
        kind: Optional[ReadingKind] = None,
        limit: int = 50,
    ) -> List[StoredReading]:
        return await self._datastore.list_readings(subject_id, kind=kind, limit=limit)

    async def summary(self, subject_id: str) -> VitalsSummary:
        """Dashboard summary of readings and unread alerts."""
        recent_since = utcnow() - timedelta(days=SUMMARY_RECENT_DAYS)

        total = await self._datastore.count_readings(subject_id)
        recent = await self._datastore.count_readings(subject_id, since=recent_since)
        kinds = await self._datastore.reading_kinds(subject_id)

        latest_by_kind: Dict[str, StoredReading] = {}
        for kind in kinds:
            latest = await self._datastore.list_readings(subject_id, kind=kind, limit=1)
            if latest:
                latest_by_kind[kind.value] = latest[0]

        last_recorded_at = max(
            (r.recorded_at for r in latest_by_kind.values()),
            default=None,
        )
        unread = await self._datastore.count_alerts(subject_id, unread_only=True)

        return VitalsSummary(
            subject_id=SubjectId(subject_id),
            total_readings=total,
            readings_last_7_days=recent,
            kinds=[k.value for k in kinds],
            last_recorded_at=last_recorded_at,
            latest_by_kind=latest_by_kind,
            unread_alerts=unread,
        )

    # -------------------------------------------------------------------------
    # Metrics & Logging
    # -------------------------------------------------------------------------

    def set_metrics_callback(self, callback: MetricsCallback) -> None:
        """Set callback for intake metrics (e.g., for Prometheus)."""
        self._metrics_callback = callback

    def _emit_metrics(self, metrics: IntakeMetrics) -> None:
        """Emit metrics to callback if configured."""
        logger.debug(
            "Intake metrics",
            extra={"event_type": "intake_metrics", "data": metrics.to_dict()},
        )
        if self._metrics_callback:
            try:
                self._metrics_callback(metrics)
            except Exception as e:
                logger.warning("Metrics emission failed: %s", e)

    def _log_output(
        self,
        request_id: str,
        stored: StoredReading,
        assessment: RiskAssessment,
        metrics: IntakeMetrics,
    ) -> None:
        logger.info(
            "[%s] Reading %s recorded: kind=%s, status=%s, score=%.2f, alerts=%d, total_ms=%.1f",
            request_id,
            stored.id,
            stored.kind.value,
            assessment.status.value,
            assessment.risk_score,
            metrics.alerts_written,
            metrics.total_ms or 0,
        )

        # Critical results at WARNING level for visibility
        if assessment.status is Severity.CRITICAL:
            logger.warning(
                "[%s] CRITICAL vitals: subject=%s, categories=%s",
                request_id,
                mask_subject_id(stored.subject_id),
                ",".join(f.category.value for f in assessment.critical_findings),
            )

    @staticmethod
    def _log_late_completion(task: "asyncio.Future[IntakeResult]") -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Timed-out intake failed later: %s", error)
        else:
            logger.warning("Timed-out intake completed later: reading %s", task.result().reading.id)

    def _generate_request_id(self) -> str:
        """Generate unique request ID for tracking."""
        return f"req_{uuid.uuid4().hex[:12]}"

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def startup(self) -> None:
        """Acquire datastore resources."""
        logger.info("Orchestrator startup: connecting datastore...")
        await self._datastore.startup()
        logger.info("Orchestrator startup complete")

    async def shutdown(self) -> None:
        """Release datastore resources."""
        logger.info("Orchestrator shutdown: closing datastore...")
        await self._datastore.shutdown()
        logger.info("Orchestrator shutdown complete")


# =============================================================================
# Factory Function
# =============================================================================

def create_orchestrator(
    settings: Settings,
    datastore: Optional[Datastore] = None,
    notifier: Optional[NotificationPublisher] = None,
) -> IntakeOrchestrator:
    """
    Factory function to create a configured IntakeOrchestrator.

    Args:
        settings: Application settings
        datastore: Optional datastore (default: create from settings)
        notifier: Optional publisher (default: no-op)

    Returns:
        Configured IntakeOrchestrator instance (not yet started)
    """
    if datastore is None:
        datastore = create_datastore(settings)

    if notifier is None:
        notifier = NoOpNotifier()

    logger.info(
        "Orchestrator configured: datastore=%s, notifier=%s, notify_on_critical=%s",
        type(datastore).__name__,
        type(notifier).__name__,
        settings.notify_on_critical,
    )

    return IntakeOrchestrator(
        datastore=datastore,
        notifier=notifier,
        settings=settings,
    )
