"""
Mama Mind - Core Domain Types

Internal type definitions for the triage engine. These are domain objects
used within the core and adapter layers, independent of API serialization.

Design Notes:
- These types are the "lingua franca" between classifier, analyzer,
  aggregator, orchestrator and datastore.
- API layer converts these to/from Pydantic schemas for external communication.
- Readings, findings and stored records are frozen dataclasses: a persisted
  reading is never edited, and an alert only changes through acknowledgment,
  which produces a new StoredAlert value.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, NewType, Optional


# =============================================================================
# Type Aliases
# =============================================================================

SubjectId = NewType("SubjectId", str)
"""Identifier of the patient whose readings are recorded (auth provider user id)."""


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


# =============================================================================
# Enums
# =============================================================================

class ReadingKind(str, Enum):
    """Kind of physiological measurement carried by a reading."""
    BLOOD_PRESSURE = "blood_pressure"
    HEART_RATE = "heart_rate"
    WEIGHT = "weight"
    KICK_COUNT = "kick_count"
    CONTRACTION = "contraction"


class Severity(str, Enum):
    """Severity of a finding, alert, or overall assessment."""
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Ordering used for max-severity-wins aggregation."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.NORMAL: 0,
    Severity.WARNING: 1,
    Severity.CRITICAL: 2,
}


class FindingCategory(str, Enum):
    """Clinical category a finding or alert belongs to."""
    BLOOD_PRESSURE = "blood_pressure"
    HEART_RATE = "heart_rate"
    WEIGHT_GAIN = "weight_gain"
    FETAL_MOVEMENT = "fetal_movement"
    CONTRACTIONS = "contractions"
    CLINICIAN_NOTE = "clinician_note"


class ContractionIntensity(str, Enum):
    """Self-reported contraction strength."""
    MILD = "mild"
    MODERATE = "moderate"
    STRONG = "strong"


class AlertSource(str, Enum):
    """Who created an alert."""
    TRIAGE = "triage"
    CLINICIAN = "clinician"


class Role(str, Enum):
    """Role of an authenticated principal."""
    PATIENT = "patient"
    CLINICIAN = "clinician"


# =============================================================================
# Readings
# =============================================================================

# Numeric measurement fields a reading may carry, in display order.
MEASUREMENT_FIELDS = (
    "systolic",
    "diastolic",
    "heart_rate",
    "weight_kg",
    "baseline_weight_kg",
    "gestational_week",
    "count",
    "duration_minutes",
    "duration_seconds",
)


@dataclass(frozen=True)
class Reading:
    """
    One submitted physiological measurement event.

    Only the fields relevant to ``kind`` are populated; everything else is
    None. Range checks live in ``mamamind.core.validation``.

    Attributes:
        subject_id: Patient the reading belongs to
        kind: Measurement kind
        recorded_at: When the measurement was taken (UTC)
        systolic / diastolic: Blood pressure in mmHg
        heart_rate: Maternal pulse in bpm
        weight_kg / baseline_weight_kg: Current and pre-pregnancy weight
        gestational_week: Week of pregnancy at measurement time
        count / duration_minutes: Kick-count session
        duration_seconds / intensity: Contraction
        notes: Free text from the subject
    """
    subject_id: SubjectId
    kind: ReadingKind
    recorded_at: datetime = field(default_factory=utcnow)
    systolic: Optional[float] = None
    diastolic: Optional[float] = None
    heart_rate: Optional[float] = None
    weight_kg: Optional[float] = None
    baseline_weight_kg: Optional[float] = None
    gestational_week: Optional[float] = None
    count: Optional[int] = None
    duration_minutes: Optional[float] = None
    duration_seconds: Optional[float] = None
    intensity: Optional[ContractionIntensity] = None
    notes: Optional[str] = None

    def values(self) -> Dict[str, Any]:
        """Populated measurement fields, suitable for storage or alert metadata."""
        values: Dict[str, Any] = {
            name: getattr(self, name)
            for name in MEASUREMENT_FIELDS
            if getattr(self, name) is not None
        }
        if self.intensity is not None:
            values["intensity"] = self.intensity.value
        return values

    @classmethod
    def from_values(
        cls,
        subject_id: str,
        kind: ReadingKind,
        values: Dict[str, Any],
        recorded_at: datetime,
        notes: Optional[str] = None,
    ) -> "Reading":
        """Rebuild a reading from its stored ``values()`` mapping."""
        kwargs = {name: values.get(name) for name in MEASUREMENT_FIELDS}
        intensity = values.get("intensity")
        return cls(
            subject_id=SubjectId(subject_id),
            kind=kind,
            recorded_at=recorded_at,
            intensity=ContractionIntensity(intensity) if intensity else None,
            notes=notes,
            **kwargs,
        )


@dataclass(frozen=True)
class StoredReading:
    """A reading after the datastore accepted it."""
    id: str
    reading: Reading
    created_at: datetime

    @property
    def subject_id(self) -> SubjectId:
        return self.reading.subject_id

    @property
    def kind(self) -> ReadingKind:
        return self.reading.kind

    @property
    def recorded_at(self) -> datetime:
        return self.reading.recorded_at

    def to_dict(self) -> Dict[str, Any]:
        """Convert to serializable dictionary."""
        return {
            "id": self.id,
            "subject_id": self.subject_id,
            "kind": self.kind.value,
            "values": self.reading.values(),
            "notes": self.reading.notes,
            "recorded_at": self.recorded_at.isoformat(),
            "created_at": self.created_at.isoformat(),
        }


# =============================================================================
# Findings and Assessment
# =============================================================================

@dataclass(frozen=True)
class Finding:
    """
    A single derived observation from one or more readings.

    Never persisted on its own: non-normal findings become alerts,
    normal ones are discarded.
    """
    category: FindingCategory
    severity: Severity
    message: str
    values: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_actionable(self) -> bool:
        return self.severity is not Severity.NORMAL

    def to_dict(self) -> Dict[str, Any]:
        """Convert to serializable dictionary."""
        return {
            "category": self.category.value,
            "severity": self.severity.value,
            "message": self.message,
            "values": dict(self.values),
        }


@dataclass(frozen=True)
class RiskAssessment:
    """
    Aggregate of the findings produced for one intake.

    Attributes:
        status: Highest severity among the findings
        risk_score: Coarse linear score (see ``aggregator.RISK_SCORE_PER_FINDING``)
        findings: Findings in production order, classifier before pattern
    """
    status: Severity
    risk_score: float
    findings: List[Finding] = field(default_factory=list)

    @property
    def critical_findings(self) -> List[Finding]:
        return [f for f in self.findings if f.severity is Severity.CRITICAL]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to serializable dictionary."""
        return {
            "status": self.status.value,
            "risk_score": self.risk_score,
            "findings": [f.to_dict() for f in self.findings],
        }


# =============================================================================
# Alerts
# =============================================================================

@dataclass(frozen=True)
class Alert:
    """An alert about to be written to the datastore."""
    subject_id: SubjectId
    severity: Severity
    category: FindingCategory
    message: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    reading_id: Optional[str] = None
    source: AlertSource = AlertSource.TRIAGE

    @classmethod
    def from_finding(cls, finding: Finding, reading: StoredReading) -> "Alert":
        """Build the alert recorded for a non-normal finding."""
        return cls(
            subject_id=reading.subject_id,
            severity=finding.severity,
            category=finding.category,
            message=finding.message,
            metadata=dict(finding.values),
            reading_id=reading.id,
            source=AlertSource.TRIAGE,
        )


@dataclass(frozen=True)
class StoredAlert:
    """
    A persisted alert.

    Severity is fixed at creation. The only transition is
    created -> acknowledged, and ``acknowledged_at`` is set once.
    """
    id: str
    subject_id: SubjectId
    severity: Severity
    category: FindingCategory
    message: str
    created_at: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)
    reading_id: Optional[str] = None
    source: AlertSource = AlertSource.TRIAGE
    acknowledged_at: Optional[datetime] = None

    @property
    def acknowledged(self) -> bool:
        return self.acknowledged_at is not None

    def acknowledge(self, timestamp: datetime) -> "StoredAlert":
        """Return the acknowledged alert; already-acknowledged alerts are unchanged."""
        if self.acknowledged:
            return self
        return replace(self, acknowledged_at=timestamp)

    @classmethod
    def from_alert(cls, alert: Alert, alert_id: str, created_at: datetime) -> "StoredAlert":
        return cls(
            id=alert_id,
            subject_id=alert.subject_id,
            severity=alert.severity,
            category=alert.category,
            message=alert.message,
            created_at=created_at,
            metadata=dict(alert.metadata),
            reading_id=alert.reading_id,
            source=alert.source,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to serializable dictionary."""
        return {
            "id": self.id,
            "subject_id": self.subject_id,
            "reading_id": self.reading_id,
            "severity": self.severity.value,
            "category": self.category.value,
            "message": self.message,
            "metadata": dict(self.metadata),
            "source": self.source.value,
            "acknowledged": self.acknowledged,
            "created_at": self.created_at.isoformat(),
            "acknowledged_at": self.acknowledged_at.isoformat() if self.acknowledged_at else None,
        }


# =============================================================================
# Intake Results
# =============================================================================

@dataclass(frozen=True)
class Principal:
    """Authenticated caller resolved from a bearer token."""
    subject_id: SubjectId
    role: Role = Role.PATIENT

    @property
    def is_clinician(self) -> bool:
        return self.role is Role.CLINICIAN


@dataclass(frozen=True)
class IntakeResult:
    """What ``IntakeOrchestrator.record_reading`` hands back to the caller."""
    reading: StoredReading
    assessment: RiskAssessment
    alerts: List[StoredAlert] = field(default_factory=list)
    notified: bool = False


@dataclass
class AlertListing:
    """A page of alerts plus counters for badge display."""
    alerts: List[StoredAlert]
    total: int
    unread: int


@dataclass
class VitalsSummary:
    """Dashboard summary of a subject's readings and alerts."""
    subject_id: SubjectId
    total_readings: int = 0
    readings_last_7_days: int = 0
    kinds: List[str] = field(default_factory=list)
    last_recorded_at: Optional[datetime] = None
    latest_by_kind: Dict[str, StoredReading] = field(default_factory=dict)
    unread_alerts: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to serializable dictionary."""
        return {
            "subject_id": self.subject_id,
            "total_readings": self.total_readings,
            "readings_last_7_days": self.readings_last_7_days,
            "kinds": list(self.kinds),
            "last_recorded_at": self.last_recorded_at.isoformat() if self.last_recorded_at else None,
            "latest_by_kind": {k: v.to_dict() for k, v in self.latest_by_kind.items()},
            "unread_alerts": self.unread_alerts,
        }
