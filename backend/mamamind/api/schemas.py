"""
Mama Mind - API Schemas

Pydantic models for request/response validation.
These define the contract between the mobile app and backend.

Request models only check types. Range and required-field rules live in
``mamamind.core.validation`` so every intake path reports them the same way.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from mamamind.core.types import (
    ContractionIntensity,
    FindingCategory,
    ReadingKind,
    Severity,
)


# ===========================================
# Reading Request Schemas
# ===========================================

class VitalsRequest(BaseModel):
    """Blood pressure, heart rate or weight reading submitted by a subject."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["blood_pressure", "heart_rate", "weight"] = Field(
        description="Measurement kind"
    )
    systolic: Optional[float] = Field(default=None, description="Systolic pressure (mmHg)")
    diastolic: Optional[float] = Field(default=None, description="Diastolic pressure (mmHg)")
    heart_rate: Optional[float] = Field(default=None, description="Maternal pulse (bpm)")
    weight_kg: Optional[float] = Field(default=None, description="Current weight (kg)")
    baseline_weight_kg: Optional[float] = Field(
        default=None,
        description="Pre-pregnancy weight (kg), enables weight-gain triage"
    )
    gestational_week: Optional[float] = Field(
        default=None,
        description="Week of pregnancy at measurement time"
    )
    notes: Optional[str] = Field(default=None, max_length=2000)
    recorded_at: Optional[datetime] = Field(
        default=None,
        description="When the measurement was taken (defaults to now)"
    )


class KickCountRequest(BaseModel):
    """A fetal kick-count session."""

    model_config = ConfigDict(extra="forbid")

    count: int = Field(description="Movements counted in the session")
    duration_minutes: float = Field(description="Session length in minutes")
    notes: Optional[str] = Field(default=None, max_length=2000)
    recorded_at: Optional[datetime] = None


class ContractionRequest(BaseModel):
    """A single contraction."""

    model_config = ConfigDict(extra="forbid")

    duration_seconds: float = Field(description="Contraction length in seconds")
    intensity: ContractionIntensity = Field(description="mild | moderate | strong")
    notes: Optional[str] = Field(default=None, max_length=2000)
    recorded_at: Optional[datetime] = Field(
        default=None,
        description="Contraction start time (defaults to now)"
    )


# ===========================================
# Reading Response Schemas
# ===========================================

class ReadingSchema(BaseModel):
    """A stored reading."""

    id: str
    subject_id: str
    kind: ReadingKind
    values: Dict[str, Any] = Field(description="Measurement fields present on the reading")
    notes: Optional[str] = None
    recorded_at: datetime
    created_at: datetime


class FindingSchema(BaseModel):
    """One derived observation."""

    category: FindingCategory
    severity: Severity
    message: str = Field(description="Subject-facing explanation")
    values: Dict[str, Any] = Field(default_factory=dict)


class AnalysisSchema(BaseModel):
    """Triage outcome for one reading."""

    status: Severity = Field(description="Highest severity among findings")
    risk_score: float = Field(ge=0.0, description="Coarse score, 0.2 per finding")
    findings: List[FindingSchema] = Field(default_factory=list)


class IntakeResponse(BaseModel):
    """Response after recording a reading."""

    reading: ReadingSchema
    analysis: AnalysisSchema


class ReadingListResponse(BaseModel):
    """Recent readings, newest first."""

    readings: List[ReadingSchema]
    count: int


class SummaryResponse(BaseModel):
    """Dashboard summary."""

    subject_id: str
    total_readings: int
    readings_last_7_days: int
    kinds: List[ReadingKind]
    last_recorded_at: Optional[datetime] = None
    latest_by_kind: Dict[str, ReadingSchema] = Field(default_factory=dict)
    unread_alerts: int


# ===========================================
# Alert Schemas
# ===========================================

class NoteAlertRequest(BaseModel):
    """Clinician-authored alert for a subject."""

    model_config = ConfigDict(extra="forbid")

    subject_id: str = Field(min_length=1, description="Subject the alert is for")
    severity: Literal["warning", "critical"] = "warning"
    message: str = Field(min_length=1, max_length=2000)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AlertSchema(BaseModel):
    """A persisted alert."""

    id: str
    subject_id: str
    reading_id: Optional[str] = None
    severity: Severity
    category: FindingCategory
    message: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    source: Literal["triage", "clinician"]
    acknowledged: bool
    created_at: datetime
    acknowledged_at: Optional[datetime] = None


class AlertListResponse(BaseModel):
    """Alerts newest first, with badge counters."""

    alerts: List[AlertSchema]
    count: int = Field(description="Total alerts for the subject")
    unread: int = Field(description="Alerts not yet acknowledged")


# ===========================================
# Error Schemas
# ===========================================

class ErrorDetail(BaseModel):
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """Envelope for every error response."""

    error: ErrorDetail
