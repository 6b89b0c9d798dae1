"""
Mama Mind - REST API Routes

Endpoints for recording vitals, reading history and managing alerts.
Real-time alert delivery is handled separately via WebSocket.

Architecture:
    All triage operations flow through the IntakeOrchestrator, accessed via
    dependency injection from app.state. The subject a request acts on is
    always the authenticated principal.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging

from fastapi import APIRouter, Depends, Query, Request, status

from mamamind.config import Settings
from mamamind.core.pipeline import IntakeOrchestrator
from mamamind.core.types import (
    IntakeResult,
    Principal,
    Reading,
    ReadingKind,
    Severity,
    StoredAlert,
    StoredReading,
    utcnow,
)

from .auth import get_current_principal, require_clinician
from .schemas import (
    AlertListResponse,
    AlertSchema,
    AnalysisSchema,
    ContractionRequest,
    IntakeResponse,
    KickCountRequest,
    NoteAlertRequest,
    ReadingListResponse,
    ReadingSchema,
    SummaryResponse,
    VitalsRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["api"])


# =============================================================================
# Dependencies
# =============================================================================

def get_orchestrator(request: Request) -> IntakeOrchestrator:
    """Dependency to get the intake orchestrator from app state."""
    return request.app.state.orchestrator


def get_settings(request: Request) -> Settings:
    """Dependency to get settings from app state."""
    return request.app.state.settings


# =============================================================================
# Converters (Domain <-> API Schema)
# =============================================================================

def _as_utc(value: Optional[datetime]) -> datetime:
    """Default to now; naive timestamps are taken as UTC."""
    if value is None:
        return utcnow()
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def reading_to_schema(stored: StoredReading) -> ReadingSchema:
    return ReadingSchema.model_validate(stored.to_dict())


def alert_to_schema(alert: StoredAlert) -> AlertSchema:
    return AlertSchema.model_validate(alert.to_dict())


def intake_to_schema(result: IntakeResult) -> IntakeResponse:
    """
    Convert the domain IntakeResult to the API response.

    This conversion layer isolates the API schema from internal domain types,
    allowing them to evolve independently.
    """
    return IntakeResponse(
        reading=reading_to_schema(result.reading),
        analysis=AnalysisSchema.model_validate(result.assessment.to_dict()),
    )


def _build_reading(
    principal: Principal,
    kind: ReadingKind,
    measurements: Dict[str, Any],
    notes: Optional[str],
    recorded_at: Optional[datetime],
) -> Reading:
    return Reading(
        subject_id=principal.subject_id,
        kind=kind,
        recorded_at=_as_utc(recorded_at),
        notes=notes,
        **measurements,
    )


# =============================================================================
# Vitals
# =============================================================================

@router.post("/vitals", response_model=IntakeResponse, status_code=status.HTTP_201_CREATED)
async def record_vitals(
    body: VitalsRequest,
    principal: Principal = Depends(get_current_principal),
    orchestrator: IntakeOrchestrator = Depends(get_orchestrator),
):
    """
    Record a blood pressure, heart rate or weight reading.

    The reading is triaged before it is stored; the response carries both the
    stored reading and its analysis. Readings outside plausible ranges are
    rejected with 400 and nothing is stored.
    """
    measurements = body.model_dump(
        exclude={"kind", "notes", "recorded_at"},
        exclude_none=True,
    )
    reading = _build_reading(
        principal,
        ReadingKind(body.kind),
        measurements,
        body.notes,
        body.recorded_at,
    )
    result = await orchestrator.record_reading(reading)
    return intake_to_schema(result)


@router.post("/vitals/kicks", response_model=IntakeResponse, status_code=status.HTTP_201_CREATED)
async def record_kick_count(
    body: KickCountRequest,
    principal: Principal = Depends(get_current_principal),
    orchestrator: IntakeOrchestrator = Depends(get_orchestrator),
):
    """
    Record a kick-count session.

    Fewer than 6 movements over an hour or more is a warning; two such
    sessions within 12 hours is critical.
    """
    reading = _build_reading(
        principal,
        ReadingKind.KICK_COUNT,
        {"count": body.count, "duration_minutes": body.duration_minutes},
        body.notes,
        body.recorded_at,
    )
    result = await orchestrator.record_reading(reading)
    return intake_to_schema(result)


@router.post("/vitals/contractions", response_model=IntakeResponse, status_code=status.HTTP_201_CREATED)
async def record_contraction(
    body: ContractionRequest,
    principal: Principal = Depends(get_current_principal),
    orchestrator: IntakeOrchestrator = Depends(get_orchestrator),
):
    """
    Record a contraction.

    Three or more contractions in two hours averaging under ten minutes
    apart, with the latest one strong, is critical.
    """
    reading = _build_reading(
        principal,
        ReadingKind.CONTRACTION,
        {"duration_seconds": body.duration_seconds, "intensity": body.intensity},
        body.notes,
        body.recorded_at,
    )
    result = await orchestrator.record_reading(reading)
    return intake_to_schema(result)


@router.get("/vitals", response_model=ReadingListResponse)
async def list_vitals(
    kind: Optional[ReadingKind] = Query(default=None, description="Only this kind"),
    limit: int = Query(default=50, ge=1, le=200),
    principal: Principal = Depends(get_current_principal),
    orchestrator: IntakeOrchestrator = Depends(get_orchestrator),
):
    """Recent readings, newest first."""
    readings = await orchestrator.list_readings(principal.subject_id, kind=kind, limit=limit)
    return ReadingListResponse(
        readings=[reading_to_schema(r) for r in readings],
        count=len(readings),
    )


@router.get("/vitals/summary", response_model=SummaryResponse)
async def vitals_summary(
    principal: Principal = Depends(get_current_principal),
    orchestrator: IntakeOrchestrator = Depends(get_orchestrator),
):
    """Dashboard summary: totals, last 7 days, kinds, latest per kind, unread alerts."""
    summary = await orchestrator.summary(principal.subject_id)
    return SummaryResponse.model_validate(summary.to_dict())


# =============================================================================
# Alerts
# =============================================================================

@router.get("/alerts", response_model=AlertListResponse)
async def list_alerts(
    unread_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    principal: Principal = Depends(get_current_principal),
    orchestrator: IntakeOrchestrator = Depends(get_orchestrator),
):
    """Alerts for the caller, newest first."""
    listing = await orchestrator.list_alerts(
        principal.subject_id,
        unread_only=unread_only,
        limit=limit,
    )
    return AlertListResponse(
        alerts=[alert_to_schema(a) for a in listing.alerts],
        count=listing.total,
        unread=listing.unread,
    )


@router.post("/alerts", response_model=AlertSchema, status_code=status.HTTP_201_CREATED)
async def create_note_alert(
    body: NoteAlertRequest,
    principal: Principal = Depends(require_clinician),
    orchestrator: IntakeOrchestrator = Depends(get_orchestrator),
):
    """
    Create a clinician-authored alert for a subject.

    Requires the clinician role. The alert is pushed to the subject's
    real-time channel as ``alert.created``.
    """
    alert = await orchestrator.create_note_alert(
        subject_id=body.subject_id,
        severity=Severity(body.severity),
        message=body.message,
        metadata=body.metadata,
        author_id=principal.subject_id,
    )
    return alert_to_schema(alert)


@router.patch("/alerts/{alert_id}/acknowledge", response_model=AlertSchema)
async def acknowledge_alert(
    alert_id: str,
    principal: Principal = Depends(get_current_principal),
    orchestrator: IntakeOrchestrator = Depends(get_orchestrator),
):
    """
    Mark one of the caller's alerts as read.

    Acknowledging twice keeps the first acknowledgment time. Unknown ids and
    alerts belonging to another subject both return 404.
    """
    alert = await orchestrator.acknowledge_alert(alert_id, principal.subject_id)
    return alert_to_schema(alert)
