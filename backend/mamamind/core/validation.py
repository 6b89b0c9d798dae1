"""
Mama Mind - Reading Validation

Plausible-range checks applied before any classification. Out-of-range
input is rejected, never clamped, so a typo such as 1400/90 cannot be
silently recorded as a hypertensive crisis.
"""

from __future__ import annotations

import math
from datetime import timedelta
from typing import Dict, FrozenSet, Tuple

from mamamind.core.exceptions import ValidationError
from mamamind.core.types import (
    MEASUREMENT_FIELDS,
    ContractionIntensity,
    Reading,
    ReadingKind,
    utcnow,
)


# Inclusive physically-plausible bounds per field.
PLAUSIBLE_RANGES: Dict[str, Tuple[float, float]] = {
    "systolic": (50, 200),
    "diastolic": (30, 150),
    "heart_rate": (30, 220),
    "weight_kg": (30, 250),
    "baseline_weight_kg": (30, 250),
    "gestational_week": (0, 42),
    "count": (0, 200),
    "duration_minutes": (1, 720),
    "duration_seconds": (1, 600),
}

# Device clocks drift; anything further ahead than this is a client error.
MAX_FUTURE_SKEW = timedelta(minutes=5)

REQUIRED_FIELDS: Dict[ReadingKind, FrozenSet[str]] = {
    ReadingKind.BLOOD_PRESSURE: frozenset({"systolic", "diastolic"}),
    ReadingKind.HEART_RATE: frozenset({"heart_rate"}),
    ReadingKind.WEIGHT: frozenset({"weight_kg"}),
    ReadingKind.KICK_COUNT: frozenset({"count", "duration_minutes"}),
    ReadingKind.CONTRACTION: frozenset({"duration_seconds", "intensity"}),
}

OPTIONAL_FIELDS: Dict[ReadingKind, FrozenSet[str]] = {
    ReadingKind.BLOOD_PRESSURE: frozenset({"heart_rate"}),
    ReadingKind.HEART_RATE: frozenset(),
    ReadingKind.WEIGHT: frozenset({"baseline_weight_kg", "gestational_week"}),
    ReadingKind.KICK_COUNT: frozenset(),
    ReadingKind.CONTRACTION: frozenset(),
}


def allowed_fields(kind: ReadingKind) -> FrozenSet[str]:
    """Measurement fields a reading of ``kind`` may carry."""
    return REQUIRED_FIELDS[kind] | OPTIONAL_FIELDS[kind]


def validate_reading(reading: Reading) -> Reading:
    """
    Check a reading against its kind's field set and plausible ranges.

    Args:
        reading: Reading to check

    Returns:
        The same reading, for call chaining

    Raises:
        ValidationError: with one entry per offending field
    """
    errors: Dict[str, str] = {}
    allowed = allowed_fields(reading.kind)

    for name in REQUIRED_FIELDS[reading.kind]:
        if getattr(reading, name) is None:
            errors[name] = f"required for {reading.kind.value} readings"

    for name in MEASUREMENT_FIELDS:
        value = getattr(reading, name)
        if value is None:
            continue
        if name not in allowed:
            errors[name] = f"not accepted for {reading.kind.value} readings"
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            errors[name] = "must be a finite number"
            continue
        low, high = PLAUSIBLE_RANGES[name]
        if not low <= value <= high:
            errors[name] = f"must be between {low:g} and {high:g}, got {value:g}"

    if reading.intensity is not None:
        if "intensity" not in allowed:
            errors["intensity"] = f"not accepted for {reading.kind.value} readings"
        elif not isinstance(reading.intensity, ContractionIntensity):
            errors["intensity"] = "must be one of: " + ", ".join(i.value for i in ContractionIntensity)

    if reading.recorded_at.tzinfo is None:
        errors["recorded_at"] = "must include a timezone"
    elif reading.recorded_at > utcnow() + MAX_FUTURE_SKEW:
        errors["recorded_at"] = "must not be in the future"

    if reading.count is not None and "count" not in errors and float(reading.count) != int(reading.count):
        errors["count"] = "must be a whole number"

    if not reading.subject_id:
        errors["subject_id"] = "required"

    if errors:
        raise ValidationError(
            f"Invalid {reading.kind.value} reading: {', '.join(sorted(errors))}",
            fields=errors,
        )
    return reading
