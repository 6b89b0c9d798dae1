"""
Mama Mind - Threshold Classifier

Pure, side-effect-free mapping from one reading's numeric fields to at most
one Finding per clinical category.

Rules:
    - Blood pressure: either value alone can trigger (worst-of-two).
      >= 140 systolic or >= 90 diastolic is critical (pre-eclampsia screening
      band); >= 130 / >= 85 is a warning.
    - Heart rate: two bands. Outside 60-120 bpm is a warning, outside
      50-130 bpm is critical.
    - Weight gain: linear expected-gain placeholder, see WEIGHT_GAIN_PER_WEEK_KG.
    - Kick count: fewer than 6 movements over a session of at least an hour.

A missing input (None) always yields no finding for that category. Missing
values are never treated as zero.

SAFETY NOTICE:
    These thresholds are screening heuristics carried over from the product
    rules, not validated clinical models. Every finding is decision support
    for the care team, not a diagnosis.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from mamamind.core.types import (
    ContractionIntensity,
    Finding,
    FindingCategory,
    Reading,
    ReadingKind,
    Severity,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Policy Constants
# =============================================================================

BP_CRITICAL_SYSTOLIC = 140
BP_CRITICAL_DIASTOLIC = 90
BP_WARNING_SYSTOLIC = 130
BP_WARNING_DIASTOLIC = 85

HR_CRITICAL_LOW = 50
HR_CRITICAL_HIGH = 130
HR_WARNING_LOW = 60
HR_WARNING_HIGH = 120

# Placeholder policy: expected cumulative gain grows linearly with gestational
# week. Not a clinical guideline; replace with a validated curve when one is
# agreed with the clinical team.
WEIGHT_GAIN_PER_WEEK_KG = 0.5
WEIGHT_GAIN_MARGIN_KG = 10.0

KICK_COUNT_MINIMUM = 6
KICK_SESSION_MINUTES = 60


# =============================================================================
# Per-category Classifiers
# =============================================================================

def classify_blood_pressure(
    systolic: Optional[float],
    diastolic: Optional[float],
) -> Optional[Finding]:
    """Classify one blood pressure measurement."""
    if systolic is None or diastolic is None:
        return None

    values = {"systolic": systolic, "diastolic": diastolic}
    reading = f"{systolic:g}/{diastolic:g} mmHg"

    if systolic >= BP_CRITICAL_SYSTOLIC or diastolic >= BP_CRITICAL_DIASTOLIC:
        return Finding(
            category=FindingCategory.BLOOD_PRESSURE,
            severity=Severity.CRITICAL,
            message=(
                f"Blood pressure {reading} is in the hypertensive range. "
                "Contact your healthcare provider now."
            ),
            values=values,
        )

    if systolic >= BP_WARNING_SYSTOLIC or diastolic >= BP_WARNING_DIASTOLIC:
        return Finding(
            category=FindingCategory.BLOOD_PRESSURE,
            severity=Severity.WARNING,
            message=f"Blood pressure {reading} is elevated. Recheck after resting.",
            values=values,
        )

    return None


def classify_heart_rate(bpm: Optional[float]) -> Optional[Finding]:
    """Classify a maternal pulse reading."""
    if bpm is None:
        return None

    values = {"heart_rate": bpm}

    if bpm < HR_CRITICAL_LOW or bpm > HR_CRITICAL_HIGH:
        return Finding(
            category=FindingCategory.HEART_RATE,
            severity=Severity.CRITICAL,
            message=f"Heart rate {bpm:g} bpm is outside the safe range. Seek care now.",
            values=values,
        )

    if bpm < HR_WARNING_LOW or bpm > HR_WARNING_HIGH:
        return Finding(
            category=FindingCategory.HEART_RATE,
            severity=Severity.WARNING,
            message=f"Heart rate {bpm:g} bpm is outside the usual range for pregnancy.",
            values=values,
        )

    return None


def expected_weight_gain(gestational_week: float) -> float:
    """Expected cumulative gain in kg at ``gestational_week``."""
    return gestational_week * WEIGHT_GAIN_PER_WEEK_KG


def classify_weight_gain(
    current_weight: Optional[float],
    baseline_weight: Optional[float],
    gestational_week: Optional[float],
) -> Optional[Finding]:
    """Flag cumulative weight gain well above the expected amount."""
    if current_weight is None or baseline_weight is None or gestational_week is None:
        return None

    gain = current_weight - baseline_weight
    expected = expected_weight_gain(gestational_week)

    if gain > expected + WEIGHT_GAIN_MARGIN_KG:
        return Finding(
            category=FindingCategory.WEIGHT_GAIN,
            severity=Severity.WARNING,
            message=(
                f"Weight gain of {gain:.1f} kg is above the expected "
                f"{expected:.1f} kg for week {gestational_week:g}."
            ),
            values={
                "weight_kg": current_weight,
                "baseline_weight_kg": baseline_weight,
                "gestational_week": gestational_week,
                "gain_kg": round(gain, 2),
                "expected_gain_kg": round(expected, 2),
            },
        )

    return None


def classify_kick_count(
    count: Optional[int],
    duration_minutes: Optional[float],
) -> Optional[Finding]:
    """Flag low fetal movement over a full-length counting session."""
    if count is None or duration_minutes is None:
        return None

    if count < KICK_COUNT_MINIMUM and duration_minutes >= KICK_SESSION_MINUTES:
        return Finding(
            category=FindingCategory.FETAL_MOVEMENT,
            severity=Severity.WARNING,
            message=(
                f"Only {count} movements in {duration_minutes:g} minutes. "
                "Low fetal movement should be checked by your provider."
            ),
            values={"count": count, "duration_minutes": duration_minutes},
        )

    return None


# =============================================================================
# Dispatch
# =============================================================================

def classify_reading(reading: Reading) -> List[Finding]:
    """
    Run every classifier that applies to the reading's kind.

    Findings come back in a fixed category order: blood pressure, heart rate,
    weight gain, fetal movement. Contractions have no instantaneous rule;
    they are judged by the pattern analyzer only.
    """
    findings: List[Optional[Finding]] = []

    if reading.kind is ReadingKind.BLOOD_PRESSURE:
        findings.append(classify_blood_pressure(reading.systolic, reading.diastolic))
        findings.append(classify_heart_rate(reading.heart_rate))
    elif reading.kind is ReadingKind.HEART_RATE:
        findings.append(classify_heart_rate(reading.heart_rate))
    elif reading.kind is ReadingKind.WEIGHT:
        findings.append(classify_weight_gain(
            reading.weight_kg, reading.baseline_weight_kg, reading.gestational_week,
        ))
    elif reading.kind is ReadingKind.KICK_COUNT:
        findings.append(classify_kick_count(reading.count, reading.duration_minutes))

    result = [f for f in findings if f is not None]
    logger.debug(
        "Classified %s reading: %d finding(s)", reading.kind.value, len(result),
    )
    return result


def is_strong_contraction(reading: Reading) -> bool:
    return reading.intensity is ContractionIntensity.STRONG
