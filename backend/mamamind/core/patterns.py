"""
Mama Mind - Pattern Analyzer

Derives findings from a short window of a subject's prior readings of the
same kind, rather than from the instantaneous value alone.

Window resolution:
    The history query is bounded by time first and then capped by count:
    keep prior readings recorded within the lookback before the new reading,
    then keep the most recent ``limit`` of those. A burst of more than
    ``limit`` readings inside the lookback therefore only sees the latest
    ones, and readings older than the lookback never count regardless of how
    few there are.

Both analyzers are deterministic: they only look at the timestamps they are
given, never at the wall clock.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from mamamind.core.classifier import classify_kick_count, is_strong_contraction
from mamamind.core.types import (
    Finding,
    FindingCategory,
    Reading,
    ReadingKind,
    Severity,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Window Policy
# =============================================================================

CONTRACTION_LOOKBACK = timedelta(hours=2)
CONTRACTION_HISTORY_LIMIT = 10
CONTRACTION_MIN_EVENTS = 3              # including the new contraction
CONTRACTION_LABOR_INTERVAL_MINUTES = 10.0

KICK_LOOKBACK = timedelta(hours=12)
KICK_HISTORY_LIMIT = 10

HISTORY_WINDOWS: Dict[ReadingKind, Tuple[timedelta, int]] = {
    ReadingKind.CONTRACTION: (CONTRACTION_LOOKBACK, CONTRACTION_HISTORY_LIMIT),
    ReadingKind.KICK_COUNT: (KICK_LOOKBACK, KICK_HISTORY_LIMIT),
}


def history_window(kind: ReadingKind) -> Optional[Tuple[timedelta, int]]:
    """(lookback, limit) for kinds with pattern analysis, else None."""
    return HISTORY_WINDOWS.get(kind)


def select_window(
    recent: Sequence[Reading],
    new: Reading,
    lookback: timedelta,
    limit: int,
) -> List[Reading]:
    """
    Apply the time-then-count window to prior readings.

    Args:
        recent: Prior readings of the same kind, any order
        new: The reading being recorded
        lookback: How far back from ``new.recorded_at`` to look
        limit: Maximum number of prior readings to keep

    Returns:
        Prior readings inside the window, most recent first
    """
    since = new.recorded_at - lookback
    in_window = [
        r for r in recent
        if since <= r.recorded_at <= new.recorded_at
    ]
    in_window.sort(key=lambda r: r.recorded_at, reverse=True)
    return in_window[:limit]


def intervals_minutes(timestamps: Sequence[datetime]) -> List[float]:
    """Gaps between consecutive timestamps, in minutes, chronological order."""
    ordered = sorted(timestamps)
    return [
        (later - earlier).total_seconds() / 60.0
        for earlier, later in zip(ordered, ordered[1:])
    ]


# =============================================================================
# Analyzers
# =============================================================================

def analyze_contraction_pattern(
    recent_contractions: Sequence[Reading],
    new_contraction: Reading,
) -> Optional[Finding]:
    """
    Detect a possible labor pattern.

    A single strong contraction is common. What matters is regularity at
    short intervals combined with strength, so the rule is conjunctive:
    the mean start-to-start interval across the window is under ten minutes
    AND the new contraction is strong.

    Args:
        recent_contractions: Prior contractions for the subject, most recent first
        new_contraction: The contraction being recorded

    Returns:
        A critical ``contractions`` finding, or None
    """
    window = select_window(
        recent_contractions,
        new_contraction,
        CONTRACTION_LOOKBACK,
        CONTRACTION_HISTORY_LIMIT,
    )
    events = [new_contraction] + window
    if len(events) < CONTRACTION_MIN_EVENTS:
        return None

    gaps = intervals_minutes([e.recorded_at for e in events])
    average = sum(gaps) / len(gaps)

    logger.debug(
        "Contraction window: %d events, average interval %.1f min",
        len(events), average,
    )

    if average < CONTRACTION_LABOR_INTERVAL_MINUTES and is_strong_contraction(new_contraction):
        return Finding(
            category=FindingCategory.CONTRACTIONS,
            severity=Severity.CRITICAL,
            message=(
                f"Strong contractions about every {average:.1f} minutes "
                f"({len(events)} in the last {int(CONTRACTION_LOOKBACK.total_seconds() // 3600)} hours). "
                "This may be labor. Contact your provider or go to the hospital."
            ),
            values={
                "contraction_count": len(events),
                "average_interval_minutes": round(average, 2),
                "intervals_minutes": [round(g, 2) for g in gaps],
                "intensity": new_contraction.intensity.value if new_contraction.intensity else None,
            },
        )

    return None


def analyze_kick_count_pattern(
    recent_sessions: Sequence[Reading],
    new_session: Reading,
) -> Optional[Finding]:
    """
    Detect persistently reduced fetal movement.

    Fires when the new session is itself low-movement and at least one other
    session inside the lookback was also low-movement.

    Args:
        recent_sessions: Prior kick-count sessions, most recent first
        new_session: The session being recorded

    Returns:
        A critical ``fetal_movement`` finding, or None
    """
    if classify_kick_count(new_session.count, new_session.duration_minutes) is None:
        return None

    window = select_window(recent_sessions, new_session, KICK_LOOKBACK, KICK_HISTORY_LIMIT)
    low_sessions = [
        s for s in window
        if classify_kick_count(s.count, s.duration_minutes) is not None
    ]
    if not low_sessions:
        return None

    total = len(low_sessions) + 1
    return Finding(
        category=FindingCategory.FETAL_MOVEMENT,
        severity=Severity.CRITICAL,
        message=(
            f"Reduced fetal movement in {total} sessions within "
            f"{int(KICK_LOOKBACK.total_seconds() // 3600)} hours. "
            "Contact your provider now."
        ),
        values={
            "low_sessions": total,
            "counts": [new_session.count] + [s.count for s in low_sessions],
        },
    )


def analyze_pattern(
    recent: Sequence[Reading],
    new: Reading,
) -> Optional[Finding]:
    """Dispatch to the analyzer for the reading's kind."""
    if new.kind is ReadingKind.CONTRACTION:
        return analyze_contraction_pattern(recent, new)
    if new.kind is ReadingKind.KICK_COUNT:
        return analyze_kick_count_pattern(recent, new)
    return None
