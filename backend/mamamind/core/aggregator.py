"""
Mama Mind - Risk Aggregator

Folds the findings produced for one intake into a RiskAssessment.
"""

from __future__ import annotations

from typing import Iterable

from mamamind.core.types import Finding, RiskAssessment, Severity


# Placeholder policy: each actionable finding adds a fixed step to the score.
# Deliberately coarse; swap for a weighted model once one is validated.
RISK_SCORE_PER_FINDING = 0.2


def aggregate(findings: Iterable[Finding]) -> RiskAssessment:
    """
    Combine findings into one assessment.

    Normal findings are dropped. Status is the highest remaining severity,
    so it does not depend on input order; the kept findings stay in the
    order they were produced for display and audit.
    """
    kept = [f for f in findings if f.is_actionable]

    status = Severity.NORMAL
    for finding in kept:
        if finding.severity.rank > status.rank:
            status = finding.severity

    return RiskAssessment(
        status=status,
        risk_score=round(len(kept) * RISK_SCORE_PER_FINDING, 4),
        findings=kept,
    )
