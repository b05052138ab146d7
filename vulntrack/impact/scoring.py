"""Impact score formula for a vulnerability's spread across the estate."""

import math
from typing import Any

from ..models import Severity


SEVERITY_BASE_SCORES = {
    Severity.CRITICAL: 10,
    Severity.HIGH: 8,
    Severity.MEDIUM: 5,
    Severity.LOW: 2,
    Severity.UNKNOWN: 1,
}
DEFAULT_SEVERITY_BASE = 1

MAX_IMPACT_SCORE = 10.0
CRITICAL_IMPACT_THRESHOLD = 9
HIGH_IMPACT_THRESHOLD = 7

SPREAD_WEIGHT = 0.2
OCCURRENCE_WEIGHT = 0.1


def severity_base(severity: Any) -> int:
    """Base score for a severity given as enum or string value."""
    return SEVERITY_BASE_SCORES.get(Severity.parse(severity), DEFAULT_SEVERITY_BASE)


def calculate_impact_score(severity: Any, project_count: int, image_count: int,
                           occurrences: int) -> float:
    """Calculate the impact score of a vulnerability.

    Severity sets the floor. Project/image spread and raw occurrence count
    add log-scaled increments so that many identical occurrences cannot
    outweigh a vulnerability spread across many distinct projects. The
    result is clamped to ``MAX_IMPACT_SCORE``.

    Args:
        severity: Vulnerability severity
        project_count: Number of distinct affected projects
        image_count: Number of distinct affected image references
        occurrences: Total number of instances

    Returns:
        Impact score in the range (0, 10]
    """
    spread_factor = math.log10(project_count + 1) + math.log10(image_count + 1)
    occurrence_factor = math.log10(occurrences + 1)

    raw_score = severity_base(severity) * (
        1 + spread_factor * SPREAD_WEIGHT + occurrence_factor * OCCURRENCE_WEIGHT
    )
    return min(MAX_IMPACT_SCORE, raw_score)


def is_critical_impact(score: float) -> bool:
    return score >= CRITICAL_IMPACT_THRESHOLD


def is_high_impact(score: float) -> bool:
    return HIGH_IMPACT_THRESHOLD <= score < CRITICAL_IMPACT_THRESHOLD
