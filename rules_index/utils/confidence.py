"""Confidence tier helpers for detected tables and datasets.

Detectors score a region with a handful of integer "evidence points" (row
count, inferred dice type, preceding roll context).  These helpers map the
points onto the three-tier :class:`~rules_index.models.rules.Confidence`
scale and compare tiers.
"""

from __future__ import annotations

from rules_index.models.rules import Confidence

_RANK = {
    Confidence.LOW: 0,
    Confidence.MEDIUM: 1,
    Confidence.HIGH: 2,
}


def points_to_confidence(points: int, high_at: int, medium_at: int) -> Confidence:
    """Map evidence points onto a confidence tier.

    Args:
        points: Accumulated evidence points for a region.
        high_at: Minimum points for ``high``.
        medium_at: Minimum points for ``medium``.

    Returns:
        The matching :class:`Confidence` tier.
    """
    if points >= high_at:
        return Confidence.HIGH
    if points >= medium_at:
        return Confidence.MEDIUM
    return Confidence.LOW


def at_least(level: Confidence, minimum: Confidence) -> bool:
    """Return True when *level* is the same tier as *minimum* or better."""
    return _RANK[level] >= _RANK[minimum]
