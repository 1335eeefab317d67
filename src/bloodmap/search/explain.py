"""
Small formatting helpers.

Used by the CLI to print compact summaries of ranked donors.
"""

from __future__ import annotations

import math

from bloodmap.domain.models import RankedResult


def format_distance(distance_km: float) -> str:
    """Render a distance for display; unknown distances show as "-"."""
    if not math.isfinite(distance_km):
        return "-"
    return f"{distance_km:.1f} km"


def one_line_summary(result: RankedResult) -> str:
    """Render a compact single-line summary for a ranked donor."""
    donor = result.donor
    parts = [donor.blood_type, format_distance(result.distance_km)]
    if donor.location:
        parts.append(donor.location)
    return " | ".join(parts)
