"""
Marker layout for the results map.

Many donors share one village-level coordinate (the geocoder resolves "Kukatpally,
Hyderabad" to the same point for everyone who typed it). Coincident markers are
fanned out around the true point so each stays clickable:

- results are bucketed by coordinate rounded to `bucket_precision` decimals,
- the first result in a bucket keeps its true coordinate,
- the n-th repeat goes `ring_spacing_m * (n // markers_per_ring + 1)` metres out
  at bearing `(n * bearing_step_deg) % 360`.

The layout depends only on input order, so the same ranked list always renders the same way.
"""

from __future__ import annotations

from typing import Iterable

from bloodmap.config.settings import MarkerSettings
from bloodmap.core.geo import destination_point
from bloodmap.domain.models import Coordinate, MarkerPlacement, RankedResult


def offset_for_repeat(n: int, settings: MarkerSettings) -> tuple[float, float]:
    """Return (radius_m, bearing_deg) for the n-th repeat (n >= 1) in a bucket."""
    if n < 1:
        raise ValueError("repeat index must be >= 1")
    bearing = (n * settings.bearing_step_deg) % 360
    radius = settings.ring_spacing_m * (n // settings.markers_per_ring + 1)
    return radius, bearing


def layout(results: Iterable[RankedResult], settings: MarkerSettings | None = None) -> list[MarkerPlacement]:
    """Compute render positions for results that have a coordinate.

    Input coordinates are never modified; results without one are skipped.
    """
    settings = settings or MarkerSettings()
    buckets: dict[tuple[float, float], tuple[int, Coordinate]] = {}
    placements: list[MarkerPlacement] = []

    for result in results:
        coordinate = result.donor.coordinate
        if coordinate is None or not coordinate.is_finite():
            continue

        key = (
            round(coordinate.lat, settings.bucket_precision),
            round(coordinate.lon, settings.bucket_precision),
        )
        n, origin = buckets.get(key, (0, coordinate))
        buckets[key] = (n + 1, origin)

        if n == 0:
            placements.append(MarkerPlacement(coordinate=coordinate, source_id=result.donor.id))
            continue

        radius_m, bearing_deg = offset_for_repeat(n, settings)
        # Offsets fan out from the bucket's first point, not from earlier nudged markers.
        moved = destination_point(origin.lat, origin.lon, radius_m, bearing_deg)
        placements.append(
            MarkerPlacement(
                coordinate=Coordinate(lat=moved.lat, lon=moved.lon),
                source_id=result.donor.id,
                offset=True,
            )
        )

    return placements
