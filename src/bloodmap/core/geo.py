from __future__ import annotations
from dataclasses import dataclass
from math import asin, atan2, cos, degrees, isfinite, radians, sin, sqrt

"""
Geospatial helpers.

We keep a tiny geometry layer here so the search and marker modules can do
distance and offset calculations without pulling in heavier GIS dependencies.

Two Earth radii are used on purpose:
- `MEAN_EARTH_RADIUS_KM` for ranking distances (Haversine),
- `EQUATORIAL_EARTH_RADIUS_M` for nudging map markers a few metres apart.
"""

MEAN_EARTH_RADIUS_KM = 6371.0
EQUATORIAL_EARTH_RADIUS_M = 6_378_137.0


@dataclass(frozen=True)
class GeoPoint:
    """A latitude/longitude pair in decimal degrees."""

    lat: float
    lon: float


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned lat/lon box; edges are inclusive."""

    north: float
    south: float
    east: float
    west: float

    def contains(self, lat: float, lon: float) -> bool:
        if not (isfinite(lat) and isfinite(lon)):
            return False
        return self.south <= lat <= self.north and self.west <= lon <= self.east


INDIA_BOUNDS = BoundingBox(north=37.1, south=6.4, east=97.4, west=68.1)


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute great-circle distance in kilometres between two points."""
    phi1 = radians(lat1)
    phi2 = radians(lat2)
    dlat = radians(lat2 - lat1)
    dlon = radians(lon2 - lon1)

    h = sin(dlat / 2) ** 2 + cos(phi1) * cos(phi2) * sin(dlon / 2) ** 2
    # Clamp against rounding drift just above 1.0 for near-antipodal points.
    return 2 * MEAN_EARTH_RADIUS_KM * asin(sqrt(min(1.0, h)))


def destination_point(lat: float, lon: float, distance_m: float, bearing_deg: float) -> GeoPoint:
    """Project a point `distance_m` metres from (lat, lon) along `bearing_deg`.

    Bearing is clockwise from true north. The result longitude is wrapped to [-180, 180].
    """
    angular = distance_m / EQUATORIAL_EARTH_RADIUS_M
    bearing = radians(bearing_deg)
    phi1 = radians(lat)
    lambda1 = radians(lon)

    phi2 = asin(sin(phi1) * cos(angular) + cos(phi1) * sin(angular) * cos(bearing))
    lambda2 = lambda1 + atan2(
        sin(bearing) * sin(angular) * cos(phi1),
        cos(angular) - sin(phi1) * sin(phi2),
    )

    lon2 = (degrees(lambda2) + 540.0) % 360.0 - 180.0
    return GeoPoint(lat=degrees(phi2), lon=lon2)


def is_within_india_bounds(lat: float, lon: float) -> bool:
    """Return True when (lat, lon) falls inside India's coarse bounding box."""
    return INDIA_BOUNDS.contains(lat, lon)
