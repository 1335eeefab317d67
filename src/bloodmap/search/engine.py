"""
Proximity search over a donor pool.

Pipeline for one query:
1. resolve the search center (explicit coordinate, else forward-geocode the text),
2. reject centers outside the service area,
3. keep available donors of the requested blood types,
4. backfill missing donor coordinates from their location text (best effort),
5. compute Haversine distances (`inf` when a coordinate is missing),
6. drop donors located outside the service area,
7. keep donors whose location mentions the center's state (heuristic, see `_same_state`),
8. optionally cap the distance, then stable-sort nearest first.

The engine never writes to the donor pool: backfilled donors are new records.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Sequence

from bloodmap.config.settings import Settings
from bloodmap.core.cache import FileCache
from bloodmap.core.env import resolve_project_path
from bloodmap.core.geo import BoundingBox, haversine_km
from bloodmap.domain.errors import CenterUnresolved, GeocodeError, OutOfServiceArea
from bloodmap.domain.models import Coordinate, DonorRecord, RankedResult, SearchOutcome, SearchQuery
from bloodmap.geocoding.geocoder import Geocoder
from bloodmap.geocoding.normalizer import normalize_manual_string
from bloodmap.markers.layout import layout

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchCenter:
    coordinate: Coordinate
    state: str | None = None
    formatted_location: str | None = None


class ProximitySearchEngine:
    """Ranks donors by distance from a seeker's location."""

    def __init__(self, settings: Settings, geocoder: Geocoder):
        self._settings = settings
        self._geocoder = geocoder
        area = settings.search.service_area
        self._service_area = BoundingBox(north=area.north, south=area.south, east=area.east, west=area.west)

    @property
    def geocoder(self) -> Geocoder:
        return self._geocoder

    @property
    def service_area(self) -> BoundingBox:
        return self._service_area

    def resolve_center(self, query: SearchQuery) -> SearchCenter:
        """Return the query's center point, raising on missing or out-of-area centers."""
        if query.explicit_coordinate is not None:
            coordinate = query.explicit_coordinate
            # Reject before any provider sees an out-of-area fix.
            self._check_service_area(coordinate)
            state: str | None = None
            formatted: str | None = None
            # The state only narrows results, so a failed reverse lookup is not fatal.
            try:
                rev = self._geocoder.reverse(coordinate)
                state, formatted = rev.state, rev.formatted_location
            except GeocodeError as exc:
                logger.info("Could not determine state for search center: %s", exc)
            return SearchCenter(coordinate=coordinate, state=state, formatted_location=formatted)

        if query.location_text:
            try:
                hit = self._geocoder.forward(query.location_text)
            except GeocodeError as exc:
                raise CenterUnresolved(f"Location not found: {query.location_text!r}") from exc
            self._check_service_area(hit.coordinate)
            return SearchCenter(
                coordinate=hit.coordinate, state=hit.state, formatted_location=hit.formatted_location
            )

        raise CenterUnresolved("A location or a coordinate is required to search")

    def _check_service_area(self, coordinate: Coordinate) -> None:
        lat, lon = coordinate.lat, coordinate.lon
        if not self._service_area.contains(lat, lon):
            raise OutOfServiceArea(
                f"Please enter a location within {self._settings.search.service_area.name}",
                lat=lat,
                lon=lon,
            )

    def enrich_donor(self, donor: DonorRecord, *, reformat: bool = False) -> DonorRecord:
        """Return `donor` with a geocoded coordinate (and state) if it lacks one.

        The typed location text is kept as-is unless `reformat` is set, in which
        case it becomes the geocoded "village, district, state" form (or the
        offline reordering when the lookup fails).

        Idempotent: a donor that already has a coordinate (or no location text) is
        returned unchanged. Geocoding failures never raise.
        """
        if donor.coordinate is not None or not donor.location.strip():
            return donor
        try:
            hit = self._geocoder.forward(donor.location)
        except GeocodeError as exc:
            logger.debug("Could not backfill coordinate for donor %s: %s", donor.id, exc)
            if not reformat:
                return donor
            return donor.model_copy(update={"location": normalize_manual_string(donor.location)})

        updates: dict[str, Any] = {"coordinate": hit.coordinate, "state": donor.state or hit.state}
        if reformat:
            updates["location"] = hit.formatted_location or normalize_manual_string(donor.location)
        return donor.model_copy(update=updates)

    def enrich_profile(self, donor: DonorRecord, *, reformat: bool = False) -> DonorRecord:
        """Fill in the map pin and state for a donor profile being saved.

        Typed locations are forward-geocoded (see `enrich_donor`). A GPS fix whose
        text does not already read like "place, district, state" is reverse-geocoded
        for its state; the donor's own text is only replaced when it is empty and
        `reformat` is set. Failed lookups leave the profile savable without a pin.
        """
        donor = self.enrich_donor(donor, reformat=reformat)
        coordinate = donor.coordinate
        if coordinate is None or donor.state or "," in donor.location:
            return donor
        try:
            rev = self._geocoder.reverse(coordinate)
        except GeocodeError as exc:
            logger.debug("Could not reverse geocode donor %s: %s", donor.id, exc)
            return donor

        updates: dict[str, Any] = {"state": rev.state}
        if reformat and not donor.location.strip():
            updates["location"] = rev.formatted_location
        return donor.model_copy(update=updates)

    def search(self, query: SearchQuery, donor_pool: Sequence[DonorRecord]) -> list[RankedResult]:
        """Rank available donors matching `query`, nearest first.

        Raises:
            CenterUnresolved: Neither a usable coordinate nor a geocodable location was given.
            OutOfServiceArea: The center lies outside the service area.
        """
        center = self.resolve_center(query)
        return self._rank(query, donor_pool, center)

    def run(self, query: SearchQuery, donor_pool: Sequence[DonorRecord]) -> SearchOutcome:
        """Search and lay out map markers in one call."""
        center = self.resolve_center(query)
        results = self._rank(query, donor_pool, center)
        return SearchOutcome(
            center=center.coordinate,
            center_state=center.state,
            center_location=center.formatted_location,
            radius_km=float(self._max_distance_km(query) or self._settings.search.radius_km),
            results=results,
            markers=layout(results, self._settings.markers),
            meta={"pool_size": len(donor_pool), "result_count": len(results)},
        )

    def _max_distance_km(self, query: SearchQuery) -> float | None:
        if query.max_distance_km is not None:
            return query.max_distance_km
        return self._settings.search.max_distance_km

    def _same_state(self, donor: DonorRecord, center_state: str | None) -> bool:
        # Substring heuristic: a donor passes when its text names the center's
        # state, or when it does not mention the country at all (we then cannot
        # tell which state it is in).
        if not center_state:
            return True
        location = donor.location.lower()
        return center_state.lower() in location or self._settings.search.country_token.lower() not in location

    def _rank(
        self, query: SearchQuery, donor_pool: Sequence[DonorRecord], center: SearchCenter
    ) -> list[RankedResult]:
        wanted = query.blood_types
        candidates = [
            d
            for d in donor_pool
            if d.availability == "available" and (not wanted or d.blood_type in wanted)
        ]
        candidates = [self.enrich_donor(d) for d in candidates]

        ranked: list[RankedResult] = []
        for donor in candidates:
            distance = math.inf
            coordinate = donor.coordinate
            if coordinate is not None and coordinate.is_finite():
                if not self._service_area.contains(coordinate.lat, coordinate.lon):
                    continue
                distance = haversine_km(
                    center.coordinate.lat, center.coordinate.lon, coordinate.lat, coordinate.lon
                )
            if not self._same_state(donor, center.state):
                continue
            ranked.append(RankedResult(donor=donor, distance_km=distance))

        max_distance = self._max_distance_km(query)
        if max_distance is not None:
            ranked = [r for r in ranked if r.distance_km <= max_distance]

        # `sorted` is stable: equal distances (including inf) keep pool order.
        ranked = sorted(ranked, key=lambda r: r.distance_km)
        logger.info(
            "Ranked %d of %d donors around %.4f,%.4f (state=%s)",
            len(ranked),
            len(donor_pool),
            center.coordinate.lat,
            center.coordinate.lon,
            center.state or "unknown",
        )
        return ranked


def build_cache(settings: Settings) -> FileCache:
    """Build the on-disk geocode cache from settings."""
    return FileCache(
        resolve_project_path(settings.cache.dir),
        enabled=settings.cache.enabled,
        default_ttl_seconds=settings.cache.default_ttl_seconds,
    )


def build_engine(settings: Settings, cache: FileCache | None = None) -> ProximitySearchEngine:
    """Wire a search engine with the default provider chain."""
    geocoder = Geocoder(settings, cache=cache if cache is not None else build_cache(settings))
    return ProximitySearchEngine(settings, geocoder)
