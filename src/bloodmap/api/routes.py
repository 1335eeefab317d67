"""
API routes.

Endpoints:
- POST `/api/search`: rank a donor pool around a location and lay out map markers.
- POST `/api/geocode`: free text -> normalized location + coordinate.
- POST `/api/reverse-geocode`: coordinate -> normalized location.
- POST `/api/normalize-location`: offline reordering of a typed location.
- POST `/api/resolve-location`, `/api/resolve-device-location`: location input fields
  (geocoded text when possible, offline fallback otherwise).
- POST `/api/enrich-donor`: pin a donor profile being saved.
- GET  `/api/settings`: public settings for the UI (API key redacted).
"""

from __future__ import annotations

import time
import uuid
from functools import lru_cache

from fastapi import APIRouter, HTTPException

from bloodmap.config.overrides import apply_settings_overrides
from bloodmap.config.settings import get_settings
from bloodmap.core.cache import FileCache, record_cache_stats
from bloodmap.core.lookup_meta import capture_lookup_meta
from bloodmap.domain.errors import (
    CenterUnresolved,
    GeocodeError,
    GeocodeErrorKind,
    OutOfServiceArea,
)
from bloodmap.domain.models import (
    Coordinate,
    DonorRecord,
    EnrichDonorRequest,
    GeocodeRequest,
    GeocodeResult,
    NormalizeRequest,
    ResolvedLocation,
    SearchOutcome,
    SearchRequest,
)
from bloodmap.geocoding.geocoder import Geocoder, resolve_device_location, resolve_typed_location
from bloodmap.geocoding.normalizer import normalize_manual_string
from bloodmap.search.engine import ProximitySearchEngine, build_cache

router = APIRouter()

_GEOCODE_ERROR_STATUS = {
    GeocodeErrorKind.INVALID_INPUT: 400,
    GeocodeErrorKind.NOT_FOUND: 404,
    GeocodeErrorKind.PROVIDER_UNAVAILABLE: 503,
}


@lru_cache
def _cache() -> FileCache:
    return build_cache(get_settings())


@lru_cache
def _geocoder() -> Geocoder:
    return Geocoder(get_settings(), cache=_cache())


def _geocode_http_error(exc: GeocodeError) -> HTTPException:
    return HTTPException(
        status_code=_GEOCODE_ERROR_STATUS[exc.kind],
        detail={"code": exc.kind.value.upper(), "message": str(exc)},
    )


@router.post("/api/search", response_model=SearchOutcome)
def post_search(request: SearchRequest) -> SearchOutcome:
    """Rank the submitted donor pool for the query; an empty result list is not an error."""
    started = time.perf_counter()
    request_id = uuid.uuid4().hex
    try:
        settings = apply_settings_overrides(get_settings(), request.settings_overrides)
    except ValueError as e:
        raise HTTPException(
            status_code=400,
            detail={"code": "VALIDATION_ERROR", "message": str(e)},
        ) from e

    engine = ProximitySearchEngine(settings, _geocoder())
    try:
        with record_cache_stats() as stats, capture_lookup_meta() as lookups:
            outcome = engine.run(request.query, request.donors)
    except CenterUnresolved as e:
        raise HTTPException(
            status_code=422,
            detail={"code": "CENTER_UNRESOLVED", "message": str(e)},
        ) from e
    except OutOfServiceArea as e:
        raise HTTPException(
            status_code=422,
            detail={"code": "OUT_OF_SERVICE_AREA", "message": str(e), "lat": e.lat, "lon": e.lon},
        ) from e

    meta = {
        **outcome.meta,
        "cache": stats.as_dict(),
        "lookups": lookups.lookups,
        "debug": {
            "request_id": request_id,
            "api_ms": int((time.perf_counter() - started) * 1000),
        },
    }
    return outcome.model_copy(update={"meta": meta})


@router.post("/api/geocode", response_model=GeocodeResult)
def post_geocode(request: GeocodeRequest) -> GeocodeResult:
    """Forward-geocode free text (primary provider, then fallback)."""
    try:
        return _geocoder().forward(request.address, region_hint=request.region_hint)
    except GeocodeError as e:
        raise _geocode_http_error(e) from e


@router.post("/api/reverse-geocode", response_model=GeocodeResult)
def post_reverse_geocode(coordinate: Coordinate) -> GeocodeResult:
    """Reverse-geocode a GPS fix into "village/city, district, state"."""
    try:
        return _geocoder().reverse(coordinate)
    except GeocodeError as e:
        raise _geocode_http_error(e) from e


@router.post("/api/normalize-location")
def post_normalize_location(request: NormalizeRequest) -> dict:
    """Reorder a typed location when geocoding is unavailable."""
    return {"location": normalize_manual_string(request.text)}


@router.post("/api/resolve-location", response_model=ResolvedLocation)
def post_resolve_location(request: NormalizeRequest) -> ResolvedLocation:
    """Resolve a typed location field; falls back to offline normalization, never errors."""
    return resolve_typed_location(_geocoder(), request.text)


@router.post("/api/resolve-device-location", response_model=ResolvedLocation)
def post_resolve_device_location(coordinate: Coordinate) -> ResolvedLocation:
    """Describe a device GPS fix; falls back to "lat, lon" text, never errors."""
    return resolve_device_location(_geocoder(), coordinate)


@router.post("/api/enrich-donor", response_model=DonorRecord)
def post_enrich_donor(request: EnrichDonorRequest) -> DonorRecord:
    """Pin a donor profile being saved (coordinate + state); typed text kept unless `reformat`."""
    engine = ProximitySearchEngine(get_settings(), _geocoder())
    return engine.enrich_profile(request.donor, reformat=request.reformat)


@router.get("/api/settings")
def get_public_settings() -> dict:
    """Return safe-to-expose settings for UI defaults (credentials removed)."""
    data = get_settings().model_dump(mode="json")
    data["geocoding"]["google"].pop("api_key", None)
    return {
        "search": data["search"],
        "markers": data["markers"],
        "geocoding": {
            "google_enabled": bool(get_settings().geocoding.google.api_key),
            "nominatim": {"base_url": data["geocoding"]["nominatim"]["base_url"]},
        },
    }
