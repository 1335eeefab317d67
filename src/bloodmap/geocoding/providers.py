"""
Geocoding providers.

Each provider wraps one web API and is responsible only for:
- building the request (India-restricted),
- checking the provider's own success signal,
- handing the raw address components to `bloodmap.geocoding.normalizer`.

Any failure is raised as `ProviderError`; choosing the next provider is the
geocoder's job (see `bloodmap.geocoding.geocoder`).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx
from pydantic import ValidationError

from bloodmap.config.settings import Settings
from bloodmap.core.http import get_json
from bloodmap.core.rate_limit import TokenBucketRateLimiter
from bloodmap.domain.errors import ProviderError
from bloodmap.domain.models import Coordinate, GeocodeResult
from bloodmap.geocoding.normalizer import ProviderKind, format_location, parse_provider_components

logger = logging.getLogger(__name__)


class AddressProvider(ABC):
    """One forward/reverse geocoding backend."""

    kind: ProviderKind

    @property
    def name(self) -> str:
        return self.kind

    @property
    def is_available(self) -> bool:
        return True

    @abstractmethod
    def forward(self, address: str, region_hint: str | None = None) -> GeocodeResult:
        """Resolve free text to a point; raise `ProviderError` on any failure."""

    @abstractmethod
    def reverse(self, coordinate: Coordinate) -> GeocodeResult:
        """Resolve a point to an administrative location; raise `ProviderError` on any failure."""

    def _build_result(
        self, *, lat: Any, lon: Any, components: Any, fallback_formatted: str | None
    ) -> GeocodeResult:
        try:
            coordinate = Coordinate(lat=float(lat), lon=float(lon))
        except (TypeError, ValueError, ValidationError) as exc:
            raise ProviderError(self.name, f"unusable coordinate in response: {lat!r},{lon!r}") from exc

        parts = parse_provider_components(components, self.kind)
        formatted = format_location(parts) or (fallback_formatted or "").strip()
        return GeocodeResult(
            coordinate=coordinate,
            formatted_location=formatted,
            state=parts.state or None,
            provider=self.name,
        )


class GoogleProvider(AddressProvider):
    """Google Geocoding web API (requires an API key)."""

    kind: ProviderKind = "google"

    def __init__(self, settings: Settings):
        self._settings = settings
        self._cfg = settings.geocoding.google

    @property
    def is_available(self) -> bool:
        return bool(self._cfg.api_key)

    def _request(self, params: dict[str, Any]) -> dict[str, Any]:
        if not self._cfg.api_key:
            raise ProviderError(self.name, "no API key configured (set GOOGLE_MAPS_API_KEY)")
        try:
            payload = get_json(
                self._cfg.base_url,
                params={**params, "key": self._cfg.api_key},
                timeout_seconds=self._settings.app.http_timeout_seconds,
            )
        except (httpx.HTTPError, ValueError) as exc:
            raise ProviderError(self.name, f"request failed: {exc}") from exc

        if not isinstance(payload, dict):
            raise ProviderError(self.name, "unexpected response shape")
        status = payload.get("status")
        if status == "ZERO_RESULTS":
            raise ProviderError(self.name, "zero results", no_match=True)
        results = payload.get("results") or []
        if status != "OK" or not results:
            detail = payload.get("error_message") or status or "empty results"
            raise ProviderError(self.name, f"status {detail}")
        return results[0]

    def _parse(self, first: dict[str, Any]) -> GeocodeResult:
        location = (first.get("geometry") or {}).get("location") or {}
        return self._build_result(
            lat=location.get("lat"),
            lon=location.get("lng"),
            components=first.get("address_components") or [],
            fallback_formatted=first.get("formatted_address"),
        )

    def forward(self, address: str, region_hint: str | None = None) -> GeocodeResult:
        first = self._request(
            {
                "address": address,
                "region": (region_hint or self._cfg.region).lower(),
                "components": f"country:{self._cfg.country}",
            }
        )
        return self._parse(first)

    def reverse(self, coordinate: Coordinate) -> GeocodeResult:
        first = self._request({"latlng": f"{coordinate.lat},{coordinate.lon}"})
        result = self._parse(first)
        # Report the queried point, not the centroid of whatever feature Google matched.
        return result.model_copy(update={"coordinate": coordinate})


class NominatimProvider(AddressProvider):
    """OpenStreetMap Nominatim (search + reverse details)."""

    kind: ProviderKind = "nominatim"

    def __init__(self, settings: Settings, rate_limiter: TokenBucketRateLimiter | None = None):
        self._settings = settings
        self._cfg = settings.geocoding.nominatim
        self._rate_limiter = rate_limiter or TokenBucketRateLimiter(
            max_per_minute=self._cfg.max_requests_per_minute
        )

    def _get(self, path: str, params: dict[str, Any]) -> Any:
        self._rate_limiter.acquire()
        url = f"{self._cfg.base_url.rstrip('/')}/{path}"
        try:
            return get_json(
                url,
                params={"format": "json", **params},
                headers={
                    "User-Agent": self._cfg.user_agent,
                    "Accept-Language": self._cfg.accept_language,
                },
                timeout_seconds=self._settings.app.http_timeout_seconds,
            )
        except (httpx.HTTPError, ValueError) as exc:
            raise ProviderError(self.name, f"request to /{path} failed: {exc}") from exc

    def _details(self, lat: Any, lon: Any) -> dict[str, Any]:
        payload = self._get(
            "reverse",
            {"lat": lat, "lon": lon, "zoom": self._cfg.reverse_zoom, "addressdetails": 1},
        )
        if not isinstance(payload, dict) or payload.get("error"):
            raise ProviderError(self.name, "reverse lookup found nothing", no_match=True)
        return payload

    def forward(self, address: str, region_hint: str | None = None) -> GeocodeResult:
        hits = self._get(
            "search",
            {
                "q": address,
                "limit": 1,
                "countrycodes": (region_hint or self._cfg.country_codes).lower(),
                "addressdetails": 1,
            },
        )
        if not isinstance(hits, list) or not hits:
            raise ProviderError(self.name, "address not found", no_match=True)
        hit = hits[0]

        # The search hit is often a POI; a zoom-limited reverse lookup gives the
        # village/district/state breakdown the normalizer expects.
        try:
            details = self._details(hit.get("lat"), hit.get("lon"))
        except ProviderError as exc:
            logger.info("Nominatim details lookup failed (%s); using search hit address.", exc)
            details = hit

        return self._build_result(
            lat=hit.get("lat"),
            lon=hit.get("lon"),
            components=details.get("address") or {},
            fallback_formatted=details.get("display_name") or hit.get("display_name"),
        )

    def reverse(self, coordinate: Coordinate) -> GeocodeResult:
        details = self._details(coordinate.lat, coordinate.lon)
        return self._build_result(
            lat=coordinate.lat,
            lon=coordinate.lon,
            components=details.get("address") or {},
            fallback_formatted=details.get("display_name"),
        )
