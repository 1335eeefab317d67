"""
Geocoder with a fixed provider fallback chain.

Lookups go to the primary provider (Google) first and fall through to the
secondary one (Nominatim) on any failure. There is no retry/backoff beyond that
chain. Successful answers are cached on disk so a donor pool that names the same
village fifty times costs one request.

`resolve_typed_location` and `resolve_device_location` wrap the chain for
location input fields: they never raise on a failed lookup and degrade to
offline text instead.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Sequence

from bloodmap.config.settings import Settings
from bloodmap.core.cache import FileCache
from bloodmap.core.lookup_meta import record_lookup
from bloodmap.domain.errors import GeocodeError, GeocodeErrorKind, ProviderError
from bloodmap.domain.models import Coordinate, GeocodeResult, ResolvedLocation
from bloodmap.geocoding.normalizer import normalize_manual_string
from bloodmap.geocoding.providers import AddressProvider, GoogleProvider, NominatimProvider

logger = logging.getLogger(__name__)

CACHE_NAMESPACE = "geocode"


def default_providers(settings: Settings) -> tuple[AddressProvider, ...]:
    """Primary then secondary provider; the order is part of the geocoder's contract."""
    return (GoogleProvider(settings), NominatimProvider(settings))


class Geocoder:
    """Forward/reverse geocoding over an ordered provider chain."""

    def __init__(
        self,
        settings: Settings,
        cache: FileCache | None = None,
        providers: Sequence[AddressProvider] | None = None,
    ):
        self._settings = settings
        self._cache = cache
        self._providers = tuple(providers) if providers is not None else default_providers(settings)
        if not self._providers:
            raise ValueError("Geocoder needs at least one provider")

    @property
    def providers(self) -> tuple[AddressProvider, ...]:
        return self._providers

    def forward(self, address: str, region_hint: str | None = None) -> GeocodeResult:
        """Resolve free-text `address` to a normalized location and point.

        Raises:
            GeocodeError: INVALID_INPUT for blank input, NOT_FOUND when a provider
                answered without a match and none succeeded, PROVIDER_UNAVAILABLE
                when no provider could be reached at all.
        """
        text = " ".join((address or "").split())
        if not text:
            raise GeocodeError(GeocodeErrorKind.INVALID_INPUT, "No address provided")

        region = (region_hint or "").strip().lower() or None
        cache_key = f"forward:{region or '-'}:{text.lower()}"
        return self._lookup(
            cache_key,
            label=f"forward:{text}",
            call=lambda p: p.forward(text, region),
        )

    def reverse(self, coordinate: Coordinate) -> GeocodeResult:
        """Resolve a point to its normalized administrative location.

        Raises:
            GeocodeError: Same kinds as `forward`.
        """
        if not coordinate.is_finite():
            raise GeocodeError(GeocodeErrorKind.INVALID_INPUT, "Coordinate must be finite")

        cache_key = f"reverse:{coordinate.lat:.6f},{coordinate.lon:.6f}"
        return self._lookup(
            cache_key,
            label=f"reverse:{coordinate.lat:.6f},{coordinate.lon:.6f}",
            call=lambda p: p.reverse(coordinate),
        )

    geocode_address = forward
    reverse_geocode = reverse

    def _lookup(
        self,
        cache_key: str,
        *,
        label: str,
        call: Callable[[AddressProvider], GeocodeResult],
    ) -> GeocodeResult:
        ttl_seconds = int(self._settings.geocoding.cache_ttl_seconds)
        cached = self._cache_get(cache_key, ttl_seconds)
        if isinstance(cached, dict):
            result = GeocodeResult.model_validate(cached)
            record_lookup(label, {"mode": "cache", "provider": result.provider})
            return result

        failures: list[str] = []
        any_no_match = False
        for provider in self._providers:
            if not provider.is_available:
                failures.append(f"{provider.name}: unavailable")
                continue
            try:
                result = call(provider)
            except ProviderError as exc:
                any_no_match = any_no_match or exc.no_match
                failures.append(str(exc))
                logger.warning("Geocoding %s failed via %s: %s; trying next provider.", label, provider.name, exc)
                continue
            except Exception as exc:
                failures.append(f"{provider.name}: {exc}")
                logger.warning(
                    "Geocoding %s raised unexpectedly via %s: %s; trying next provider.",
                    label,
                    provider.name,
                    exc,
                )
                continue

            logger.info("Geocoded %s via %s", label, result.provider)
            record_lookup(label, {"mode": "live", "provider": result.provider, "failed": failures})
            self._cache_set(cache_key, result, ttl_seconds)
            return result

        record_lookup(label, {"mode": "none", "failed": failures})
        if any_no_match:
            raise GeocodeError(GeocodeErrorKind.NOT_FOUND, f"No match for {label} ({'; '.join(failures)})")
        raise GeocodeError(
            GeocodeErrorKind.PROVIDER_UNAVAILABLE,
            f"No geocoding provider could resolve {label} ({'; '.join(failures)})",
        )

    # The cache only saves requests; an unusable cache directory must not fail a lookup.
    def _cache_get(self, cache_key: str, ttl_seconds: int) -> Any | None:
        if self._cache is None:
            return None
        try:
            return self._cache.get(CACHE_NAMESPACE, cache_key, ttl_seconds=ttl_seconds)
        except OSError as exc:
            logger.warning("Geocode cache read failed for %s: %s", cache_key, exc)
            return None

    def _cache_set(self, cache_key: str, result: GeocodeResult, ttl_seconds: int) -> None:
        if self._cache is None:
            return
        try:
            self._cache.set(CACHE_NAMESPACE, cache_key, result.model_dump(mode="json"), ttl_seconds=ttl_seconds)
        except OSError as exc:
            logger.warning("Geocode cache write failed for %s: %s", cache_key, exc)


def resolve_typed_location(geocoder: Geocoder, text: str) -> ResolvedLocation:
    """Turn a typed location into display text, pinning it on the map when possible.

    The geocoded "village, district, state" form is used when a provider resolves
    the text; otherwise the typed tokens are only reordered offline and the
    location stays unpinned.
    """
    try:
        hit = geocoder.forward(text)
    except GeocodeError as exc:
        logger.info("Typed location %r not geocoded (%s); using manual normalization.", text, exc.kind.value)
        return ResolvedLocation(location=normalize_manual_string(text))
    return ResolvedLocation(
        location=hit.formatted_location or normalize_manual_string(text),
        coordinate=hit.coordinate,
        state=hit.state,
        geocoded=True,
    )


def resolve_device_location(geocoder: Geocoder, coordinate: Coordinate) -> ResolvedLocation:
    """Describe a device GPS fix; falls back to "lat, lon" with 4 decimals.

    The fix itself is always kept, even when reverse geocoding fails.
    """
    fallback = f"{coordinate.lat:.4f}, {coordinate.lon:.4f}"
    try:
        hit = geocoder.reverse(coordinate)
    except GeocodeError as exc:
        logger.info("Device fix %s not reverse geocoded (%s).", fallback, exc.kind.value)
        return ResolvedLocation(location=fallback, coordinate=coordinate)
    return ResolvedLocation(
        location=hit.formatted_location or fallback,
        coordinate=coordinate,
        state=hit.state,
        geocoded=True,
    )
