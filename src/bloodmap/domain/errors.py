"""
Error taxonomy.

- `GeocodeError` is what callers of the geocoder see; its `kind` tells "bad input"
  apart from "nobody could be reached" and "reached, but no match".
- `ProviderError` is raised by a single provider and only ever caught by the
  geocoder's fallback chain.
- `SearchError` subclasses are hard failures of a search. An empty result list is
  not an error.
"""

from __future__ import annotations

from enum import Enum


class BloodMapError(Exception):
    """Base class for all errors raised by this package."""


class GeocodeErrorKind(str, Enum):
    INVALID_INPUT = "invalid_input"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    NOT_FOUND = "not_found"


class GeocodeError(BloodMapError):
    def __init__(self, kind: GeocodeErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class ProviderError(BloodMapError):
    """A single provider failed to resolve a lookup.

    `no_match` is True when the provider answered but found nothing, as opposed to
    transport failures, error statuses or a missing API key.
    """

    def __init__(self, provider: str, message: str, *, no_match: bool = False):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.no_match = no_match


class SearchError(BloodMapError):
    """Base class for hard search failures."""


class CenterUnresolved(SearchError):
    """No usable search center (no coordinate given and the location text did not geocode)."""


class OutOfServiceArea(SearchError):
    """The search center lies outside the supported service area."""

    def __init__(self, message: str, *, lat: float, lon: float):
        super().__init__(message)
        self.lat = lat
        self.lon = lon
