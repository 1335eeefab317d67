# src/bloodmap/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/bloodmap/config/defaults.yaml`, then optionally overridden by:
- environment variables (e.g., `GOOGLE_MAPS_API_KEY`, `NOMINATIM_USER_AGENT`)
- an external YAML file via `BLOODMAP_CONFIG_PATH`

Design rule:
- Provider URLs, service-area bounds and marker spacing live in YAML, not in business logic.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator

from bloodmap.core.env import load_dotenv_if_present


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `bloodmap.config`."""
    text = resources.files("bloodmap.config").joinpath(filename).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {filename}; expected a mapping.")
    return data


def _read_yaml_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML file from disk and return its mapping root."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {path}; expected a mapping.")
    return data


class AppSettings(BaseModel):
    name: str = "BloodMap"
    http_timeout_seconds: float = 15
    log_level: str = "INFO"


class CacheSettings(BaseModel):
    enabled: bool = True
    dir: str = ".cache/bloodmap"
    default_ttl_seconds: int = 60 * 60 * 24


class GoogleGeocodingSettings(BaseModel):
    base_url: str = "https://maps.googleapis.com/maps/api/geocode/json"
    region: str = "in"
    country: str = "IN"
    api_key: str | None = None


class NominatimSettings(BaseModel):
    base_url: str = "https://nominatim.openstreetmap.org"
    country_codes: str = "in"
    reverse_zoom: int = Field(14, ge=0, le=18)
    accept_language: str = "en"
    user_agent: str = "bloodmap/0.1.0"
    max_requests_per_minute: float = Field(60, gt=0)


class GeocodingSettings(BaseModel):
    cache_ttl_seconds: int = 60 * 60 * 24 * 30
    google: GoogleGeocodingSettings = Field(default_factory=GoogleGeocodingSettings)
    nominatim: NominatimSettings = Field(default_factory=NominatimSettings)


class ServiceAreaSettings(BaseModel):
    name: str = "India"
    north: float = Field(37.1, ge=-90, le=90)
    south: float = Field(6.4, ge=-90, le=90)
    east: float = Field(97.4, ge=-180, le=180)
    west: float = Field(68.1, ge=-180, le=180)

    @model_validator(mode="after")
    def _validate_edges(self) -> "ServiceAreaSettings":
        if self.south > self.north:
            raise ValueError("search.service_area.south must not exceed north")
        if self.west > self.east:
            raise ValueError("search.service_area.west must not exceed east")
        return self


class SearchSettings(BaseModel):
    service_area: ServiceAreaSettings = Field(default_factory=ServiceAreaSettings)
    radius_km: float = Field(10, gt=0)
    max_distance_km: float | None = Field(default=None, gt=0)
    # Donors whose location text lacks this token are assumed not to carry a state name.
    country_token: str = "india"


class MarkerSettings(BaseModel):
    bucket_precision: int = Field(6, ge=0, le=10)
    bearing_step_deg: float = Field(45, gt=0, le=360)
    markers_per_ring: int = Field(8, ge=1)
    ring_spacing_m: float = Field(8, gt=0)


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    geocoding: GeocodingSettings = Field(default_factory=GeocodingSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    markers: MarkerSettings = Field(default_factory=MarkerSettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload.

    Note: We intentionally keep this whitelist small to avoid exposing unsafe overrides.
    """
    load_dotenv_if_present()
    data = dict(data)
    cache_dir = os.getenv("BLOODMAP_CACHE_DIR")
    if cache_dir:
        data.setdefault("cache", {})["dir"] = cache_dir

    log_level = os.getenv("BLOODMAP_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    api_key = os.getenv("GOOGLE_MAPS_API_KEY")
    if api_key:
        data.setdefault("geocoding", {}).setdefault("google", {})["api_key"] = api_key

    user_agent = os.getenv("NOMINATIM_USER_AGENT")
    if user_agent:
        data.setdefault("geocoding", {}).setdefault("nominatim", {})["user_agent"] = user_agent

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("BLOODMAP_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
