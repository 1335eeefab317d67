"""
Domain models (Pydantic).

These types represent the stable "contract" between the core and its callers:
- donor pool records handed in by the persistence layer (`DonorRecord`)
- search input (`SearchQuery`)
- geocoder output (`GeocodeResult`)
- ranked output and map payload (`RankedResult`, `MarkerPlacement`, `SearchOutcome`)

Keeping these models in one place helps:
- validation (reject bad coordinates and blood types early),
- consistent JSON output across CLI/API.
"""

from __future__ import annotations

import math
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

BLOOD_TYPES = ("A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-")


def normalize_blood_type(value: str) -> str:
    """Canonical blood type spelling: upper case, no whitespace (`"ab +"` -> `"AB+"`)."""
    return "".join(str(value).split()).upper()


class Coordinate(BaseModel):
    """A geographic point in decimal degrees."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)

    def is_finite(self) -> bool:
        return math.isfinite(self.lat) and math.isfinite(self.lon)


class AddressParts(BaseModel):
    """Canonical administrative components; empty string means "not present"."""

    village: str = ""
    mandal: str = ""
    city: str = ""
    district: str = ""
    state: str = ""

    def is_empty(self) -> bool:
        return not any((self.village, self.mandal, self.city, self.district, self.state))


class GeocodeResult(BaseModel):
    coordinate: Coordinate
    formatted_location: str
    state: str | None = None
    provider: str


class ResolvedLocation(BaseModel):
    """Location text for a form field, with the point and state when a lookup succeeded."""

    location: str
    coordinate: Coordinate | None = None
    state: str | None = None
    geocoded: bool = False


class DonorRecord(BaseModel):
    """A donor as stored by the persistence layer.

    Only the fields below are read by the search core; any other profile fields
    (name, age, contact, ...) are kept as-is and round-trip through the API.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    blood_type: str
    coordinate: Coordinate | None = None
    location: str = ""
    state: str | None = None
    availability: Literal["available", "unavailable"] = "available"

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("blood_type")
    @classmethod
    def _normalize_blood_type(cls, value: str) -> str:
        return normalize_blood_type(value)


class SearchQuery(BaseModel):
    """Seeker search input.

    An empty `blood_types` set means "any blood type". Either `explicit_coordinate`
    (e.g. the device GPS fix) or `location_text` must be given.
    """

    blood_types: set[str] = Field(default_factory=set)
    location_text: str | None = None
    explicit_coordinate: Coordinate | None = None
    max_distance_km: float | None = Field(default=None, gt=0)

    @field_validator("blood_types")
    @classmethod
    def _normalize_blood_types(cls, values: set[str]) -> set[str]:
        return {normalize_blood_type(v) for v in values if v and str(v).strip()}

    @field_validator("location_text")
    @classmethod
    def _strip_location(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


class RankedResult(BaseModel):
    donor: DonorRecord
    distance_km: float = math.inf


class MarkerPlacement(BaseModel):
    """Render position for one donor marker; `offset` is True when nudged off its true spot."""

    coordinate: Coordinate
    source_id: str
    offset: bool = False


class SearchOutcome(BaseModel):
    """Full search payload for a map/list consumer."""

    center: Coordinate
    center_state: str | None = None
    center_location: str | None = None
    radius_km: float
    results: list[RankedResult]
    markers: list[MarkerPlacement]
    meta: dict[str, Any] = Field(default_factory=dict)


class SearchRequest(BaseModel):
    """API payload: a query plus the donor pool to search."""

    query: SearchQuery
    donors: list[DonorRecord] = Field(default_factory=list)
    settings_overrides: dict[str, Any] | None = None


class GeocodeRequest(BaseModel):
    address: str
    region_hint: str | None = None


class NormalizeRequest(BaseModel):
    text: str = ""


class EnrichDonorRequest(BaseModel):
    """API payload for the profile-save flow: pin a donor, optionally reformatting its text."""

    donor: DonorRecord
    reformat: bool = False
