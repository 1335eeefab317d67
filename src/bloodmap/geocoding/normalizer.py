"""
Address normalization.

Geocoding providers describe the same place with different schemas:
- Google returns a list of `address_components`, each tagged with several `types`.
- Nominatim returns a flat `address` mapping (`village`, `state_district`, ...).

Both are mapped onto one canonical `AddressParts` tuple
(village, mandal, city, district, state) and rendered as
"village/city, district, state", the order Indian addresses are usually written in.
"""

from __future__ import annotations

import re
from typing import Any, Literal, Mapping, Sequence

from bloodmap.domain.models import AddressParts

ProviderKind = Literal["google", "nominatim"]

SEPARATOR = ", "

# Each slot lists candidate type-sets in priority order; a component matches a
# type-set only when it carries every type in it.
_GOOGLE_SLOTS: dict[str, tuple[tuple[str, ...], ...]] = {
    "village": (
        ("premise",),
        ("subpremise",),
        ("hamlet",),
        ("sublocality_level_3", "sublocality"),
        ("sublocality_level_2", "sublocality"),
        ("neighborhood",),
        ("administrative_area_level_4",),
    ),
    "mandal": (
        ("sublocality_level_1", "sublocality"),
        ("ward",),
        ("administrative_area_level_3",),
    ),
    "city": (
        ("locality",),
        ("postal_town",),
        ("administrative_area_level_2",),
    ),
    "district": (
        ("administrative_area_level_2",),
        ("administrative_area_level_3",),
    ),
    "state": (("administrative_area_level_1",),),
}

_OSM_SLOTS: dict[str, tuple[str, ...]] = {
    "village": ("hamlet", "village", "neighbourhood", "quarter", "suburb"),
    "mandal": ("city_district", "town", "county", "subdivision"),
    "city": ("city", "town", "municipality"),
    "district": ("state_district", "county"),
    "state": ("state",),
}

_MANUAL_DELIMITERS = re.compile(r"[|/,\-]")


def _google_component(components: Sequence[Mapping[str, Any]], types: tuple[str, ...]) -> str:
    for comp in components:
        comp_types = comp.get("types") or []
        if all(t in comp_types for t in types):
            return str(comp.get("long_name") or "").strip()
    return ""


def parse_google_components(components: Sequence[Mapping[str, Any]] | None) -> AddressParts:
    """Map Google `address_components` onto `AddressParts`."""
    components = components or []
    values: dict[str, str] = {}
    for slot, candidates in _GOOGLE_SLOTS.items():
        value = ""
        for types in candidates:
            value = _google_component(components, types)
            if value:
                break
        values[slot] = value
    return AddressParts(**values)


def parse_osm_address(address: Mapping[str, Any] | None) -> AddressParts:
    """Map a Nominatim `address` object onto `AddressParts`."""
    address = address or {}
    values: dict[str, str] = {}
    for slot, keys in _OSM_SLOTS.items():
        values[slot] = next(
            (str(address[k]).strip() for k in keys if address.get(k) and str(address[k]).strip()),
            "",
        )
    return AddressParts(**values)


def parse_provider_components(raw: Any, provider_kind: ProviderKind) -> AddressParts:
    """Dispatch to the parser for `provider_kind`.

    `raw` is the component list for Google and the `address` mapping for Nominatim.
    """
    if provider_kind == "google":
        return parse_google_components(raw)
    if provider_kind == "nominatim":
        return parse_osm_address(raw)
    raise ValueError(f"Unknown provider kind: {provider_kind!r}")


def format_location(parts: AddressParts) -> str:
    """Render parts as "village/city, district, state" (empty tokens dropped).

    Returns "" when no part is present; callers then fall back to the provider's
    own formatted address.
    """
    small_area = parts.village or parts.mandal
    tokens = [small_area, parts.city, parts.district, parts.state]
    return SEPARATOR.join(t for t in tokens if t)


def normalize_manual_string(text: str | None) -> str:
    """Reorder a hand-typed location into the canonical "place, district, state" form.

    Any of `| / , -` separate tokens; only the first three non-empty tokens are kept.

    >>> normalize_manual_string("Kukatpally/Hyderabad/Telangana")
    'Kukatpally, Hyderabad, Telangana'
    """
    if not text:
        return ""
    tokens = [t.strip() for t in _MANUAL_DELIMITERS.split(text)]
    tokens = [t for t in tokens if t]
    return SEPARATOR.join(tokens[:3])
