from __future__ import annotations

import pytest

from bloodmap.config.overrides import apply_settings_overrides
from bloodmap.config.settings import get_settings


def test_apply_settings_overrides_returns_same_object_when_none():
    settings = get_settings()
    assert apply_settings_overrides(settings, None) is settings


def test_apply_settings_overrides_can_override_allowed_knobs():
    settings = get_settings()

    out = apply_settings_overrides(settings, {"search": {"radius_km": 25}, "markers": {"ring_spacing_m": 12}})

    assert out.search.radius_km == 25
    assert out.markers.ring_spacing_m == 12
    # The shared cached settings must not leak the override into other requests.
    assert settings.search.radius_km != 25


def test_apply_settings_overrides_rejects_service_area_changes():
    with pytest.raises(ValueError, match=r"search\.service_area"):
        apply_settings_overrides(get_settings(), {"search": {"service_area": {"north": 90}}})


def test_apply_settings_overrides_rejects_credentials():
    with pytest.raises(ValueError, match=r"'geocoding'"):
        apply_settings_overrides(get_settings(), {"geocoding": {"google": {"api_key": "x"}}})


def test_apply_settings_overrides_rejects_wrong_value_shapes_for_restricted_subtrees():
    with pytest.raises(ValueError, match=r"settings_overrides key 'search' must be a mapping"):
        apply_settings_overrides(get_settings(), {"search": 1})


def test_apply_settings_overrides_revalidates_ranges():
    with pytest.raises(ValueError):
        apply_settings_overrides(get_settings(), {"search": {"radius_km": -1}})


def test_packaged_defaults_match_india_service_area():
    area = get_settings().search.service_area
    assert (area.north, area.south, area.east, area.west) == (37.1, 6.4, 97.4, 68.1)
    assert get_settings().markers.bucket_precision == 6
