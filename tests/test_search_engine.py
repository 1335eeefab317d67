import math

import pytest

from bloodmap.config.settings import Settings
from bloodmap.core.cache import FileCache
from bloodmap.domain.errors import CenterUnresolved, GeocodeError, GeocodeErrorKind, OutOfServiceArea
from bloodmap.domain.models import Coordinate, DonorRecord, GeocodeResult, SearchQuery
from bloodmap.geocoding.geocoder import Geocoder
from bloodmap.geocoding.providers import AddressProvider
from bloodmap.search.engine import ProximitySearchEngine

KUKATPALLY = Coordinate(lat=17.4948, lon=78.3996)
AMEERPET = Coordinate(lat=17.4375, lon=78.4483)
SECUNDERABAD = Coordinate(lat=17.4399, lon=78.4983)
PUNE = Coordinate(lat=18.5204, lon=73.8567)


class FakeGeocoder:
    """Offline geocoder: a fixed address book plus an optional reverse answer."""

    def __init__(self, places=None, reverse_result=None):
        self.places = {k.lower(): v for k, v in (places or {}).items()}
        self.reverse_result = reverse_result
        self.forward_calls = []
        self.reverse_calls = []

    def forward(self, address, region_hint=None):
        self.forward_calls.append(address)
        hit = self.places.get(address.lower())
        if hit is None:
            raise GeocodeError(GeocodeErrorKind.NOT_FOUND, f"no match for {address}")
        return hit

    def reverse(self, coordinate):
        self.reverse_calls.append(coordinate)
        if self.reverse_result is None:
            raise GeocodeError(GeocodeErrorKind.PROVIDER_UNAVAILABLE, "offline")
        return self.reverse_result


def _hit(coordinate, formatted, state):
    return GeocodeResult(coordinate=coordinate, formatted_location=formatted, state=state, provider="stub")


def _engine(geocoder=None, settings=None):
    return ProximitySearchEngine(settings or Settings(), geocoder or FakeGeocoder())


def _donor(id, blood_type="O+", coordinate=None, location="", availability="available"):
    return DonorRecord(
        id=id,
        blood_type=blood_type,
        coordinate=coordinate,
        location=location,
        availability=availability,
    )


def test_blood_type_filter_keeps_only_requested_type():
    pool = [
        _donor("o", "O+", KUKATPALLY),
        _donor("a", "A+", AMEERPET),
    ]
    query = SearchQuery(blood_types={"O+"}, explicit_coordinate=KUKATPALLY)

    results = _engine().search(query, pool)

    assert [r.donor.id for r in results] == ["o"]


def test_empty_blood_type_set_means_all_types():
    pool = [_donor("o", "O+", KUKATPALLY), _donor("a", "ab +", AMEERPET)]
    results = _engine().search(SearchQuery(explicit_coordinate=KUKATPALLY), pool)
    assert {r.donor.id for r in results} == {"o", "a"}
    assert results[1].donor.blood_type == "AB+"


def test_unavailable_donors_are_excluded():
    pool = [_donor("busy", coordinate=KUKATPALLY, availability="unavailable"), _donor("ok", coordinate=AMEERPET)]
    results = _engine().search(SearchQuery(explicit_coordinate=KUKATPALLY), pool)
    assert [r.donor.id for r in results] == ["ok"]


def test_center_outside_india_is_rejected():
    pool = [_donor("o", coordinate=KUKATPALLY)]
    query = SearchQuery(explicit_coordinate=Coordinate(lat=51.5, lon=-0.12))

    with pytest.raises(OutOfServiceArea) as info:
        _engine().search(query, pool)
    assert info.value.lat == 51.5


def test_missing_center_is_unresolved():
    with pytest.raises(CenterUnresolved):
        _engine().search(SearchQuery(location_text="   "), [])


def test_ungeocodable_center_text_is_unresolved():
    with pytest.raises(CenterUnresolved) as info:
        _engine().search(SearchQuery(location_text="Atlantis"), [])
    assert isinstance(info.value.__cause__, GeocodeError)


def test_results_are_sorted_nearest_first_and_stable_on_ties():
    pool = [
        _donor("far", coordinate=SECUNDERABAD),
        _donor("tie-1", coordinate=AMEERPET),
        _donor("here", coordinate=KUKATPALLY),
        _donor("tie-2", coordinate=AMEERPET),
    ]
    results = _engine().search(SearchQuery(explicit_coordinate=KUKATPALLY), pool)

    assert [r.donor.id for r in results] == ["here", "tie-1", "tie-2", "far"]
    distances = [r.distance_km for r in results]
    assert distances == sorted(distances)
    assert distances[0] == 0.0


def test_missing_coordinates_are_backfilled_without_touching_the_pool():
    geocoder = FakeGeocoder({"Ameerpet, Hyderabad": _hit(AMEERPET, "Ameerpet, Hyderabad, Telangana", "Telangana")})
    donor = _donor("typed", location="Ameerpet, Hyderabad")
    pool = [donor]

    results = _engine(geocoder).search(SearchQuery(explicit_coordinate=KUKATPALLY), pool)

    assert results[0].donor.coordinate == AMEERPET
    assert results[0].donor.location == "Ameerpet, Hyderabad"
    assert math.isfinite(results[0].distance_km)
    assert pool[0].coordinate is None


def test_failed_backfill_keeps_donor_with_infinite_distance():
    pool = [_donor("unknown", location="Some hamlet"), _donor("known", coordinate=AMEERPET)]

    results = _engine().search(SearchQuery(explicit_coordinate=KUKATPALLY), pool)

    assert [r.donor.id for r in results] == ["known", "unknown"]
    assert results[1].distance_km == math.inf


def test_enrich_donor_is_a_no_op_for_located_donors():
    geocoder = FakeGeocoder()
    donor = _donor("x", coordinate=AMEERPET, location="Ameerpet")

    assert _engine(geocoder).enrich_donor(donor) is donor
    assert geocoder.forward_calls == []


def test_donors_outside_india_are_excluded():
    pool = [_donor("abroad", coordinate=Coordinate(lat=25.2, lon=55.27)), _donor("home", coordinate=AMEERPET)]
    results = _engine().search(SearchQuery(explicit_coordinate=KUKATPALLY), pool)
    assert [r.donor.id for r in results] == ["home"]


def test_state_filter_uses_center_state_heuristic():
    geocoder = FakeGeocoder(
        {"Kukatpally": _hit(KUKATPALLY, "Kukatpally, Hyderabad, Telangana", "Telangana")}
    )
    pool = [
        _donor("same-state", coordinate=AMEERPET, location="Ameerpet, Hyderabad, Telangana, India"),
        _donor("other-state", coordinate=PUNE, location="Pune, Maharashtra, India"),
        _donor("no-country", coordinate=PUNE, location="Pune, Maharashtra"),
    ]

    results = _engine(geocoder).search(SearchQuery(location_text="Kukatpally"), pool)

    assert [r.donor.id for r in results] == ["same-state", "no-country"]


def test_unknown_center_state_keeps_everyone():
    pool = [_donor("other-state", coordinate=PUNE, location="Pune, Maharashtra, India")]
    results = _engine(FakeGeocoder(reverse_result=None)).search(SearchQuery(explicit_coordinate=KUKATPALLY), pool)
    assert [r.donor.id for r in results] == ["other-state"]


def test_explicit_center_state_comes_from_reverse_geocode():
    geocoder = FakeGeocoder(reverse_result=_hit(KUKATPALLY, "Kukatpally, Hyderabad, Telangana", "Telangana"))
    pool = [_donor("other-state", coordinate=PUNE, location="Pune, Maharashtra, India")]
    assert _engine(geocoder).search(SearchQuery(explicit_coordinate=KUKATPALLY), pool) == []


def test_max_distance_caps_results():
    pool = [
        _donor("near", coordinate=AMEERPET),
        _donor("far", coordinate=PUNE),
        _donor("nowhere", location="Unknown place"),
    ]
    query = SearchQuery(explicit_coordinate=KUKATPALLY, max_distance_km=50)

    assert [r.donor.id for r in _engine().search(query, pool)] == ["near"]


def test_run_returns_center_results_and_markers():
    pool = [_donor("a", coordinate=AMEERPET), _donor("b", coordinate=AMEERPET)]
    geocoder = FakeGeocoder({"Kukatpally": _hit(KUKATPALLY, "Kukatpally, Hyderabad, Telangana", "Telangana")})

    outcome = _engine(geocoder).run(SearchQuery(location_text="Kukatpally"), pool)

    assert outcome.center == KUKATPALLY
    assert outcome.center_state == "Telangana"
    assert outcome.center_location == "Kukatpally, Hyderabad, Telangana"
    assert outcome.radius_km == 10
    assert [m.source_id for m in outcome.markers] == ["a", "b"]
    assert outcome.markers[0].coordinate != outcome.markers[1].coordinate
    assert outcome.meta == {"pool_size": 2, "result_count": 2}


def test_out_of_area_center_is_rejected_before_any_lookup():
    geocoder = FakeGeocoder(reverse_result=_hit(KUKATPALLY, "Kukatpally, Hyderabad, Telangana", "Telangana"))

    with pytest.raises(OutOfServiceArea):
        _engine(geocoder).search(SearchQuery(explicit_coordinate=Coordinate(lat=51.5, lon=-0.12)), [])
    assert geocoder.reverse_calls == []


def test_search_survives_an_unusable_cache_dir(tmp_path):
    class _Provider(AddressProvider):
        kind = "nominatim"

        def forward(self, address, region_hint=None):
            return _hit(AMEERPET, "Ameerpet, Hyderabad, Telangana", "Telangana")

        def reverse(self, coordinate):
            return _hit(coordinate, "Kukatpally, Hyderabad, Telangana", "Telangana")

    not_a_dir = tmp_path / "cachefile"
    not_a_dir.write_text("occupied", encoding="utf-8")
    geocoder = Geocoder(Settings(), cache=FileCache(not_a_dir), providers=[_Provider()])

    results = _engine(geocoder).search(SearchQuery(explicit_coordinate=KUKATPALLY), [_donor("typed", location="Ameerpet")])

    assert results[0].donor.coordinate == AMEERPET


def test_enrich_donor_keeps_typed_text_and_fills_state():
    geocoder = FakeGeocoder({"ameerpet hyd": _hit(AMEERPET, "Ameerpet, Hyderabad, Telangana", "Telangana")})
    donor = _donor("x", location="ameerpet hyd")

    enriched = _engine(geocoder).enrich_donor(donor)

    assert enriched is not donor
    assert enriched.coordinate == AMEERPET
    assert enriched.state == "Telangana"
    assert enriched.location == "ameerpet hyd"


def test_enrich_donor_reformat_rewrites_location():
    geocoder = FakeGeocoder({"ameerpet hyd": _hit(AMEERPET, "Ameerpet, Hyderabad, Telangana", "Telangana")})

    enriched = _engine(geocoder).enrich_donor(_donor("x", location="ameerpet hyd"), reformat=True)

    assert enriched.location == "Ameerpet, Hyderabad, Telangana"


def test_enrich_donor_reformat_falls_back_to_manual_order():
    enriched = _engine().enrich_donor(_donor("x", location="Nowhere/Some District/Some State/India"), reformat=True)

    assert enriched.coordinate is None
    assert enriched.location == "Nowhere, Some District, Some State"


def test_enrich_profile_reverse_geocodes_gps_fix_for_state_only():
    geocoder = FakeGeocoder(reverse_result=_hit(KUKATPALLY, "Kukatpally, Hyderabad, Telangana", "Telangana"))
    donor = _donor("gps", coordinate=KUKATPALLY, location="kukatpally")

    enriched = _engine(geocoder).enrich_profile(donor)

    assert enriched.state == "Telangana"
    assert enriched.location == "kukatpally"
    assert enriched.coordinate == KUKATPALLY


def test_enrich_profile_fills_empty_text_only_when_reformatting():
    geocoder = FakeGeocoder(reverse_result=_hit(KUKATPALLY, "Kukatpally, Hyderabad, Telangana", "Telangana"))
    donor = _donor("gps", coordinate=KUKATPALLY)

    assert _engine(geocoder).enrich_profile(donor).location == ""
    assert _engine(geocoder).enrich_profile(donor, reformat=True).location == "Kukatpally, Hyderabad, Telangana"


def test_enrich_profile_skips_reverse_for_formatted_text_or_known_state():
    geocoder = FakeGeocoder(reverse_result=_hit(KUKATPALLY, "Kukatpally, Hyderabad, Telangana", "Telangana"))
    engine = _engine(geocoder)

    engine.enrich_profile(_donor("a", coordinate=KUKATPALLY, location="Kukatpally, Hyderabad"))
    engine.enrich_profile(DonorRecord(id="b", blood_type="O+", coordinate=KUKATPALLY, state="Telangana"))

    assert geocoder.reverse_calls == []


def test_enrich_profile_saves_without_pin_when_lookups_fail():
    donor = _donor("typed", location="Unknown hamlet")
    assert _engine().enrich_profile(donor) is donor
