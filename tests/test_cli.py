import json

from bloodmap import cli
from bloodmap.config.settings import Settings
from bloodmap.domain.errors import GeocodeError, GeocodeErrorKind
from bloodmap.domain.models import Coordinate, GeocodeResult
from bloodmap.search.engine import ProximitySearchEngine


class _OfflineGeocoder:
    def forward(self, address, region_hint=None):
        if address == "Kukatpally":
            return GeocodeResult(
                coordinate=Coordinate(lat=17.4948, lon=78.3996),
                formatted_location="Kukatpally, Hyderabad, Telangana",
                state="Telangana",
                provider="stub",
            )
        raise GeocodeError(GeocodeErrorKind.NOT_FOUND, f"no match for {address}")

    def reverse(self, coordinate):
        raise GeocodeError(GeocodeErrorKind.PROVIDER_UNAVAILABLE, "offline")


def _patch_engine(monkeypatch):
    engine = ProximitySearchEngine(Settings(), _OfflineGeocoder())
    monkeypatch.setattr(cli, "build_engine", lambda *_args, **_kwargs: engine)


def test_cli_normalize(capsys):
    assert cli.main(["normalize", "Kukatpally/Hyderabad/Telangana"]) == 0
    assert capsys.readouterr().out.strip() == "Kukatpally, Hyderabad, Telangana"


def test_cli_search_json(monkeypatch, tmp_path, capsys):
    _patch_engine(monkeypatch)
    donors = tmp_path / "donors.json"
    donors.write_text(
        json.dumps(
            {
                "donors": [
                    {"id": 1, "blood_type": "B+", "coordinate": {"lat": 17.44, "lon": 78.45}},
                    {"id": 2, "blood_type": "B+", "coordinate": {"lat": 17.4948, "lon": 78.3996}},
                    {"id": 3, "blood_type": "O-", "coordinate": {"lat": 17.4948, "lon": 78.3996}},
                ]
            }
        ),
        encoding="utf-8",
    )

    code = cli.main(["search", "--donors", str(donors), "--location", "Kukatpally", "--blood-type", "B+", "--json"])

    assert code == 0
    out = json.loads(capsys.readouterr().out)
    assert [r["donor"]["id"] for r in out["results"]] == ["2", "1"]


def test_cli_search_reports_out_of_area(monkeypatch, tmp_path, capsys):
    _patch_engine(monkeypatch)
    donors = tmp_path / "donors.json"
    donors.write_text("[]", encoding="utf-8")

    code = cli.main(["search", "--donors", str(donors), "--lat", "51.5", "--lon", "-0.12"])

    assert code == 2
    assert "error:" in capsys.readouterr().err


def test_cli_search_json_writes_null_for_unknown_distances(monkeypatch, tmp_path, capsys):
    _patch_engine(monkeypatch)
    donors = tmp_path / "donors.json"
    donors.write_text(
        json.dumps([{"id": "nopin", "blood_type": "O+", "location": "Unmapped hamlet"}]),
        encoding="utf-8",
    )

    code = cli.main(["search", "--donors", str(donors), "--location", "Kukatpally", "--json"])

    assert code == 0
    raw = capsys.readouterr().out
    assert "Infinity" not in raw
    out = json.loads(raw)
    assert out["results"][0]["distance_km"] is None


def test_cli_search_missing_donor_file_is_reported(monkeypatch, tmp_path, capsys):
    _patch_engine(monkeypatch)

    code = cli.main(["search", "--donors", str(tmp_path / "missing.json"), "--location", "Kukatpally"])

    assert code == 2
    assert capsys.readouterr().err.startswith("error:")


def test_cli_resolve_typed_location_falls_back_offline(monkeypatch, capsys):
    _patch_engine(monkeypatch)

    assert cli.main(["resolve", "Atlantis/Deep District/Ocean State", "--json"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out == {"location": "Atlantis, Deep District, Ocean State", "coordinate": None, "state": None, "geocoded": False}


def test_cli_resolve_device_fix(monkeypatch, capsys):
    _patch_engine(monkeypatch)

    assert cli.main(["resolve", "--lat", "17.49481", "--lon", "78.39962"]) == 0
    assert capsys.readouterr().out.startswith("17.4948, 78.3996")


def test_cli_resolve_needs_text_or_fix(monkeypatch, capsys):
    _patch_engine(monkeypatch)
    assert cli.main(["resolve"]) == 2
    assert "error:" in capsys.readouterr().err


def test_cli_enrich_keeps_typed_text(monkeypatch, tmp_path, capsys):
    _patch_engine(monkeypatch)
    donors = tmp_path / "donors.json"
    donors.write_text(json.dumps([{"id": 7, "blood_type": "A-", "location": "Kukatpally", "name": "Ravi"}]), encoding="utf-8")

    assert cli.main(["enrich", "--donors", str(donors)]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out[0]["location"] == "Kukatpally"
    assert out[0]["state"] == "Telangana"
    assert out[0]["coordinate"] == {"lat": 17.4948, "lon": 78.3996}
    assert out[0]["name"] == "Ravi"
