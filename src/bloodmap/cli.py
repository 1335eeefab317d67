"""
BloodMap CLI entrypoint.

This CLI is intended for quick local checks of geocoding and donor search without a UI.
It delegates all logic to `bloodmap.geocoding` and `bloodmap.search.engine`.
"""

from __future__ import annotations

import argparse
import sys
from typing import Any

from pydantic import BaseModel, TypeAdapter

from bloodmap.config.settings import get_settings
from bloodmap.core.logging import configure_logging
from bloodmap.domain.errors import GeocodeError, SearchError
from bloodmap.domain.models import Coordinate, DonorRecord, SearchQuery
from bloodmap.donors.loader import load_donors
from bloodmap.geocoding.geocoder import resolve_device_location, resolve_typed_location
from bloodmap.geocoding.normalizer import normalize_manual_string
from bloodmap.search.engine import build_engine
from bloodmap.search.explain import one_line_summary

_DONOR_LIST = TypeAdapter(list[DonorRecord])


def _print_json(payload: BaseModel) -> None:
    # Pydantic writes non-finite floats (unknown distances) as null, keeping the output valid JSON.
    print(payload.model_dump_json(indent=2))


def _optional_coordinate(args: argparse.Namespace) -> Coordinate | None:
    if (args.lat is None) != (args.lon is None):
        raise ValueError("--lat and --lon must be given together")
    return Coordinate(lat=args.lat, lon=args.lon) if args.lat is not None else None


def _cmd_geocode(args: argparse.Namespace) -> int:
    engine = build_engine(get_settings())
    result = engine.geocoder.forward(args.address, region_hint=args.region)
    if args.json:
        _print_json(result)
        return 0
    print(f"{result.formatted_location}  ({result.coordinate.lat:.6f}, {result.coordinate.lon:.6f}) via {result.provider}")
    return 0


def _cmd_reverse(args: argparse.Namespace) -> int:
    engine = build_engine(get_settings())
    result = engine.geocoder.reverse(Coordinate(lat=args.lat, lon=args.lon))
    if args.json:
        _print_json(result)
        return 0
    print(f"{result.formatted_location}  state={result.state or '-'} via {result.provider}")
    return 0


def _cmd_normalize(args: argparse.Namespace) -> int:
    print(normalize_manual_string(args.text))
    return 0


def _cmd_resolve(args: argparse.Namespace) -> int:
    """Handle the `resolve` subcommand: a typed location or a device fix, never failing on lookups."""
    coordinate = _optional_coordinate(args)
    if (coordinate is None) == (args.text is None):
        raise ValueError("give either a location text or --lat/--lon")

    geocoder = build_engine(get_settings()).geocoder
    if coordinate is not None:
        resolved = resolve_device_location(geocoder, coordinate)
    else:
        resolved = resolve_typed_location(geocoder, args.text)

    if args.json:
        _print_json(resolved)
        return 0
    pin = f"({resolved.coordinate.lat:.6f}, {resolved.coordinate.lon:.6f})" if resolved.coordinate else "(no pin)"
    print(f"{resolved.location}  {pin}")
    return 0


def _cmd_enrich(args: argparse.Namespace) -> int:
    """Handle the `enrich` subcommand: pin every donor of a pool file and print the result."""
    engine = build_engine(get_settings())
    donors = [engine.enrich_profile(d, reformat=args.reformat) for d in load_donors(args.donors)]
    print(_DONOR_LIST.dump_json(donors, indent=2).decode("utf-8"))
    return 0


def _cmd_search(args: argparse.Namespace) -> int:
    """Handle the `search` subcommand."""
    query = SearchQuery(
        blood_types=set(args.blood_type or []),
        location_text=args.location,
        explicit_coordinate=_optional_coordinate(args),
        max_distance_km=args.max_distance,
    )
    donors = load_donors(args.donors)
    outcome = build_engine(get_settings()).run(query, donors)

    if args.json:
        _print_json(outcome)
        return 0

    where = outcome.center_location or f"{outcome.center.lat:.4f}, {outcome.center.lon:.4f}"
    print(f"Center: {where} (state={outcome.center_state or 'unknown'})")
    print(f"{len(outcome.results)} donor(s) found:")
    for i, result in enumerate(outcome.results, start=1):
        print(f"{i:>2}. [{result.donor.id}] {one_line_summary(result)}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the BloodMap CLI."""
    parser = argparse.ArgumentParser(prog="bloodmap")
    sub = parser.add_subparsers(dest="command", required=True)

    geo = sub.add_parser("geocode", help="Resolve an address to a normalized location and coordinate.")
    geo.add_argument("address")
    geo.add_argument("--region", type=str, default=None, help="Region hint (ISO country code, e.g. 'in').")
    geo.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    geo.set_defaults(func=_cmd_geocode)

    rev = sub.add_parser("reverse", help="Resolve a coordinate to a normalized location.")
    rev.add_argument("--lat", required=True, type=float)
    rev.add_argument("--lon", required=True, type=float)
    rev.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    rev.set_defaults(func=_cmd_reverse)

    norm = sub.add_parser("normalize", help="Reorder a typed location as 'place, district, state' (offline).")
    norm.add_argument("text")
    norm.set_defaults(func=_cmd_normalize)

    res = sub.add_parser("resolve", help="Resolve a location field (typed text or a GPS fix) with offline fallback.")
    res.add_argument("text", nargs="?", default=None)
    res.add_argument("--lat", type=float, default=None)
    res.add_argument("--lon", type=float, default=None)
    res.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    res.set_defaults(func=_cmd_resolve)

    enr = sub.add_parser("enrich", help="Pin donors of a JSON pool (coordinate + state) and print them as JSON.")
    enr.add_argument("--donors", required=True, help="Path to a JSON list of donor records")
    enr.add_argument("--reformat", action="store_true", help="Rewrite typed locations to the geocoded form")
    enr.set_defaults(func=_cmd_enrich)

    srch = sub.add_parser("search", help="Rank donors from a JSON pool by distance from a location.")
    srch.add_argument("--donors", required=True, help="Path to a JSON list of donor records")
    srch.add_argument("--location", type=str, default=None, help="Free-text search location")
    srch.add_argument("--lat", type=float, default=None)
    srch.add_argument("--lon", type=float, default=None)
    srch.add_argument("--blood-type", action="append", default=[], help="Repeatable. Omit for all types.")
    srch.add_argument("--max-distance", type=float, default=None, help="Only donors within this many km")
    srch.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    srch.set_defaults(func=_cmd_search)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m bloodmap.cli`."""
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)
    func: Any = getattr(args, "func")
    try:
        return int(func(args))
    except (GeocodeError, SearchError, ValueError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
