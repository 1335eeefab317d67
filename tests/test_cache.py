from bloodmap.core.cache import FileCache, record_cache_stats


def test_file_cache_round_trip_and_ttl(monkeypatch, tmp_path):
    cache = FileCache(tmp_path, enabled=True, default_ttl_seconds=60)

    monkeypatch.setattr("bloodmap.core.cache.time.time", lambda: 1_000)
    cache.set("geocode", "forward:-:hyderabad", {"state": "Telangana"})
    assert cache.get("geocode", "forward:-:hyderabad") == {"state": "Telangana"}

    monkeypatch.setattr("bloodmap.core.cache.time.time", lambda: 1_061)
    with record_cache_stats() as stats:
        assert cache.get("geocode", "forward:-:hyderabad") is None
    assert stats.as_dict() == {"hits": 0, "misses": 1, "expired": 1, "sets": 0}


def test_file_cache_explicit_ttl_overrides_stored_ttl(monkeypatch, tmp_path):
    cache = FileCache(tmp_path)
    monkeypatch.setattr("bloodmap.core.cache.time.time", lambda: 0)
    cache.set("ns", "k", [1, 2], ttl_seconds=10)

    monkeypatch.setattr("bloodmap.core.cache.time.time", lambda: 50)
    assert cache.get("ns", "k") is None
    assert cache.get("ns", "k", ttl_seconds=100) == [1, 2]


def test_disabled_cache_never_writes(tmp_path):
    cache = FileCache(tmp_path, enabled=False)
    cache.set("ns", "k", {"v": 1})
    assert cache.get("ns", "k") is None
    assert not any(tmp_path.iterdir())


def test_corrupt_entry_is_a_miss(tmp_path):
    cache = FileCache(tmp_path)
    cache.set("ns", "k", {"v": 1})
    for path in (tmp_path / "ns").glob("*.json"):
        path.write_text("{not json", encoding="utf-8")
    assert cache.get("ns", "k") is None
