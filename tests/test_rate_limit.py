import pytest

from bloodmap.config.settings import Settings
from bloodmap.core.rate_limit import TokenBucketRateLimiter
from bloodmap.domain.models import Coordinate
from bloodmap.geocoding.providers import NominatimProvider


class FakeClock:
    def __init__(self, start=100.0):
        self.now = start
        self.sleeps = []

    def monotonic(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock(monkeypatch):
    fake = FakeClock()
    monkeypatch.setattr("bloodmap.core.rate_limit.time.monotonic", fake.monotonic)
    monkeypatch.setattr("bloodmap.core.rate_limit.time.sleep", fake.sleep)
    return fake


def test_default_bucket_spaces_requests_one_second_apart(clock):
    limiter = TokenBucketRateLimiter(max_per_minute=60)

    limiter.acquire()
    assert clock.sleeps == []

    limiter.acquire()
    assert sum(clock.sleeps) == pytest.approx(1.0)


def test_default_bucket_does_not_burst_after_idle_time(clock):
    limiter = TokenBucketRateLimiter(max_per_minute=60)
    clock.now += 30  # idle for half a minute

    limiter.acquire()
    limiter.acquire()

    assert sum(clock.sleeps) == pytest.approx(1.0)


def test_burst_allows_back_to_back_requests(clock):
    limiter = TokenBucketRateLimiter(max_per_minute=60, burst=3)
    for _ in range(3):
        limiter.acquire()
    assert clock.sleeps == []


def test_acquire_more_than_capacity_is_rejected(clock):
    limiter = TokenBucketRateLimiter(max_per_minute=60)
    with pytest.raises(ValueError, match="capacity"):
        limiter.acquire(2)


def test_non_positive_rate_is_rejected():
    with pytest.raises(ValueError):
        TokenBucketRateLimiter(max_per_minute=0)


def test_nominatim_default_limiter_waits_between_calls(monkeypatch, clock):
    monkeypatch.setattr(
        "bloodmap.geocoding.providers.get_json",
        lambda *_a, **_k: {"display_name": "Hyderabad", "address": {"city": "Hyderabad", "state": "Telangana"}},
    )
    provider = NominatimProvider(Settings())

    provider.reverse(Coordinate(lat=17.385, lon=78.4867))
    provider.reverse(Coordinate(lat=17.4948, lon=78.3996))

    assert sum(clock.sleeps) == pytest.approx(1.0)
