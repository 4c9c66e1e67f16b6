"""Tests for the opportunity cache."""

import time

import pytest

from opportunity_engine.cache import OpportunityCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> OpportunityCache:
    return OpportunityCache(ttl_seconds=30 * 60, clock=clock)


def test_put_and_get(cache, make_opportunity):
    cache.put(make_opportunity("a"))
    assert "a" in cache
    assert cache.get("a").id == "a"
    assert cache.get("missing") is None


def test_cache_hands_out_copies(cache, make_opportunity):
    original = make_opportunity("a", title="Original")
    cache.put(original)
    original.title = "Changed after put"

    fetched = cache.get("a")
    fetched.title = "Changed after get"

    assert cache.get("a").title == "Original"


def test_sweep_respects_ttl(cache, clock, make_opportunity):
    cache.put_many([make_opportunity("a"), make_opportunity("b")])

    clock.advance(29 * 60)
    assert cache.sweep() == 0
    assert len(cache) == 2

    clock.advance(2 * 60)
    assert cache.get("a") is not None  # expiry only happens on sweep
    assert cache.sweep() == 2
    assert len(cache) == 0


def test_reinsert_refreshes_age(cache, clock, make_opportunity):
    cache.put(make_opportunity("a"))
    clock.advance(20 * 60)
    cache.put(make_opportunity("a"))
    clock.advance(20 * 60)
    assert cache.sweep() == 0


def test_put_requires_id(cache, make_opportunity):
    with pytest.raises(ValueError):
        cache.put(make_opportunity(""))


def test_background_sweeper(make_opportunity):
    cache = OpportunityCache(ttl_seconds=0, sweep_interval_seconds=0.01)
    cache.put(make_opportunity("a"))
    cache.start_sweeper()
    try:
        deadline = time.monotonic() + 2
        while len(cache) and time.monotonic() < deadline:
            time.sleep(0.01)
        assert len(cache) == 0
    finally:
        cache.stop_sweeper()
