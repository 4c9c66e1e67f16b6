"""Tests for concurrent source aggregation."""

import logging
import threading
import time

import pytest

from opportunity_engine.aggregator import SourceAggregator, minimal_preferences
from opportunity_engine.cache import OpportunityCache
from opportunity_engine.errors import SourceTimeoutError, UnknownSourceError
from opportunity_engine.models import DiscoveryPreferences
from opportunity_engine.sources.base import OpportunitySource


class StaticSource(OpportunitySource):
    """Returns fixed opportunities, optionally after a gate opens or by raising."""

    def __init__(self, source_id, opportunities=(), error=None, gate=None):
        self._id = source_id
        self.opportunities = list(opportunities)
        self.error = error
        self.gate = gate
        self.calls = []

    @property
    def id(self):
        return self._id

    def get_opportunities(self, skills, preferences):
        self.calls.append((skills, preferences))
        if self.gate is not None:
            self.gate.wait(5)
        if self.error is not None:
            raise self.error
        return [o.copy() for o in self.opportunities]


@pytest.fixture
def aggregator():
    agg = SourceAggregator(OpportunityCache(), timeout_seconds=0.2)
    yield agg
    agg.shutdown()


@pytest.fixture
def prefs() -> DiscoveryPreferences:
    return DiscoveryPreferences(user_id="u1", skills=("writing",))


def test_collect_merges_and_stamps_source(aggregator, prefs, make_opportunity):
    aggregator.register_source(StaticSource("alpha", [make_opportunity("alpha-1"), make_opportunity("alpha-2")]))
    aggregator.register_source(StaticSource("beta", [make_opportunity("beta-1")]))

    opportunities, stats = aggregator.collect(prefs)

    assert sorted(o.id for o in opportunities) == ["alpha-1", "alpha-2", "beta-1"]
    assert {o.id: o.source for o in opportunities}["beta-1"] == "beta"
    assert stats["alpha"].count == 2
    assert stats["beta"].error is None
    assert "alpha-1" in aggregator.cache


def test_failing_source_is_isolated(aggregator, prefs, make_opportunity):
    aggregator.register_source(StaticSource("good", [make_opportunity("good-1")]))
    aggregator.register_source(StaticSource("broken", error=RuntimeError("boom")))

    opportunities, stats = aggregator.collect(prefs)

    assert [o.id for o in opportunities] == ["good-1"]
    assert stats["broken"].error == "boom"
    assert stats["broken"].elapsed_seconds == -1
    metrics = aggregator.metrics()["broken"]
    assert metrics.failed_requests == 1
    assert metrics.last_error == "boom"
    assert metrics.error_patterns == {"boom": 1}
    assert aggregator.metrics()["good"].successful_requests == 1


def test_slow_source_times_out(aggregator, prefs, make_opportunity):
    gate = threading.Event()
    aggregator.register_source(StaticSource("fast", [make_opportunity("fast-1")]))
    aggregator.register_source(StaticSource("slow", [make_opportunity("slow-1")], gate=gate))
    try:
        started = time.monotonic()
        opportunities, stats = aggregator.collect(prefs)
        elapsed = time.monotonic() - started
    finally:
        gate.set()

    assert elapsed < 2
    assert [o.id for o in opportunities] == ["fast-1"]
    assert "timed out" in stats["slow"].error
    assert aggregator.metrics()["slow"].failed_requests == 1


def test_sources_receive_preferences(aggregator, prefs):
    source = StaticSource("alpha")
    aggregator.register_source(source)
    aggregator.collect(prefs)
    assert source.calls == [(["writing"], prefs)]


def test_no_sources(aggregator, prefs):
    assert aggregator.collect(prefs) == ([], {})


def test_get_opportunities_from_source(aggregator, make_opportunity):
    source = StaticSource("alpha", [make_opportunity(f"alpha-{i}") for i in range(5)])
    aggregator.register_source(source)

    opportunities = aggregator.get_opportunities_from_source("alpha", limit=2, skills=["design"])

    assert [o.id for o in opportunities] == ["alpha-0", "alpha-1"]
    skills, preferences = source.calls[0]
    assert skills == ["design"]
    assert preferences.risk_appetite == "any"
    assert "alpha-4" in aggregator.cache


def test_unknown_source(aggregator):
    with pytest.raises(UnknownSourceError):
        aggregator.get_opportunities_from_source("nope")


def test_query_source_timeout(aggregator):
    gate = threading.Event()
    aggregator.register_source(StaticSource("slow", gate=gate))
    try:
        with pytest.raises(SourceTimeoutError):
            aggregator.query_source("slow", minimal_preferences())
    finally:
        gate.set()
    assert aggregator.metrics()["slow"].failed_requests == 1


def test_query_source_propagates_errors(aggregator):
    aggregator.register_source(StaticSource("broken", error=ValueError("bad payload")))
    with pytest.raises(ValueError):
        aggregator.query_source("broken", minimal_preferences())


def test_hyphenated_source_id_warns(aggregator, caplog):
    with caplog.at_level(logging.WARNING):
        aggregator.register_source(StaticSource("my-source"))
    assert "contains '-'" in caplog.text
    assert [s.id for s in aggregator.get_all_sources()] == ["my-source"]
