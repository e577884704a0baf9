from __future__ import annotations

import pytest

from matchcache.cache import AnalysisRequest, AnalysisRequestCache, InMemoryTTLBackend


class FakeClock:
    def __init__(self):
        self.t = 1000.0

    def __call__(self):
        return self.t


def test_key_ignores_team_order_and_formatting() -> None:
    a = AnalysisRequest("NBA", "The Lakers", "Celtics")
    b = AnalysisRequest("nba", "celtics", "Lakers")
    assert a.cache_key() == "analysis:nba:celtics|lakers:-:en"
    assert AnalysisRequestCache.is_same_request(a, b)
    assert not AnalysisRequestCache.is_same_request(a, AnalysisRequest("nba", "Lakers", "Celtics", analysis_id="x1"))
    assert not AnalysisRequestCache.is_same_request(a, AnalysisRequest("nba", "Lakers", "Celtics", language="es"))
    assert not AnalysisRequestCache.is_same_request(a, AnalysisRequest("wnba", "Lakers", "Celtics"))


def test_different_requests_never_share_results() -> None:
    cache = AnalysisRequestCache()
    lakers = AnalysisRequest("nba", "Lakers", "Celtics")
    knicks = AnalysisRequest("nba", "Knicks", "Nets")

    cache.set(lakers, {"summary": "Lakers"}, image_url="https://img/lal.png")

    assert cache.get(lakers) == {"summary": "Lakers"}
    assert cache.get_image_url(lakers) == "https://img/lal.png"
    assert cache.get(knicks) is None
    assert cache.get_image_url(knicks) is None

    cache.set(knicks, {"summary": "Knicks"})
    assert cache.get(lakers) == {"summary": "Lakers"}
    assert cache.get(knicks) == {"summary": "Knicks"}


def test_returned_analysis_is_a_copy() -> None:
    cache = AnalysisRequestCache()
    req = AnalysisRequest("nba", "Lakers", "Celtics")
    cache.set(req, {"insights": ["pace"]})
    cache.get(req)["insights"].append("mutated")
    assert cache.get(req) == {"insights": ["pace"]}


def test_invalidate_and_clear() -> None:
    cache = AnalysisRequestCache()
    a = AnalysisRequest("nba", "Lakers", "Celtics")
    b = AnalysisRequest("nba", "Knicks", "Nets")
    cache.set(a, {"x": 1})
    cache.set(b, {"x": 2})

    cache.invalidate(a)
    assert not cache.is_cached(a)
    assert cache.is_cached(b)

    cache.clear()
    assert not cache.is_cached(b)


def test_ttl_expiry() -> None:
    clock = FakeClock()
    backend = InMemoryTTLBackend(ttl_seconds=60, clock=clock)
    cache = AnalysisRequestCache(backend)
    req = AnalysisRequest("nba", "Lakers", "Celtics")
    cache.set(req, {"x": 1})

    clock.t += 60
    assert cache.get(req) == {"x": 1}
    clock.t += 1
    assert cache.get(req) is None
    assert len(backend) == 0


def test_prune_expired() -> None:
    clock = FakeClock()
    backend = InMemoryTTLBackend(ttl_seconds=10, clock=clock)
    backend.set("a", 1)
    clock.t += 5
    backend.set("b", 2)
    clock.t += 6
    assert backend.prune_expired() == 1
    assert backend.get("b") == 2


def test_ttl_must_be_positive() -> None:
    with pytest.raises(ValueError):
        InMemoryTTLBackend(ttl_seconds=0)


def test_injected_empty_backend_is_used() -> None:
    backend = InMemoryTTLBackend(ttl_seconds=60)
    cache = AnalysisRequestCache(backend)
    assert cache.backend is backend

    cache.set(AnalysisRequest("nba", "Lakers", "Celtics"), {"x": 1})
    assert len(backend) == 1
