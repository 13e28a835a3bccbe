from app.models import CatalogRecord, Failed, Matched, NoMatch
from app.services.lookup_cache import LookupCache


def _matched(title: str, tmdb_id: int) -> Matched:
    return Matched(
        record=CatalogRecord(id=f"catalog-{tmdb_id}", title=title, catalog_id=tmdb_id)
    )


def test_get_returns_the_stored_outcome_object():
    cache = LookupCache(10)
    outcome = _matched("Heat", 949)

    cache.put("heat", outcome)

    assert cache.get("heat") is outcome
    assert "heat" in cache
    assert cache.get("alien") is None


def test_least_recently_used_entry_is_evicted():
    cache = LookupCache(2)
    cache.put("heat", _matched("Heat", 949))
    cache.put("alien", _matched("Alien", 348))

    cache.get("heat")
    cache.put("ran", _matched("Ran", 11645))

    assert len(cache) == 2
    assert cache.get("alien") is None
    assert cache.get("heat") is not None
    assert cache.get("ran") is not None


def test_zero_capacity_means_unbounded():
    cache = LookupCache(0)
    for index in range(50):
        cache.put(f"title {index}", _matched(f"Title {index}", index + 1))

    assert len(cache) == 50


def test_no_match_never_expires(clock):
    cache = LookupCache(10, failure_ttl_seconds=5, clock=clock)
    cache.put("zzz", NoMatch(record=CatalogRecord.unmatched("zzz")))

    clock.advance(10_000)

    assert isinstance(cache.get("zzz"), NoMatch)


def test_failures_expire_after_ttl(clock):
    cache = LookupCache(10, failure_ttl_seconds=5, clock=clock)
    cache.put(
        "foo",
        Failed(record=CatalogRecord.unmatched("Foo", record_id="fallback-1-a"), reason="boom"),
    )

    clock.advance(4.9)
    assert isinstance(cache.get("foo"), Failed)

    clock.advance(0.2)
    assert cache.get("foo") is None
    assert len(cache) == 0


def test_failures_are_not_cached_when_ttl_is_zero():
    cache = LookupCache(10, failure_ttl_seconds=0)
    cache.put(
        "foo",
        Failed(record=CatalogRecord.unmatched("Foo", record_id="fallback-1-a"), reason="boom"),
    )

    assert cache.get("foo") is None
