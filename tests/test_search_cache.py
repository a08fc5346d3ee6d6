"""Tests for the search result cache."""

from brainly.search_cache import SearchResultCache, normalize_query

from conftest import scored


class TestNormalizeQuery:

    def test_trims_and_lowercases(self):
        assert normalize_query("  React Hooks ") == "react hooks"

    def test_inner_whitespace_kept(self):
        assert normalize_query("a  b") == "a  b"


class TestSearchResultCache:

    def test_put_and_get(self, clock):
        cache = SearchResultCache(ttl=300, clock=clock)
        results = scored(0.9, 0.85)
        cache.put("React Hooks", results, "summary", 120)

        entry = cache.get("react hooks")
        assert entry is not None
        assert entry.query == "react hooks"
        assert list(entry.results) == results
        assert entry.summary == "summary"
        assert entry.latency_ms == 120
        assert entry.result_count == 2

    def test_lookup_is_normalized(self, clock):
        cache = SearchResultCache(clock=clock)
        cache.put("hooks", [], "s", 1)
        assert cache.get("  HOOKS  ") is not None
        assert "Hooks" in cache

    def test_miss(self, clock):
        cache = SearchResultCache(clock=clock)
        assert cache.get("nothing") is None

    def test_entry_within_ttl_is_served(self, clock):
        cache = SearchResultCache(ttl=300, clock=clock)
        cache.put("q", [], "s", 1)
        clock.advance(299)
        assert cache.get("q") is not None

    def test_expired_entry_never_returned(self, clock):
        cache = SearchResultCache(ttl=300, clock=clock)
        cache.put("q", [], "s", 1)
        clock.advance(301)
        assert cache.get("q") is None
        # Lazily dropped
        assert len(cache) == 0

    def test_entry_at_exact_ttl_is_expired(self, clock):
        cache = SearchResultCache(ttl=300, clock=clock)
        cache.put("q", [], "s", 1)
        clock.advance(300)
        assert cache.get("q") is None

    def test_put_refreshes_timestamp(self, clock):
        cache = SearchResultCache(ttl=300, clock=clock)
        cache.put("q", [], "old", 1)
        clock.advance(200)
        cache.put("q", [], "new", 1)
        clock.advance(200)
        entry = cache.get("q")
        assert entry is not None
        assert entry.summary == "new"

    def test_prune_removes_only_expired(self, clock):
        cache = SearchResultCache(ttl=300, clock=clock)
        cache.put("old", [], "s", 1)
        clock.advance(250)
        cache.put("fresh", [], "s", 1)
        clock.advance(100)

        assert cache.prune() == 1
        assert len(cache) == 1
        assert cache.get("fresh") is not None

    def test_max_entries_evicts_oldest(self, clock):
        cache = SearchResultCache(max_entries=2, clock=clock)
        cache.put("a", [], "s", 1)
        cache.put("b", [], "s", 1)
        cache.put("c", [], "s", 1)
        assert cache.get("a") is None
        assert cache.get("b") is not None
        assert cache.get("c") is not None

    def test_clear(self, clock):
        cache = SearchResultCache(clock=clock)
        cache.put("a", [], "s", 1)
        cache.clear()
        assert len(cache) == 0
