"""
Tests for the search request coordinator.

Covers debounce coalescing, cache idempotence and expiry, cancellation
of superseded pipelines, and the degraded paths (retrieval failure,
overloaded or failing summarizer).
"""

import asyncio

import httpx
import pytest

from brainly.client import ContentClient
from brainly.errors import ApiError, AuthenticationError, NetworkError, ServiceOverloadedError
from brainly.notify import NETWORK_ERROR, SEARCH_COMPLETED, AUTH_ERROR, NotificationKind
from brainly.search import (
    ERROR_NETWORK,
    ERROR_SUMMARY_FAILED,
    ERROR_SUMMARY_OVERLOADED,
    NO_RESULTS_SUMMARY,
    OVERLOADED_SUMMARY,
    SUMMARY_FAILED,
    SearchCoordinator,
    SearchState,
)
from brainly.search_cache import SearchResultCache

from conftest import make_content, scored


def _coordinator(api, notifier, clock, *, debounce=0.05, ttl=300):
    cache = SearchResultCache(ttl=ttl, clock=clock)
    return SearchCoordinator(api, cache, notifier, debounce=debounce, clock=clock), cache


async def _until(predicate):
    """Let the loop run until predicate() holds."""
    for _ in range(100):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


class TestSubmit:

    @pytest.mark.asyncio
    async def test_two_phase_pipeline(self, api, notifier, clock):
        api.default_results = scored(0.92, 0.88, 0.81)
        coord, cache = _coordinator(api, notifier, clock)

        outcome = await coord.submit("React hooks")

        assert api.search_calls == [("React hooks", 3)]
        assert len(api.summarize_calls) == 1
        assert outcome.summary == "Summary: React hooks"
        assert [r.id for r in outcome.results] == ["r1", "r2", "r3"]
        assert outcome.result_count == 3
        assert outcome.ok
        assert not outcome.from_cache
        assert coord.latest == outcome
        assert coord.state == SearchState.IDLE
        assert "react hooks" in cache
        assert notifier.successes == [SEARCH_COMPLETED]

    @pytest.mark.asyncio
    async def test_summarizer_gets_filtered_projection(self, api, notifier, clock):
        long_body = "x" * 6000
        api.default_results = [
            make_content("r1", score=0.95, body=long_body, link="https://example.com", summary="s"),
            make_content("r2", score=0.60),
        ]
        coord, _ = _coordinator(api, notifier, clock)

        await coord.submit("query")

        _, context = api.summarize_calls[0]
        assert len(context) == 1
        projected = context[0]
        assert projected["_id"] == "r1"
        assert projected["type"] == "note"
        assert len(projected["content"]) == 5000
        assert projected["link"] == "https://example.com"
        assert set(projected) == {"_id", "type", "title", "content", "createdAt", "updatedAt", "link"}

    @pytest.mark.asyncio
    async def test_blank_query_makes_no_call(self, api, notifier, clock):
        coord, _ = _coordinator(api, notifier, clock)
        assert await coord.submit("   ") is None
        assert api.search_calls == []
        assert coord.state == SearchState.IDLE
        assert notifier.notifications == []

    @pytest.mark.asyncio
    async def test_no_results_skips_summarization(self, api, notifier, clock):
        coord, cache = _coordinator(api, notifier, clock)
        outcome = await coord.submit("unknown")

        assert api.summarize_calls == []
        assert outcome.results == ()
        assert outcome.summary == NO_RESULTS_SUMMARY
        assert outcome.ok
        assert "unknown" in cache

    @pytest.mark.asyncio
    async def test_listeners_receive_outcomes(self, api, notifier, clock):
        api.default_results = scored(0.9)
        coord, _ = _coordinator(api, notifier, clock)
        seen = []
        unsubscribe = coord.subscribe(seen.append)

        await coord.submit("a")
        unsubscribe()
        await coord.submit("b")

        assert [o.query for o in seen] == ["a"]

    @pytest.mark.asyncio
    async def test_latency_measured_with_clock(self, api, notifier, clock):
        async def slow_search(query, limit):
            clock.advance(0.25)
            return scored(0.9)

        api.search = slow_search
        coord, _ = _coordinator(api, notifier, clock)
        outcome = await coord.submit("q")
        assert outcome.latency_ms == 250


class TestDebounce:

    @pytest.mark.asyncio
    async def test_burst_coalesces_into_one_search(self, api, notifier, clock):
        api.default_results = scored(0.9)
        coord, _ = _coordinator(api, notifier, clock, debounce=0.05)

        for partial in ["r", "re", "rea", "reac", "react"]:
            coord.on_query_changed(partial)
            await asyncio.sleep(0.005)
        assert coord.state == SearchState.DEBOUNCING
        assert api.search_calls == []

        await coord.wait_idle()

        assert api.search_calls == [("react", 3)]
        assert coord.latest.query == "react"
        assert coord.state == SearchState.IDLE

    @pytest.mark.asyncio
    async def test_separate_bursts_search_separately(self, api, notifier, clock):
        coord, _ = _coordinator(api, notifier, clock, debounce=0.01)

        coord.on_query_changed("first")
        await coord.wait_idle()
        coord.on_query_changed("second")
        await coord.wait_idle()

        assert [q for q, _ in api.search_calls] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_explicit_submit_bypasses_debounce(self, api, notifier, clock):
        coord, _ = _coordinator(api, notifier, clock, debounce=10.0)

        coord.on_query_changed("typed")
        outcome = await coord.submit("typed")

        assert outcome is not None
        assert api.search_calls == [("typed", 3)]
        # The armed timer was dropped, nothing else fires
        assert coord.state == SearchState.IDLE
        await coord.wait_idle()
        assert len(api.search_calls) == 1

    @pytest.mark.asyncio
    async def test_clearing_the_box_disarms(self, api, notifier, clock):
        coord, _ = _coordinator(api, notifier, clock, debounce=0.02)

        coord.on_query_changed("something")
        coord.on_query_changed("   ")
        assert coord.state == SearchState.IDLE

        await asyncio.sleep(0.05)
        await coord.wait_idle()
        assert api.search_calls == []


class TestCache:

    @pytest.mark.asyncio
    async def test_same_query_within_ttl_hits_cache(self, api, notifier, clock):
        api.default_results = scored(0.95, 0.5)
        coord, _ = _coordinator(api, notifier, clock)

        first = await coord.submit("React Hooks")
        clock.advance(120)
        second = await coord.submit("  react hooks ")

        assert len(api.search_calls) == 1
        assert len(api.summarize_calls) == 1
        assert second.from_cache
        assert second.results == first.results
        assert second.summary == first.summary
        assert second.latency_ms == first.latency_ms
        assert second.result_count == first.result_count

    @pytest.mark.asyncio
    async def test_expired_entry_triggers_round_trip(self, api, notifier, clock):
        api.default_results = scored(0.95)
        coord, _ = _coordinator(api, notifier, clock, ttl=300)

        await coord.submit("hooks")
        clock.advance(301)
        outcome = await coord.submit("hooks")

        assert len(api.search_calls) == 2
        assert len(api.summarize_calls) == 2
        assert not outcome.from_cache

    @pytest.mark.asyncio
    async def test_cache_hit_leaves_inflight_search_alone(self, api, notifier, clock):
        api.default_results = scored(0.95)
        coord, _ = _coordinator(api, notifier, clock)
        await coord.submit("cached")

        api.search_gates["slow"] = asyncio.Event()
        slow = asyncio.create_task(coord.submit("slow"))
        await _until(lambda: ("slow", 3) in api.search_calls)
        assert coord.state == SearchState.RETRIEVING

        hit = await coord.submit("cached")
        assert hit.from_cache
        assert coord.state == SearchState.RETRIEVING

        api.search_gates["slow"].set()
        outcome = await slow
        assert outcome is not None
        assert outcome.query == "slow"


class TestCancellation:

    @pytest.mark.asyncio
    async def test_superseded_search_is_discarded(self, api, notifier, clock):
        api.search_results = {"alpha": scored(0.9), "beta": scored(0.8)}
        api.search_gates["alpha"] = asyncio.Event()
        coord, cache = _coordinator(api, notifier, clock)

        first = asyncio.create_task(coord.submit("alpha"))
        await _until(lambda: api.search_calls)
        second = await coord.submit("beta")
        api.search_gates["alpha"].set()

        assert await first is None
        assert second.query == "beta"
        assert coord.latest.query == "beta"
        assert "alpha" not in cache
        assert "beta" in cache
        assert notifier.errors == []

    @pytest.mark.asyncio
    async def test_late_response_of_superseded_search_is_ignored(self, api, notifier, clock):
        """A transport that can't abort still resolves; the token discards it."""
        api.ignore_cancel = True
        api.search_results = {"alpha": scored(0.9), "beta": scored(0.8)}
        api.search_gates["alpha"] = asyncio.Event()
        coord, cache = _coordinator(api, notifier, clock)
        published = []
        coord.subscribe(published.append)

        first = asyncio.create_task(coord.submit("alpha"))
        await _until(lambda: api.search_calls)
        second = await coord.submit("beta")

        # alpha resolves after beta has been shown
        api.search_gates["alpha"].set()
        assert await first is None

        assert [o.query for o in published] == ["beta"]
        assert coord.latest == second
        assert "alpha" not in cache
        assert cache.get("beta").results == second.results
        # alpha never reached summarization
        assert [q for q, _ in api.summarize_calls] == ["beta"]
        assert coord.state == SearchState.IDLE

    @pytest.mark.asyncio
    async def test_cancel_is_silent(self, api, notifier, clock):
        api.search_gates["q"] = asyncio.Event()
        coord, cache = _coordinator(api, notifier, clock)

        pending = asyncio.create_task(coord.submit("q"))
        await _until(lambda: api.search_calls)
        coord.cancel()

        assert await pending is None
        assert coord.state == SearchState.IDLE
        assert coord.latest is None
        assert len(cache) == 0
        assert notifier.errors == []
        assert notifier.successes == []

    @pytest.mark.asyncio
    async def test_close_tears_down_and_rejects_new_work(self, api, notifier, clock):
        api.search_gates["q"] = asyncio.Event()
        coord, _ = _coordinator(api, notifier, clock, debounce=0.01)

        pending = asyncio.create_task(coord.submit("q"))
        await _until(lambda: api.search_calls)
        coord.on_query_changed("typing")
        await coord.close()

        assert await pending is None
        assert coord.closed
        assert await coord.submit("again") is None
        coord.on_query_changed("more")
        assert coord.state == SearchState.IDLE
        assert [q for q, _ in api.search_calls] == ["q"]

    @pytest.mark.asyncio
    async def test_caller_cancellation_cancels_pipeline(self, api, notifier, clock):
        api.search_gates["q"] = asyncio.Event()
        coord, cache = _coordinator(api, notifier, clock)

        caller = asyncio.create_task(coord.submit("q"))
        await _until(lambda: api.search_calls)
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        await coord.wait_idle()
        assert coord.state == SearchState.IDLE
        assert coord.latest is None
        assert len(cache) == 0


class TestFailures:

    @pytest.mark.asyncio
    async def test_retrieval_failure_reports_network_error(self, api, notifier, clock):
        api.search_error = NetworkError("connection refused")
        coord, cache = _coordinator(api, notifier, clock)

        outcome = await coord.submit("q")

        assert outcome.error == ERROR_NETWORK
        assert outcome.results == ()
        assert outcome.result_count == 0
        assert notifier.errors == [NETWORK_ERROR]
        assert len(cache) == 0
        assert api.summarize_calls == []
        assert coord.state == SearchState.IDLE

    @pytest.mark.asyncio
    async def test_auth_failure_reports_auth_error(self, api, notifier, clock):
        api.search_error = AuthenticationError("no token")
        coord, _ = _coordinator(api, notifier, clock)

        outcome = await coord.submit("q")

        assert outcome.error == ERROR_NETWORK
        assert notifier.errors == [AUTH_ERROR]

    @pytest.mark.asyncio
    async def test_undecodable_response_reports_network_error(self, notifier, clock):
        def handler(request):
            raise httpx.DecodingError("bad gzip", request=request)

        api = ContentClient("https://api.example.com", lambda: "t", transport=httpx.MockTransport(handler))
        coord, _ = _coordinator(api, notifier, clock)

        outcome = await coord.submit("q")

        assert outcome.error == ERROR_NETWORK
        assert outcome.results == ()
        assert notifier.errors == [NETWORK_ERROR]
        await api.close()

    @pytest.mark.asyncio
    async def test_retry_after_failure_goes_to_network(self, api, notifier, clock):
        api.search_error = NetworkError("down")
        api.default_results = scored(0.9)
        coord, _ = _coordinator(api, notifier, clock)

        await coord.submit("q")
        api.search_error = None
        outcome = await coord.submit("q")

        assert outcome.ok
        assert len(api.search_calls) == 2

    @pytest.mark.asyncio
    async def test_overloaded_summarizer_keeps_results(self, api, notifier, clock):
        api.default_results = scored(0.95)
        api.summarize_error = ServiceOverloadedError("busy", status_code=503)
        coord, cache = _coordinator(api, notifier, clock)

        outcome = await coord.submit("q")

        assert [r.id for r in outcome.results] == ["r1"]
        assert outcome.summary == OVERLOADED_SUMMARY
        assert outcome.error == ERROR_SUMMARY_OVERLOADED
        assert notifier.of_kind(NotificationKind.ERROR) == [OVERLOADED_SUMMARY]
        # Degraded outcomes are not cached
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_generic_summary_failure_has_its_own_message(self, api, notifier, clock):
        api.default_results = scored(0.95)
        api.summarize_error = ApiError("boom", status_code=500)
        coord, _ = _coordinator(api, notifier, clock)

        outcome = await coord.submit("q")

        assert outcome.summary == SUMMARY_FAILED
        assert outcome.summary != OVERLOADED_SUMMARY
        assert outcome.error == ERROR_SUMMARY_FAILED
        assert outcome.result_count == 1
