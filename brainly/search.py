"""
Search request coordination.

Turns a stream of query edits into at most one live remote search
pipeline at a time:

    on_query_changed() -> debounce -> submit() -> cache probe
        -> retrieval -> relevance filter -> summarization -> publish

Each pipeline runs as its own task with a CancellationToken. Starting a
new pipeline cancels the previous token, which cancels its task (aborting
the HTTP request) and marks any late result as stale. Results are only
published while the pipeline's token is live, so a superseded search can
never overwrite a newer one, whatever order the responses arrive in.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .cancellation import CancellationToken
from .config import DEFAULT_DEBOUNCE_SECONDS, DEFAULT_SEARCH_LIMIT
from .errors import ApiError, AuthenticationError, ServiceOverloadedError
from .notify import (
    AUTH_ERROR,
    NETWORK_ERROR,
    SEARCH_COMPLETED,
    SEARCH_STARTED,
    NotificationKind,
    Notifier,
)
from .protocol import ContentApiProtocol, NotifierProtocol
from .relevance import filter_relevant
from .search_cache import SearchResultCache
from .types import SUMMARY_BODY_LIMIT, Content, project_for_summary

logger = logging.getLogger(__name__)

NO_RESULTS_SUMMARY = "I couldn't find anything in your saved content related to that."
OVERLOADED_SUMMARY = (
    "The AI assistant is overloaded right now. "
    "Here are the most relevant items I found; try again in a moment for a summary."
)
SUMMARY_FAILED = (
    "I couldn't generate a summary this time. "
    "Here are the most relevant items I found."
)

# SearchOutcome.error values
ERROR_NETWORK = "network"
ERROR_SUMMARY_OVERLOADED = "summary-overloaded"
ERROR_SUMMARY_FAILED = "summary-failed"


class SearchState(str, Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    RETRIEVING = "retrieving"
    SUMMARIZING = "summarizing"


@dataclass(frozen=True)
class SearchOutcome:
    """What one search produced, as shown to the user."""
    query: str
    results: tuple[Content, ...]
    summary: str
    latency_ms: int
    result_count: int
    from_cache: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SearchCoordinator:
    """
    Debounced, cancellable two-phase search.

    One instance per search box. All methods must be called from the
    event loop that runs the pipelines.
    """

    def __init__(
        self,
        api: ContentApiProtocol,
        cache: SearchResultCache,
        notifier: Optional[NotifierProtocol] = None,
        *,
        debounce: float = DEFAULT_DEBOUNCE_SECONDS,
        limit: int = DEFAULT_SEARCH_LIMIT,
        body_limit: int = SUMMARY_BODY_LIMIT,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._api = api
        self._cache = cache
        self._notifier = notifier or Notifier()
        self._debounce = debounce
        self._limit = limit
        self._body_limit = body_limit
        self._clock = clock

        self._listeners: list[Callable[[SearchOutcome], None]] = []
        self._latest: Optional[SearchOutcome] = None
        self._closed = False

        # Debounce: the armed timer, plus fired timers still running submit()
        self._timer: Optional[asyncio.Task] = None
        self._background: set[asyncio.Task] = set()

        # Current pipeline
        self._token: Optional[CancellationToken] = None
        self._task: Optional[asyncio.Task] = None
        self._phase: Optional[SearchState] = None
        self._serial = 0

    # -- Observable state -----------------------------------------------------

    @property
    def state(self) -> SearchState:
        if self._phase is not None:
            return self._phase
        if self._timer is not None:
            return SearchState.DEBOUNCING
        return SearchState.IDLE

    @property
    def latest(self) -> Optional[SearchOutcome]:
        """The most recently published outcome."""
        return self._latest

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: Callable[[SearchOutcome], None]) -> Callable[[], None]:
        """Register an outcome listener. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -- Input ----------------------------------------------------------------

    def on_query_changed(self, query: str) -> None:
        """Content-change event: (re)arm the debounce timer for query."""
        if self._closed:
            return
        self._cancel_timer()
        if not query.strip():
            return
        timer = asyncio.get_running_loop().create_task(self._debounced_submit(query))
        self._timer = timer
        self._background.add(timer)
        timer.add_done_callback(self._background_done)

    async def _debounced_submit(self, query: str) -> None:
        await asyncio.sleep(self._debounce)
        # Fired: from here on only the token can stop this search
        if self._timer is asyncio.current_task():
            self._timer = None
        await self.submit(query)

    def _background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Debounced search failed unexpectedly: %s", exc, exc_info=exc)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def submit(self, query: str) -> Optional[SearchOutcome]:
        """Search now, bypassing the debounce.

        Returns the published outcome, or None when the query is blank,
        the coordinator is closed, or this search was superseded.
        """
        if self._closed:
            return None
        self._cancel_timer()
        query = query.strip()
        if not query:
            return None

        entry = self._cache.get(query)
        if entry is not None:
            logger.debug("Search cache hit for %r", entry.query)
            outcome = SearchOutcome(
                query=query,
                results=entry.results,
                summary=entry.summary,
                latency_ms=entry.latency_ms,
                result_count=entry.result_count,
                from_cache=True,
            )
            self._publish(outcome)
            return outcome

        self._cancel_pipeline()
        self._serial += 1
        token = CancellationToken(f"search-{self._serial}")
        task = asyncio.get_running_loop().create_task(self._run(query, token))
        token.add_callback(task.cancel)
        self._token, self._task = token, task

        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            # Caller went away (teardown): take the pipeline down with it
            if self._token is token:
                self._cancel_pipeline()
            raise
        if task.cancelled():
            return None
        return task.result()

    # -- Pipeline -------------------------------------------------------------

    async def _run(self, query: str, token: CancellationToken) -> Optional[SearchOutcome]:
        started = self._clock()
        self._set_phase(token, SearchState.RETRIEVING)
        self._notifier.notify(NotificationKind.LOADING, SEARCH_STARTED)
        try:
            try:
                candidates = await self._api.search(query, self._limit)
            except ApiError as e:
                if token.cancelled:
                    return None
                logger.warning("Search retrieval failed for %r: %s", query, e)
                self._notifier.notify(
                    NotificationKind.ERROR, AUTH_ERROR if isinstance(e, AuthenticationError) else NETWORK_ERROR,
                )
                outcome = SearchOutcome(
                    query=query,
                    results=(),
                    summary="",
                    latency_ms=self._elapsed_ms(started),
                    result_count=0,
                    error=ERROR_NETWORK,
                )
                self._publish(outcome)
                return outcome
            if token.cancelled:
                return None

            results = filter_relevant(candidates)
            error: Optional[str] = None
            if not results:
                summary = NO_RESULTS_SUMMARY
            else:
                self._set_phase(token, SearchState.SUMMARIZING)
                context = [project_for_summary(c, self._body_limit) for c in results]
                try:
                    summary = await self._api.summarize(query, context)
                except ServiceOverloadedError as e:
                    logger.info("Summarizer overloaded for %r: %s", query, e)
                    summary, error = OVERLOADED_SUMMARY, ERROR_SUMMARY_OVERLOADED
                except ApiError as e:
                    logger.warning("Summarization failed for %r: %s", query, e)
                    summary, error = SUMMARY_FAILED, ERROR_SUMMARY_FAILED
                if token.cancelled:
                    return None

            latency_ms = self._elapsed_ms(started)
            outcome = SearchOutcome(
                query=query,
                results=tuple(results),
                summary=summary,
                latency_ms=latency_ms,
                result_count=len(results),
                error=error,
            )
            if error is None:
                # Degraded summaries are not worth keeping for the full TTL
                self._cache.put(query, results, summary, latency_ms)
                self._notifier.notify(NotificationKind.SUCCESS, SEARCH_COMPLETED)
            else:
                self._notifier.notify(NotificationKind.ERROR, summary)
            logger.info(
                "Search %r: %d result(s) in %dms%s",
                query, len(results), latency_ms, f" ({error})" if error else "",
            )
            self._publish(outcome)
            return outcome
        finally:
            if self._token is token:
                self._token = None
                self._task = None
                self._phase = None

    def _set_phase(self, token: CancellationToken, phase: SearchState) -> None:
        if self._token is token:
            self._phase = phase

    def _elapsed_ms(self, started: float) -> int:
        return int(round((self._clock() - started) * 1000))

    def _publish(self, outcome: SearchOutcome) -> None:
        self._latest = outcome
        for listener in list(self._listeners):
            try:
                listener(outcome)
            except Exception as e:
                logger.warning("Search listener failed: %s", e)

    # -- Cancellation and teardown --------------------------------------------

    def _cancel_pipeline(self) -> None:
        token = self._token
        if token is None:
            return
        self._token = None
        self._task = None
        self._phase = None
        logger.debug("Cancelling %r", token)
        token.cancel()

    def cancel(self) -> None:
        """Drop the pending debounce and the in-flight search, silently."""
        self._cancel_timer()
        self._cancel_pipeline()

    async def wait_idle(self) -> None:
        """Wait until no debounce timer or pipeline is outstanding."""
        while True:
            pending = {t for t in self._background if not t.done()}
            if self._task is not None and not self._task.done():
                pending.add(self._task)
            if not pending:
                return
            await asyncio.wait(pending)

    async def close(self) -> None:
        """Tear down: cancel everything and refuse further searches."""
        self._closed = True
        task = self._task
        self.cancel()
        background = list(self._background)
        for t in background:
            t.cancel()
        outstanding = [t for t in background + [task] if t is not None]
        if outstanding:
            await asyncio.wait(outstanding)
        self._listeners.clear()
