"""
Background refresh of the content store.

While any item is pending or processing on the server, the store is
refreshed every few seconds so summaries and metadata appear without
user action. Once nothing is transient the poller disarms itself.

Single-timer discipline: at most one poll task exists, and it runs its
refreshes one after another, so two refreshes never overlap. A refresh
that is already running when the condition turns false is allowed to
finish; the loop exits after it.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .config import DEFAULT_POLL_INTERVAL
from .content_store import ContentStore
from .errors import BrainlyError
from .types import Content

logger = logging.getLogger(__name__)

FetchContents = Callable[[], Awaitable[list[Content]]]


class BackgroundPoller:
    """Polls `fetch` into `store` while the store has transient items."""

    def __init__(
        self,
        store: ContentStore,
        fetch: FetchContents,
        *,
        interval: float = DEFAULT_POLL_INTERVAL,
    ):
        self._store = store
        self._fetch = fetch
        self._interval = interval
        self._task: Optional[asyncio.Task] = None
        self._refreshing = False
        self._unsubscribe: Optional[Callable[[], None]] = None
        self.poll_count = 0

    @property
    def armed(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def running(self) -> bool:
        return self._unsubscribe is not None

    def start(self) -> None:
        """Watch the store and evaluate immediately. Needs a running loop."""
        if self._unsubscribe is None:
            self._unsubscribe = self._store.subscribe(self._on_store_changed)
        self._evaluate()

    async def stop(self) -> None:
        """Stop watching and cancel any timer or refresh in flight."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})

    def _on_store_changed(self, store: ContentStore) -> None:
        self._evaluate()

    def _evaluate(self) -> None:
        if self._store.has_transient():
            if not self.armed:
                logger.debug("Transient content present, arming poll every %.1fs", self._interval)
                self._task = asyncio.get_running_loop().create_task(self._run())
        elif self.armed and not self._refreshing:
            logger.debug("No transient content, disarming poll")
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self._refreshing = True
            try:
                await self._refresh_once()
            finally:
                self._refreshing = False
            if not self._store.has_transient():
                logger.debug("Poll converged, nothing transient")
                return

    async def _refresh_once(self) -> None:
        """One silent refresh: failures are logged, never surfaced."""
        self.poll_count += 1
        try:
            contents = await self._fetch()
            self._store.replace_all(contents)
        except BrainlyError as e:
            logger.info("Background refresh failed: %s", e)
        except Exception as e:
            logger.warning("Background refresh failed unexpectedly: %s", e, exc_info=True)
