"""
BrainSession: one user's view of their second brain.

Owns the content store, search cache, search coordinator, optimistic
mutation engine and background poller, and ties their lifetimes to a
single object with explicit construction and teardown:

    async with BrainSession.from_config(config, token_provider) as session:
        await session.load()
        outcome = await session.search("react hooks video")
"""

import logging
import uuid
from pathlib import Path
from typing import Any, Callable, Optional

from .client import ContentClient
from .config import ClientConfig
from .content_store import ContentStore
from .logging_config import configure_ops_log
from .errors import ApiError, AuthenticationError
from .notify import AUTH_ERROR, LOADING_CONTENT, NETWORK_ERROR, NotificationKind, Notifier
from .optimistic import OptimisticMutationEngine
from .poller import BackgroundPoller
from .protocol import ContentApiProtocol, NotifierProtocol
from .search import SearchCoordinator, SearchOutcome
from .search_cache import SearchResultCache
from .types import Content, ContentKind, ProcessingStatus, utc_now

logger = logging.getLogger(__name__)

# Temporary ids for creations not yet confirmed by the server
TEMP_ID_PREFIX = "temp-"

# Content field name -> API field name
_WIRE_FIELDS = {
    "title": "title",
    "body": "content",
    "summary": "summary",
    "tags": "tags",
    "link": "link",
    "due_date": "dueDate",
    "is_completed": "isCompleted",
}


def to_wire(changes: dict[str, Any]) -> dict[str, Any]:
    """Translate Content field changes to the API's partial shape."""
    partial: dict[str, Any] = {}
    for name, value in changes.items():
        if name == "kind":
            partial["type"] = ContentKind(value).value
            continue
        if name not in _WIRE_FIELDS:
            raise ValueError(f"Field cannot be changed: {name}")
        partial[_WIRE_FIELDS[name]] = list(value) if name == "tags" else value
    return partial


class BrainSession:
    """Facade over the search and mutation layers for one signed-in user."""

    def __init__(
        self,
        api: ContentApiProtocol,
        *,
        config: Optional[ClientConfig] = None,
        notifier: Optional[NotifierProtocol] = None,
        log_dir: Optional[Path] = None,
    ):
        config = config or ClientConfig()
        self._api = api
        self.config = config
        self.notifier = notifier or Notifier()
        self.store = ContentStore()
        self.cache = SearchResultCache(ttl=config.cache_ttl)
        self.search_coordinator = SearchCoordinator(
            api,
            self.cache,
            self.notifier,
            debounce=config.debounce_seconds,
            limit=config.search_limit,
            body_limit=config.summary_body_limit,
        )
        self.mutations = OptimisticMutationEngine(self.store, self.notifier)
        self.poller = BackgroundPoller(self.store, api.list_content, interval=config.poll_interval)
        self._closed = False

        # Persistent operations log, removed again on close()
        self._ops_log_handler = configure_ops_log(log_dir) if log_dir is not None else None

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        *,
        notifier: Optional[NotifierProtocol] = None,
        log_dir: Optional[Path] = None,
    ) -> "BrainSession":
        """Build a session talking HTTP to config.api_url.

        Without a token_provider, the token from config is used.
        """
        if token_provider is None:
            token_provider = lambda: config.token  # noqa: E731
        client = ContentClient(config.api_url, token_provider, timeout=config.timeout)
        return cls(client, config=config, notifier=notifier, log_dir=log_dir)

    # -- Lifecycle --

    async def __aenter__(self) -> "BrainSession":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        """Tear down: cancel searches, stop polling, close the API client."""
        if self._closed:
            return
        self._closed = True
        await self.search_coordinator.close()
        await self.poller.stop()
        self.cache.clear()
        await self._api.close()
        if self._ops_log_handler is not None:
            logging.getLogger("brainly").removeHandler(self._ops_log_handler)
            self._ops_log_handler.close()
            self._ops_log_handler = None

    # -- Loading --

    async def load(self) -> list[Content]:
        """Initial load: fetch everything, then start background polling."""
        self.notifier.notify(NotificationKind.LOADING, LOADING_CONTENT)
        try:
            contents = await self._api.list_content()
        except ApiError as e:
            logger.warning("Initial load failed: %s", e)
            self.notifier.notify(
                NotificationKind.ERROR,
                AUTH_ERROR if isinstance(e, AuthenticationError) else NETWORK_ERROR,
            )
            raise
        self.store.replace_all(contents)
        self.poller.start()
        logger.info("Loaded %d item(s)", len(contents))
        return contents

    async def refresh(self, *, silent: bool = True) -> list[Content]:
        """Re-fetch everything. Non-silent refreshes report failures."""
        try:
            contents = await self._api.list_content()
        except ApiError as e:
            if not silent:
                self.notifier.notify(NotificationKind.ERROR, NETWORK_ERROR)
            logger.info("Refresh failed: %s", e)
            raise
        self.store.replace_all(contents)
        return contents

    # -- Search --

    async def search(self, query: str) -> Optional[SearchOutcome]:
        """Explicit search (submit key / button)."""
        return await self.search_coordinator.submit(query)

    def query_changed(self, query: str) -> None:
        """Search-box edit: debounced search."""
        self.search_coordinator.on_query_changed(query)

    # -- Mutations --

    def contents(self) -> list[Content]:
        """What to display: store contents with pending mutations applied."""
        return self.mutations.effective_contents()

    def is_pending(self, key: str) -> bool:
        return self.mutations.is_pending(key)

    async def create_content(
        self,
        kind: ContentKind,
        *,
        title: str = "",
        body: str = "",
        link: str = "",
        tags: Optional[list[str]] = None,
        due_date: str = "",
        temp_id: Optional[str] = None,
    ) -> Content:
        """Create content, showing a pending draft until the server confirms."""
        kind = ContentKind(kind)
        temp_id = temp_id or f"{TEMP_ID_PREFIX}{uuid.uuid4().hex[:12]}"
        now = utc_now()
        draft = Content(
            id=temp_id,
            kind=kind,
            title=title,
            body=body,
            link=link,
            tags=tuple(tags or ()),
            due_date=due_date,
            status=ProcessingStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        partial = {"type": kind.value, **to_wire({
            "title": title, "body": body, "link": link, "tags": draft.tags,
        })}
        if kind == ContentKind.REMINDER:
            partial.update(to_wire({"due_date": due_date, "is_completed": False}))

        async def operation() -> Content:
            return await self._api.create_content(partial)

        return await self.mutations.create(temp_id, draft, operation)

    async def update_content(self, content_id: str, **changes: Any) -> Content:
        """Update fields of one item (title, body, tags, ...)."""
        partial = to_wire(changes)

        async def operation() -> Content:
            return await self._api.update_content(content_id, partial)

        return await self.mutations.update(content_id, changes, operation)

    async def delete_content(self, content_id: str) -> None:
        """Delete one item; cached searches that may show it are dropped."""

        async def operation() -> None:
            await self._api.delete_content(content_id)

        await self.mutations.delete(
            content_id, operation, on_success=lambda _: self.cache.clear(),
        )
