"""
In-memory store of the current user's content.

The store is the single source of truth for what is displayed. It is
changed only by a full refresh (initial load, background poll) and by
reconciliation of settled mutations. Listeners are called synchronously
after every change.
"""

import logging
from collections import Counter
from typing import Callable, Iterable, Iterator, Optional

from .errors import ContentInvariantError
from .types import Content, ContentKind, check_status_transition

logger = logging.getLogger(__name__)

StoreListener = Callable[["ContentStore"], None]


class ContentStore:
    """Ordered id -> Content mapping with change listeners."""

    def __init__(self, contents: Optional[Iterable[Content]] = None):
        self._contents: dict[str, Content] = {}
        self._listeners: list[StoreListener] = []
        self._version = 0
        if contents:
            for content in contents:
                self._contents[content.id] = content

    # -- Reads --

    def get(self, content_id: str) -> Optional[Content]:
        return self._contents.get(content_id)

    def contents(self) -> list[Content]:
        return list(self._contents.values())

    def filter(self, kind: Optional[ContentKind] = None) -> list[Content]:
        """Contents of one kind (all when kind is None)."""
        if kind is None:
            return self.contents()
        kind = ContentKind(kind)
        return [c for c in self._contents.values() if c.kind == kind]

    def counts_by_kind(self) -> dict[ContentKind, int]:
        return dict(Counter(c.kind for c in self._contents.values()))

    def has_transient(self) -> bool:
        """True if any item is still pending or processing on the server."""
        return any(c.is_transient for c in self._contents.values())

    @property
    def version(self) -> int:
        """Incremented on every change."""
        return self._version

    def __len__(self) -> int:
        return len(self._contents)

    def __contains__(self, content_id: object) -> bool:
        return content_id in self._contents

    def __iter__(self) -> Iterator[Content]:
        return iter(list(self._contents.values()))

    # -- Writes --

    def _check(self, new: Content, *, authoritative: bool = False) -> None:
        old = self._contents.get(new.id)
        if old is None:
            return
        if old.kind != new.kind:
            raise ContentInvariantError(
                f"Content kind is immutable: {new.id} is {old.kind.value}, got {new.kind.value}"
            )
        if not authoritative:
            check_status_transition(old.status, new.status)

    def replace_all(self, contents: Iterable[Content]) -> None:
        """Replace the whole collection (initial load, refresh).

        Validates every entry against the current one before applying,
        so a rejected refresh leaves the store untouched.
        """
        new: dict[str, Content] = {}
        for content in contents:
            self._check(content)
            new[content.id] = content
        self._contents = new
        self._changed()

    def upsert(self, content: Content, *, authoritative: bool = False) -> None:
        """Insert or replace one entity.

        An authoritative write is the server's reply to a settled mutation.
        It may move status backwards past a refresh that landed while the
        call was in flight; the kind must still match.
        """
        self._check(content, authoritative=authoritative)
        self._contents[content.id] = content
        self._changed()

    def remove(self, content_id: str) -> Optional[Content]:
        """Remove one entity. Returns it, or None if absent."""
        removed = self._contents.pop(content_id, None)
        if removed is not None:
            self._changed()
        return removed

    # -- Listeners --

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register a change listener. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self) -> None:
        self._version += 1
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.warning("Content store listener failed: %s", e)
