"""
Optimistic mutations over the content store.

A mutation registers a speculative overlay for its key immediately, then
awaits the remote call. On success the overlay is dropped and the
server's result is reconciled into the store; on failure the overlay is
dropped and the store is left exactly as it was. Either way the error or
result reaches the caller after bookkeeping, so call sites can chain
their own handling (close a dialog only on success, and so on).

While a key is pending, its effective value is the overlay; otherwise it
is the store's value. Nothing else is ever observable.

Overlapping mutations on the same key: the newer overlay replaces the
older one, and the older operation settling does not remove the newer
overlay. The store itself is last-writer-wins: whichever remote call
settles last decides the final value.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

from .content_store import ContentStore
from .notify import NotificationKind, Notifier
from .protocol import NotifierProtocol
from .types import Content

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _Deleted:
    """Speculative value of a pending delete."""

    _instance: Optional["_Deleted"] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "DELETED"

    def __bool__(self) -> bool:
        return False


DELETED = _Deleted()

Speculative = Union[Content, dict, _Deleted]

CREATE_SUCCESS = "Content added successfully"
CREATE_ERROR = "Failed to add content. Please try again."
UPDATE_SUCCESS = "Content updated successfully"
UPDATE_ERROR = "Failed to update content. Please try again."
DELETE_SUCCESS = "Content deleted successfully"
DELETE_ERROR = "Failed to delete content. Please try again."


def _same_item(content: Content, draft: Content) -> bool:
    if content.kind != draft.kind:
        return False
    if draft.link:
        return content.link == draft.link
    return content.title == draft.title and content.body == draft.body


@dataclass(frozen=True)
class PendingOperation:
    """One in-flight optimistic mutation.

    known_ids holds the store ids present when the mutation started.
    """
    key: str
    value: Speculative
    generation: int
    known_ids: frozenset[str] = frozenset()


class OptimisticMutationEngine:
    """Speculative overlays keyed by content id (or temporary id)."""

    def __init__(self, store: ContentStore, notifier: Optional[NotifierProtocol] = None):
        self._store = store
        self._notifier = notifier or Notifier()
        self._pending: dict[str, PendingOperation] = {}
        self._generation = 0

    # -- Queries --------------------------------------------------------------

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    @property
    def pending_keys(self) -> frozenset[str]:
        return frozenset(self._pending)

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

    def speculative_value(self, key: str) -> Optional[Speculative]:
        op = self._pending.get(key)
        return op.value if op is not None else None

    def effective(self, key: str) -> Optional[Speculative]:
        """Overlay if pending (None for a pending delete), else the store's value."""
        op = self._pending.get(key)
        if op is None:
            return self._store.get(key)
        if op.value is DELETED:
            return None
        return op.value

    def effective_contents(self) -> list[Content]:
        """Store contents with overlays applied, pending creations last.

        Partial (dict) overlays are shown as the stored entity with the
        changes applied. A creation draft is hidden once a new store entry
        matches it, so the item is not listed twice before the call settles.
        """
        view: list[Content] = []
        for content in self._store:
            op = self._pending.get(content.id)
            if op is None:
                view.append(content)
            elif op.value is DELETED:
                continue
            elif isinstance(op.value, Content):
                view.append(op.value)
            else:
                view.append(content.with_changes(**op.value))
        for key, op in self._pending.items():
            if key in self._store or not isinstance(op.value, Content):
                continue
            if self._arrived(op):
                continue
            view.append(op.value)
        return view

    def _arrived(self, op: PendingOperation) -> bool:
        """True if a refresh already brought in the item a pending create made."""
        return any(
            content.id not in op.known_ids and _same_item(content, op.value)
            for content in self._store
        )

    # -- Core -----------------------------------------------------------------

    def _register(self, key: str, value: Speculative) -> PendingOperation:
        self._generation += 1
        op = PendingOperation(
            key=key,
            value=value,
            generation=self._generation,
            known_ids=frozenset(c.id for c in self._store),
        )
        if key in self._pending:
            logger.debug("Replacing pending overlay for %s", key)
        self._pending[key] = op
        return op

    def _settle(self, op: PendingOperation) -> None:
        # Only drop the overlay this operation registered
        current = self._pending.get(op.key)
        if current is not None and current.generation == op.generation:
            del self._pending[op.key]

    def clear(self, key: str) -> None:
        """Forget any overlay for key without touching the store."""
        self._pending.pop(key, None)

    async def execute(
        self,
        key: str,
        speculative: Speculative,
        operation: Callable[[], Awaitable[T]],
        *,
        reconcile: Optional[Callable[[T], None]] = None,
        success_message: Optional[str] = None,
        error_message: Optional[str] = None,
        on_success: Optional[Callable[[T], Any]] = None,
        on_error: Optional[Callable[[BaseException], Any]] = None,
    ) -> T:
        """Run operation with speculative shown for key until it settles.

        Args:
            key: Content id, or a temporary id for creations
            speculative: Value shown while pending (Content, partial dict, DELETED)
            operation: Zero-argument coroutine function doing the remote call
            reconcile: Applies the authoritative result to the store
            success_message: Notified on success
            error_message: Notified on failure
            on_success: Called with the result after reconciliation
            on_error: Called with the exception before it is re-raised

        Returns:
            The operation's result

        Raises:
            Whatever the operation raised, after the overlay is removed;
            ContentInvariantError if the result cannot be reconciled
        """
        op = self._register(key, speculative)
        try:
            result = await operation()
        except BaseException as e:
            # Includes cancellation: the overlay must not outlive the call
            self._settle(op)
            if isinstance(e, Exception):
                logger.warning("Optimistic operation on %s failed: %s", key, e)
                if on_error is not None:
                    on_error(e)
                if error_message:
                    self._notifier.notify(NotificationKind.ERROR, error_message)
            raise

        self._settle(op)
        if reconcile is not None:
            try:
                reconcile(result)
            except Exception as e:
                logger.warning("Reconciling %s failed after the remote call succeeded: %s", key, e)
                if on_error is not None:
                    on_error(e)
                if error_message:
                    self._notifier.notify(NotificationKind.ERROR, error_message)
                raise
        if on_success is not None:
            on_success(result)
        if success_message:
            self._notifier.notify(NotificationKind.SUCCESS, success_message)
        return result

    # -- Content operations ---------------------------------------------------

    def _reconcile(self, content: Content) -> None:
        # The reply is newer than any refresh that landed mid-call
        self._store.upsert(content, authoritative=True)

    async def create(
        self,
        temp_id: str,
        draft: Content,
        operation: Callable[[], Awaitable[Content]],
        *,
        on_success: Optional[Callable[[Content], Any]] = None,
    ) -> Content:
        """Create content; the draft is shown under temp_id until it settles."""
        return await self.execute(
            temp_id,
            draft,
            operation,
            reconcile=self._reconcile,
            success_message=CREATE_SUCCESS,
            error_message=CREATE_ERROR,
            on_success=on_success,
        )

    async def update(
        self,
        content_id: str,
        changes: dict[str, Any],
        operation: Callable[[], Awaitable[Content]],
        *,
        on_success: Optional[Callable[[Content], Any]] = None,
    ) -> Content:
        """Update content; the server's value replaces the stored one on success."""
        current = self._store.get(content_id)
        # Raises ContentInvariantError up front for a kind change
        speculative: Speculative = current.with_changes(**changes) if current else dict(changes)
        return await self.execute(
            content_id,
            speculative,
            operation,
            reconcile=self._reconcile,
            success_message=UPDATE_SUCCESS,
            error_message=UPDATE_ERROR,
            on_success=on_success,
        )

    async def delete(
        self,
        content_id: str,
        operation: Callable[[], Awaitable[Any]],
        *,
        on_success: Optional[Callable[[Any], Any]] = None,
    ) -> None:
        """Delete content; hidden immediately, removed from the store on success."""
        await self.execute(
            content_id,
            DELETED,
            operation,
            reconcile=lambda _result: self._store.remove(content_id),
            success_message=DELETE_SUCCESS,
            error_message=DELETE_ERROR,
            on_success=on_success,
        )
