"""
Notification surface.

The core emits abstract notify(kind, message) events; a UI collaborator
(toasts, status line, CLI output) subscribes and renders them.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    kind: NotificationKind
    message: str


# Messages shared by the search pipeline and the session
SEARCH_STARTED = "Searching through your memories..."
SEARCH_COMPLETED = "Search completed!"
NETWORK_ERROR = "Network error. Please try again."
AUTH_ERROR = "Authentication failed. Please login again."
LOADING_CONTENT = "Loading your content..."


class Notifier:
    """Logs notifications and fans them out to subscribers."""

    def __init__(self):
        self._listeners: list[Callable[[Notification], None]] = []

    def subscribe(self, listener: Callable[[Notification], None]) -> Callable[[], None]:
        """Register a listener. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self, kind: NotificationKind, message: str) -> None:
        note = Notification(NotificationKind(kind), message)
        if note.kind == NotificationKind.ERROR:
            logger.warning("notify %s: %s", note.kind.value, message)
        else:
            logger.debug("notify %s: %s", note.kind.value, message)
        for listener in list(self._listeners):
            try:
                listener(note)
            except Exception as e:
                logger.warning("Notification listener failed: %s", e)

    def loading(self, message: str) -> None:
        self.notify(NotificationKind.LOADING, message)

    def success(self, message: str) -> None:
        self.notify(NotificationKind.SUCCESS, message)

    def error(self, message: str) -> None:
        self.notify(NotificationKind.ERROR, message)
