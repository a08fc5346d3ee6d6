"""
Cooperative cancellation tokens.

A token is threaded through an async call chain. Cancelling it runs the
registered callbacks (e.g. cancelling the task that owns a transport
request), and code after every suspension point checks `cancelled` before
touching shared state. Checking the token, not arrival order, is what
keeps a superseded pipeline from publishing late results.
"""

import logging
from typing import Callable

logger = logging.getLogger(__name__)


class CancellationToken:
    """One-shot cancellation flag with callbacks."""

    def __init__(self, name: str = ""):
        self.name = name
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run callback on cancel. Runs immediately if already cancelled."""
        if self._cancelled:
            callback()
            return
        self._callbacks.append(callback)

    def cancel(self) -> bool:
        """Cancel the token. Returns False if it was already cancelled."""
        if self._cancelled:
            return False
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                # One bad callback must not stop the others
                logger.warning("Cancellation callback failed for %s: %s", self.name or "token", e)
        return True

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "active"
        return f"CancellationToken({self.name!r}, {state})"
