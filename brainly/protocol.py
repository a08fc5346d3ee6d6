"""
Protocol definitions for the boundaries of the core.

Defines interface contracts for:
- ContentApiProtocol: the remote content/search service
  (ContentClient over HTTP, fakes in tests)
- NotifierProtocol: the UI notification collaborator
"""

from typing import Any, Protocol, runtime_checkable

from .notify import NotificationKind
from .types import Content


@runtime_checkable
class ContentApiProtocol(Protocol):
    """
    The remote operations the core depends on.

    Every call may raise ApiError (or a subclass). Implementations must
    treat a missing credential as an immediate AuthenticationError.
    """

    # -- Search --

    async def search(self, query: str, limit: int) -> list[Content]:
        """Retrieve up to `limit` scored results, best first."""
        ...

    async def summarize(self, query: str, context: list[dict[str, Any]]) -> str:
        """Generate an answer for `query` from projected results.

        Raises ServiceOverloadedError when the summarizer is overloaded.
        """
        ...

    # -- Content --

    async def list_content(self) -> list[Content]: ...

    async def create_content(self, partial: dict[str, Any]) -> Content: ...

    async def update_content(self, content_id: str, partial: dict[str, Any]) -> Content: ...

    async def delete_content(self, content_id: str) -> None: ...

    # -- Lifecycle --

    async def close(self) -> None: ...


@runtime_checkable
class NotifierProtocol(Protocol):
    """Consumer of notify(kind, message) events."""

    def notify(self, kind: NotificationKind, message: str) -> None: ...
