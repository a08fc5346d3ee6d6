"""
Shared pytest fixtures for brainly tests.

Provides an in-memory fake of the content API so the search, mutation
and polling layers can be exercised without HTTP.
"""

import asyncio
import itertools
from typing import Any, Optional

import pytest

from brainly.notify import Notification, NotificationKind
from brainly.search_cache import normalize_query
from brainly.types import Content, ContentKind, ProcessingStatus


def make_content(
    id: str = "c1",
    kind: ContentKind = ContentKind.NOTE,
    title: str = "",
    score: Optional[float] = None,
    status: ProcessingStatus = ProcessingStatus.COMPLETED,
    **kwargs: Any,
) -> Content:
    """Create a test Content."""
    return Content(
        id=id,
        kind=kind,
        title=title or f"Title of {id}",
        score=score,
        status=status,
        created_at="2026-01-15T10:00:00",
        updated_at="2026-01-15T10:00:00",
        **kwargs,
    )


def scored(*scores: float) -> list[Content]:
    """Search results r1..rN with the given scores."""
    return [make_content(f"r{i}", score=s) for i, s in enumerate(scores, start=1)]


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingNotifier:
    """Notifier that keeps everything it was told."""

    def __init__(self):
        self.notifications: list[Notification] = []

    def notify(self, kind, message: str) -> None:
        self.notifications.append(Notification(NotificationKind(kind), message))

    def of_kind(self, kind: NotificationKind) -> list[str]:
        return [n.message for n in self.notifications if n.kind == kind]

    @property
    def errors(self) -> list[str]:
        return self.of_kind(NotificationKind.ERROR)

    @property
    def successes(self) -> list[str]:
        return self.of_kind(NotificationKind.SUCCESS)


class FakeContentApi:
    """
    In-memory ContentApiProtocol implementation.

    - search results are looked up by normalized query
      (falling back to default_results)
    - set *_error attributes to make a call raise
    - search_gates[query] blocks that search until the event is set
    - with ignore_cancel, a gated search keeps going after cancellation,
      like a transport that cannot abort a request
    """

    def __init__(self, contents: Optional[list[Content]] = None):
        self.contents: dict[str, Content] = {c.id: c for c in contents or []}
        self.search_results: dict[str, list[Content]] = {}
        self.default_results: list[Content] = []
        self.summary_text = "Summary"

        self.search_error: Optional[Exception] = None
        self.summarize_error: Optional[Exception] = None
        self.list_error: Optional[Exception] = None
        self.create_error: Optional[Exception] = None
        self.update_error: Optional[Exception] = None
        self.delete_error: Optional[Exception] = None

        self.search_gates: dict[str, asyncio.Event] = {}
        self.mutation_gate: Optional[asyncio.Event] = None
        self.ignore_cancel = False

        self.search_calls: list[tuple[str, int]] = []
        self.summarize_calls: list[tuple[str, list[dict]]] = []
        self.list_calls = 0
        self.create_calls: list[dict] = []
        self.update_calls: list[tuple[str, dict]] = []
        self.delete_calls: list[str] = []
        self.closed = False
        self._ids = itertools.count(1)

    async def search(self, query: str, limit: int) -> list[Content]:
        self.search_calls.append((query, limit))
        gate = self.search_gates.get(query)
        if gate is not None:
            try:
                await gate.wait()
            except asyncio.CancelledError:
                if not self.ignore_cancel:
                    raise
                await gate.wait()
        if self.search_error is not None:
            raise self.search_error
        results = self.search_results.get(normalize_query(query), self.default_results)
        return list(results)[:limit]

    async def summarize(self, query: str, context: list[dict]) -> str:
        self.summarize_calls.append((query, context))
        if self.summarize_error is not None:
            raise self.summarize_error
        return f"{self.summary_text}: {query}"

    async def list_content(self) -> list[Content]:
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        return list(self.contents.values())

    async def _wait_mutation(self) -> None:
        if self.mutation_gate is not None:
            await self.mutation_gate.wait()

    async def create_content(self, partial: dict) -> Content:
        self.create_calls.append(partial)
        await self._wait_mutation()
        if self.create_error is not None:
            raise self.create_error
        data = dict(partial)
        data["_id"] = f"srv-{next(self._ids)}"
        data.setdefault("processingStatus", "pending" if partial.get("link") else "completed")
        data["createdAt"] = data["updatedAt"] = "2026-02-01T09:00:00"
        content = Content.from_dict(data)
        self.contents[content.id] = content
        return content

    async def update_content(self, content_id: str, partial: dict) -> Content:
        self.update_calls.append((content_id, partial))
        await self._wait_mutation()
        if self.update_error is not None:
            raise self.update_error
        data = self.contents[content_id].to_dict()
        data.update(partial)
        data["updatedAt"] = "2026-02-01T09:30:00"
        content = Content.from_dict(data)
        self.contents[content_id] = content
        return content

    async def delete_content(self, content_id: str) -> None:
        self.delete_calls.append(content_id)
        await self._wait_mutation()
        if self.delete_error is not None:
            raise self.delete_error
        self.contents.pop(content_id, None)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def api():
    return FakeContentApi()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def clock():
    return FakeClock()
