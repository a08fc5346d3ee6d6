"""
Data types for saved content.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional
from urllib.parse import urlparse

from .errors import ContentInvariantError


# Summarizer context is capped per item
SUMMARY_BODY_LIMIT = 5000


class ContentKind(str, Enum):
    """Kind of saved item. Fixed at creation."""
    YOUTUBE = "youtube"
    TWITTER = "twitter"
    WEBSITE = "website"
    NOTE = "note"
    REMINDER = "reminder"

    @property
    def is_link(self) -> bool:
        return self in (ContentKind.YOUTUBE, ContentKind.TWITTER, ContentKind.WEBSITE)


class ProcessingStatus(str, Enum):
    """Server-side processing state (AI summary, metadata extraction)."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_transient(self) -> bool:
        return self in (ProcessingStatus.PENDING, ProcessingStatus.PROCESSING)


# Allowed forward moves. Same-status is always allowed.
# failed -> pending is the retry path.
_STATUS_TRANSITIONS = {
    ProcessingStatus.PENDING: {ProcessingStatus.PROCESSING, ProcessingStatus.COMPLETED, ProcessingStatus.FAILED},
    ProcessingStatus.PROCESSING: {ProcessingStatus.COMPLETED, ProcessingStatus.FAILED},
    ProcessingStatus.COMPLETED: set(),
    ProcessingStatus.FAILED: {ProcessingStatus.PENDING},
}


def check_status_transition(old: ProcessingStatus, new: ProcessingStatus) -> None:
    """Raise ContentInvariantError if old -> new moves processing backwards."""
    if old == new or new in _STATUS_TRANSITIONS[old]:
        return
    raise ContentInvariantError(
        f"Invalid processing status transition: {old.value} -> {new.value}"
    )


def utc_now() -> str:
    """Current UTC timestamp in canonical format: YYYY-MM-DDTHH:MM:SS.

    All timestamps are UTC, stored without timezone suffix.
    """
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")


def normalize_tags(tags: Optional[Iterable[str]]) -> tuple[str, ...]:
    """Strip, drop blanks and de-duplicate, keeping first-seen order."""
    if not tags:
        return ()
    seen: dict[str, None] = {}
    for tag in tags:
        tag = str(tag).strip()
        if tag and tag not in seen:
            seen[tag] = None
    return tuple(seen)


def detect_content_kind(url: str) -> Optional[ContentKind]:
    """Detect the content kind for a URL.

    YouTube and Twitter/X hosts get their own kind, any other http(s)
    URL is a website bookmark. Returns None for anything that isn't a URL.
    """
    if not url or not url.strip():
        return None
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return None
    host = parsed.hostname.lower()

    if host == "youtu.be" or host == "youtube.com" or host.endswith(".youtube.com"):
        return ContentKind.YOUTUBE
    if host in ("twitter.com", "x.com") or host.endswith((".twitter.com", ".x.com")):
        return ContentKind.TWITTER
    return ContentKind.WEBSITE


@dataclass(frozen=True)
class Content:
    """
    A saved item: link, bookmark, note or reminder.

    This is a read-only snapshot. Changes go through with_changes(),
    which returns a new Content and refuses to alter the kind.

    Attributes:
        id: Server identifier (or a temporary id for unsaved creations)
        kind: Content kind, immutable after creation
        title: Display title
        body: Free-text body (note text, extracted page text)
        summary: AI-generated summary, filled in by server processing
        tags: Ordered, unique tags
        status: Processing status
        created_at: ISO timestamp when created
        updated_at: ISO timestamp when last updated
        score: Relevance score (present only in search results)
    """
    id: str
    kind: ContentKind
    title: str = ""
    body: str = ""
    summary: str = ""
    tags: tuple[str, ...] = ()
    status: ProcessingStatus = ProcessingStatus.COMPLETED
    created_at: str = ""
    updated_at: str = ""
    score: Optional[float] = None
    link: str = ""
    due_date: str = ""
    is_completed: bool = False
    metadata: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self):
        # Coerce loose inputs so equality and hashing behave
        object.__setattr__(self, "kind", ContentKind(self.kind))
        object.__setattr__(self, "status", ProcessingStatus(self.status))
        object.__setattr__(self, "tags", normalize_tags(self.tags))

    @property
    def is_transient(self) -> bool:
        return self.status.is_transient

    def with_changes(self, **changes: Any) -> "Content":
        """Return a copy with changes applied. The kind cannot change."""
        if "kind" in changes and ContentKind(changes["kind"]) != self.kind:
            raise ContentInvariantError(
                f"Content kind is immutable: {self.id} is {self.kind.value}"
            )
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Content":
        """Build from the API's JSON shape."""
        try:
            content_id = data.get("_id") or data["id"]
            kind = ContentKind(data["type"])
        except (KeyError, ValueError) as e:
            raise ValueError(f"Malformed content record: {e}") from e

        score = data.get("score")
        return cls(
            id=str(content_id),
            kind=kind,
            title=data.get("title") or "",
            body=data.get("content") or "",
            summary=data.get("summary") or "",
            tags=tuple(data.get("tags") or ()),
            status=ProcessingStatus(data.get("processingStatus") or "completed"),
            created_at=data.get("createdAt") or "",
            updated_at=data.get("updatedAt") or "",
            score=float(score) if score is not None else None,
            link=data.get("link") or "",
            due_date=data.get("dueDate") or "",
            is_completed=bool(data.get("isCompleted", False)),
            metadata=dict(data.get("websiteMetadata") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the API's JSON shape, omitting empty optional fields."""
        d: dict[str, Any] = {
            "_id": self.id,
            "type": self.kind.value,
            "title": self.title,
            "tags": list(self.tags),
            "processingStatus": self.status.value,
        }
        if self.body:
            d["content"] = self.body
        if self.summary:
            d["summary"] = self.summary
        if self.created_at:
            d["createdAt"] = self.created_at
        if self.updated_at:
            d["updatedAt"] = self.updated_at
        if self.score is not None:
            d["score"] = self.score
        if self.link:
            d["link"] = self.link
        if self.kind == ContentKind.REMINDER:
            d["dueDate"] = self.due_date
            d["isCompleted"] = self.is_completed
        if self.metadata:
            d["websiteMetadata"] = dict(self.metadata)
        return d


def project_for_summary(content: Content, body_limit: int = SUMMARY_BODY_LIMIT) -> dict[str, Any]:
    """Trimmed projection of a search result sent to the summarizer."""
    return {
        "_id": content.id,
        "type": content.kind.value,
        "title": content.title,
        "content": content.body[:body_limit],
        "createdAt": content.created_at,
        "updatedAt": content.updated_at,
        "link": content.link,
    }
