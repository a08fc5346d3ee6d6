"""
Brainly: search orchestration and optimistic mutation client for a
second-brain notes service.

Provides:
- Debounced, cancellable two-phase search (retrieval + AI summary)
- Time-bounded result cache and relevance filtering
- Optimistic create/update/delete with rollback
- Background polling while content is still being processed
"""

__version__ = "0.1.0"

from .content_store import ContentStore
from .errors import (
    ApiError,
    AuthenticationError,
    BrainlyError,
    ContentInvariantError,
    NetworkError,
    ServiceOverloadedError,
)
from .session import BrainSession
from .types import Content, ContentKind, ProcessingStatus

__all__ = [
    "ApiError",
    "AuthenticationError",
    "BrainSession",
    "BrainlyError",
    "Content",
    "ContentInvariantError",
    "ContentKind",
    "ContentStore",
    "NetworkError",
    "ProcessingStatus",
    "ServiceOverloadedError",
]
