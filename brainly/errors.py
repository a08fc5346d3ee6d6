"""
Error types and error logging utilities for brainly.

Logs full stack traces for debugging while showing clean messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .config import get_log_dir


class BrainlyError(Exception):
    """Base class for all brainly errors."""


class ApiError(BrainlyError):
    """Error communicating with the content API."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NetworkError(ApiError):
    """Transport-level failure: timeout, connection refused, reset."""


class AuthenticationError(ApiError):
    """Credential missing, expired or rejected."""


class ServiceOverloadedError(ApiError):
    """The backend (usually the summarizer) is temporarily overloaded."""


class ContentInvariantError(BrainlyError, ValueError):
    """A change would violate a content invariant (immutable kind, status order)."""


def _error_log_path() -> Path:
    """Resolve error log path, respecting BRAINLY_HOME."""
    return get_log_dir() / "brainly-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Can't write error log, don't crash over it
    return log_path
