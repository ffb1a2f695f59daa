"""
Purpose: Error taxonomy shared by pollers, the orchestrator and storage.
Constraints: Exception types only; no handling logic.
"""

from __future__ import annotations

from typing import Optional


class BountyScopeError(Exception):
    """Base class for every error raised by this package."""


class AuthError(BountyScopeError):
    """Credentials missing or rejected. Fatal for the platform run."""

    def __init__(self, message: str, platform: str = ""):
        super().__init__(message)
        self.platform = platform


class FetchError(BountyScopeError):
    """A listing or a single program fetch failed."""

    def __init__(self, message: str, handle: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.handle = handle
        self.status_code = status_code


class TransientHTTPError(FetchError):
    """Connection failure, 5xx or explicit rate-limit status; retried by the HTTP layer."""


class BannedError(FetchError):
    """The platform is actively blocking this client (WAF page, ban signature)."""


class StoreError(BountyScopeError):
    """Snapshot persistence failed."""


FATAL_ERRORS = (AuthError, BannedError)


def is_fatal(exc: BaseException) -> bool:
    """Return True when the error should stop the whole platform run."""
    return isinstance(exc, FATAL_ERRORS)
