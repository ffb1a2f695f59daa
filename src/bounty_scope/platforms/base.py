"""
Purpose: Capability contract every platform adapter implements.
Constraints: Network I/O only; the rate limiter is the only shared state.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from bounty_scope.core.errors import AuthError, FetchError
from bounty_scope.core.models import AuthConfig, PollOptions, ProgramData, Snapshot
from bounty_scope.core.rate_limiter import RateLimiter
from bounty_scope.core.utils.http import HttpClient
from bounty_scope.core.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

# Statuses that mean the program is gone rather than the request failing.
GONE_STATUSES = frozenset({404, 410})


def dedupe(handles: Iterable[str]) -> List[str]:
    """Drop empty and repeated handles, keeping first-seen order."""
    seen = set()
    unique: List[str] = []
    for handle in handles:
        if handle and handle not in seen:
            seen.add(handle)
            unique.append(handle)
    return unique


class Poller(ABC):
    """One bug-bounty platform.

    Handles are opaque strings that stay stable for one poll cycle.
    `fetch_program_scope` must only ever return data for the handle it was
    given; a definitive 404/410 returns an empty ProgramData.
    """

    name: str = ""
    default_interval: float = 0.0

    def __init__(
        self,
        http: Optional[HttpClient] = None,
        *,
        limiter: Optional[RateLimiter] = None,
        policy: Optional[RetryPolicy] = None,
    ):
        self.http = http or HttpClient(policy=policy, limiter=limiter)
        self.authenticated = False

    @property
    def limiter(self) -> Optional[RateLimiter]:
        return self.http.limiter

    @abstractmethod
    def authenticate(self, credentials: AuthConfig) -> None:
        """Prepare the session. Idempotent. Raises AuthError."""

    @abstractmethod
    def list_program_handles(self, options: PollOptions) -> List[str]:
        """Return de-duplicated handles matching the platform-side filters."""

    @abstractmethod
    def fetch_program_scope(self, handle: str, options: PollOptions) -> ProgramData:
        """Return the scope of one program. Raises FetchError."""

    def program_url(self, handle: str) -> str:
        return handle

    def prime(self, previous: Optional[Snapshot]) -> None:
        """Seed per-handle state from the persisted snapshot before listing. No-op by default."""

    # Helpers
    def _require_token(self, credentials: AuthConfig) -> str:
        if not credentials.token:
            raise AuthError(f"{self.name}: no token configured", platform=self.name)
        if credentials.proxy:
            self.http.session.proxies.update({"http": credentials.proxy, "https": credentials.proxy})
        return credentials.token

    def _get_json(self, url: str, handle: str = ""):
        """GET a JSON document; 404/410 return None instead of raising."""
        resp = self.http.get(url)
        if resp.status_code in GONE_STATUSES and handle:
            logger.info("%s: program %s is gone (HTTP %d)", self.name, handle, resp.status_code)
            return None
        if resp.status_code != 200:
            raise FetchError(
                f"{self.name}: HTTP {resp.status_code} for {url}",
                handle=handle,
                status_code=resp.status_code,
            )
        try:
            data = resp.json()
        except ValueError as exc:
            raise FetchError(f"{self.name}: invalid JSON from {url}", handle=handle) from exc
        if not isinstance(data, dict):
            raise FetchError(f"{self.name}: unexpected payload from {url}", handle=handle)
        return data

    def _as_int(self, value, url: str) -> int:
        try:
            return int(value or 0)
        except (TypeError, ValueError) as exc:
            raise FetchError(f"{self.name}: bad page count {value!r} from {url}") from exc
