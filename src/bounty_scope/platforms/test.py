"""
Purpose: Synthetic platform with deterministic data for tests and dry runs.
Constraints: No network; failures and latency are programmed by the caller.
"""

from __future__ import annotations

import threading
import time
from typing import Dict, Iterable, List, Mapping, Optional

from bounty_scope.core.errors import FetchError
from bounty_scope.core.models import AuthConfig, PollOptions, ProgramData, ScopeElement
from bounty_scope.core.rate_limiter import RateLimiter
from bounty_scope.platforms.base import Poller, dedupe

PROGRAM_A = "https://example.com/program/a"
PROGRAM_B = "https://example.com/program/b"


def default_programs() -> Dict[str, ProgramData]:
    return {
        PROGRAM_A: ProgramData(
            url=PROGRAM_A,
            in_scope=[
                ScopeElement("https://lossslo.example.com/app", "app v2", "website"),
                ScopeElement("*.a.example.com", "wildcard", "website"),
                ScopeElement("new.a.example.com", "new host", "website"),
            ],
            out_of_scope=[
                ScopeElement("https://a.example.com/app", "app", "website"),
                ScopeElement("*.a.example.com", "wildcard", "website"),
            ],
        ),
        PROGRAM_B: ProgramData(
            url=PROGRAM_B,
            in_scope=[ScopeElement("api.b.example.com", "api", "api")],
        ),
    }


class TestPoller(Poller):
    """Serves `programs` keyed by handle.

    `failures` maps a handle to the exception its fetch raises. Handles
    that are listed but have no program return an empty ProgramData, the
    same as a program that was deleted upstream. When a limiter is given,
    every fetch is admitted through it.
    """

    __test__ = False  # keep pytest from collecting this class
    name = "test"

    def __init__(
        self,
        programs: Optional[Mapping[str, ProgramData]] = None,
        *,
        handles: Optional[Iterable[str]] = None,
        failures: Optional[Mapping[str, BaseException]] = None,
        delay: float = 0.0,
        limiter: Optional[RateLimiter] = None,
    ):
        super().__init__(limiter=limiter)
        self.programs: Dict[str, ProgramData] = dict(default_programs() if programs is None else programs)
        self.handles = list(handles) if handles is not None else list(self.programs)
        self.failures: Dict[str, BaseException] = dict(failures or {})
        self.delay = delay
        self.list_error: Optional[BaseException] = None
        self._lock = threading.Lock()
        self.fetched: List[str] = []
        self.fetch_starts: List[float] = []

    def authenticate(self, credentials: AuthConfig) -> None:
        self.authenticated = True

    def list_program_handles(self, options: PollOptions) -> List[str]:
        if self.list_error is not None:
            raise self.list_error
        return dedupe(self.handles)

    def fetch_program_scope(self, handle: str, options: PollOptions) -> ProgramData:
        if self.limiter is not None:
            return self.limiter.submit(lambda: self._fetch(handle))
        return self._fetch(handle)

    # Helpers
    def _fetch(self, handle: str) -> ProgramData:
        with self._lock:
            self.fetched.append(handle)
            self.fetch_starts.append(time.monotonic())
        if self.delay:
            time.sleep(self.delay)
        failure = self.failures.get(handle)
        if failure is not None:
            raise failure
        program = self.programs.get(handle)
        if program is None:
            return ProgramData(url=handle)
        if program.url != handle:
            raise FetchError(f"test: program {program.url} registered under {handle}", handle=handle)
        return program
