"""
Purpose: Fetch every program of one platform with a bounded pool of worker threads.
Constraints: No diffing or persistence; results are ordered by completion.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from bounty_scope.core.errors import is_fatal
from bounty_scope.core.metrics import get_metrics
from bounty_scope.core.models import PollOptions, ProgramData
from bounty_scope.platforms.base import Poller, dedupe

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 5

_DONE = object()


class PollMode(str, Enum):
    BEST_EFFORT = "best_effort"
    FAIL_FAST = "fail_fast"


@dataclass(frozen=True)
class ProgramFailure:
    handle: str
    error: BaseException


@dataclass
class PollResult:
    programs: List[ProgramData] = field(default_factory=list)
    handles: List[str] = field(default_factory=list)
    failures: List[ProgramFailure] = field(default_factory=list)
    error: Optional[BaseException] = None
    # program url -> handle it was fetched under
    program_handles: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def failed_handles(self) -> List[str]:
        return [f.handle for f in self.failures]


class _FirstError:
    """Single-assignment slot; later errors are dropped."""

    def __init__(self):
        self._lock = threading.Lock()
        self.value: Optional[BaseException] = None

    def set(self, exc: BaseException) -> bool:
        with self._lock:
            if self.value is not None:
                return False
            self.value = exc
            return True


def resolve_handles(
    poller: Poller, options: PollOptions, known_handles: Iterable[str] = ()
) -> Tuple[List[str], List[str]]:
    """Return (listing, handles to fetch).

    The handles to fetch are the platform listing first, then externally
    known handles the listing no longer has.
    """
    listed = dedupe(poller.list_program_handles(options))
    return listed, dedupe(listed + list(known_handles))


class PollOrchestrator:
    """Runs `fetch_program_scope` for a list of handles on `concurrency` threads.

    Best-effort mode records per-program failures and keeps going. Fail-fast
    mode stops dispatching after the first error. Auth and ban errors abort
    the run in both modes. When `on_program` is given, each program is passed
    to it as soon as it completes (streaming) and is still aggregated.
    """

    def __init__(
        self,
        poller: Poller,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        mode: PollMode = PollMode.BEST_EFFORT,
        on_program: Optional[Callable[[ProgramData], None]] = None,
    ):
        self.poller = poller
        self.concurrency = max(1, int(concurrency or DEFAULT_CONCURRENCY))
        self.mode = mode
        self.on_program = on_program

    def run(self, handles: Iterable[str], options: PollOptions) -> PollResult:
        handles = dedupe(handles)
        result = PollResult(handles=list(handles))
        if not handles:
            return result

        work: "queue.Queue[object]" = queue.Queue(maxsize=self.concurrency * 2)
        lock = threading.Lock()
        abort = threading.Event()
        first_error = _FirstError()
        metrics = get_metrics()
        platform = self.poller.name

        def _fail(handle: str, exc: BaseException) -> None:
            metrics.record_fetch(platform, success=False)
            if is_fatal(exc) or self.mode is PollMode.FAIL_FAST:
                if first_error.set(exc):
                    logger.error("%s: aborting run after %s: %s", platform, handle, exc)
                abort.set()
                return
            logger.warning("%s: failed to fetch %s: %s", platform, handle, exc)
            with lock:
                result.failures.append(ProgramFailure(handle, exc))

        def _worker() -> None:
            while True:
                handle = work.get()
                if handle is _DONE:
                    return
                if abort.is_set():
                    continue
                try:
                    program = self.poller.fetch_program_scope(handle, options)
                except Exception as exc:
                    _fail(handle, exc)
                    continue
                metrics.record_fetch(platform, success=True)
                with lock:
                    result.programs.append(program)
                    result.program_handles[program.url] = handle
                if self.on_program is not None:
                    # The fetch succeeded; a presentation error does not make it a failure.
                    try:
                        self.on_program(program)
                    except Exception as exc:
                        metrics.record_error(f"emit.{platform}")
                        logger.error("%s: could not emit %s: %s", platform, program.url, exc)

        limiter = self.poller.limiter
        if limiter is not None:
            limiter.start()
        workers = [
            threading.Thread(target=_worker, name=f"poll-{platform}-{i}", daemon=True)
            for i in range(min(self.concurrency, len(handles)))
        ]
        try:
            for t in workers:
                t.start()
            for handle in handles:
                if abort.is_set():
                    break
                work.put(handle)
            for _ in workers:
                work.put(_DONE)
            for t in workers:
                t.join()
        finally:
            if limiter is not None:
                limiter.stop()

        result.error = first_error.value
        logger.info(
            "%s: fetched %d/%d programs (%d failures)",
            platform,
            len(result.programs),
            len(handles),
            len(result.failures),
        )
        return result
