"""
Purpose: Per-platform request ceiling shared by every worker of a poll run.
Constraints: Local coordination only; the requests themselves do the network I/O.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from concurrent.futures import Future
from typing import Any, Callable, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_STOP = object()


class RateLimiter:
    """Single admission point that starts at most one request per `interval` seconds.

    Callers on any thread hand a request callable to `submit`. A background
    admission thread runs the requests in FIFO order, spacing their start
    times by at least `interval`, and returns each result (or re-raises its
    error) to the caller that submitted it. There is no burst capacity.

    An interval of 0 disables limiting: `submit` just calls the request.
    """

    def __init__(
        self,
        interval: float = 1.0,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.interval = max(0.0, float(interval or 0.0))
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._slot_lock = threading.Lock()
        self._queue: Optional["queue.Queue[Any]"] = None
        self._thread: Optional[threading.Thread] = None
        self._next_slot = 0.0
        self.admitted = 0

    @property
    def enabled(self) -> bool:
        return self.interval > 0

    @property
    def running(self) -> bool:
        with self._lock:
            return self._thread is not None

    def start(self) -> "RateLimiter":
        if not self.enabled:
            return self
        with self._lock:
            self._start_locked()
        return self

    def stop(self, timeout: Optional[float] = None) -> None:
        with self._lock:
            thread, work = self._thread, self._queue
            self._thread = None
            self._queue = None
            if work is not None:
                # Requests already queued are still admitted before the thread exits.
                work.put(_STOP)
        if thread is not None:
            thread.join(timeout)
            logger.debug("Rate limiter %s stopped after %d admissions", self.name, self.admitted)

    def __enter__(self) -> "RateLimiter":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def submit(self, request: Callable[[], T]) -> T:
        """Block until `request` has been admitted and run; return its result."""
        if not self.enabled:
            return request()
        future: "Future[T]" = Future()
        with self._lock:
            work = self._start_locked()
            work.put((request, future))
        return future.result()

    # Helpers
    def _start_locked(self) -> "queue.Queue[Any]":
        if self._thread is None or self._queue is None:
            self._queue = queue.Queue()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._queue,),
                daemon=True,
                name=f"rate-limiter-{self.name}",
            )
            self._thread.start()
            logger.debug("Rate limiter %s started (interval %.2fs)", self.name, self.interval)
        return self._queue

    def _admit(self) -> None:
        with self._slot_lock:
            wait = self._next_slot - self._clock()
            if wait > 0:
                self._sleep(wait)
            started = self._clock()
            self._next_slot = started + self.interval
            self.admitted += 1

    def _run(self, work: "queue.Queue[Any]") -> None:
        while True:
            item = work.get()
            if item is _STOP:
                return
            request, future = item  # type: Tuple[Callable[[], Any], Future]
            if not future.set_running_or_notify_cancel():
                continue
            self._admit()
            try:
                result = request()
            except BaseException as exc:  # delivered to the submitting thread
                future.set_exception(exc)
            else:
                future.set_result(result)
