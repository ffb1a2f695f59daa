import threading
import time

import pytest

from bounty_scope.core.rate_limiter import RateLimiter
from bounty_scope.core.models import PollOptions
from bounty_scope.platforms.test import TestPoller
from bounty_scope.polling.orchestrator import PollOrchestrator


def test_disabled_limiter_calls_through():
    rl = RateLimiter(interval=0)
    assert not rl.enabled
    assert rl.submit(lambda: 42) == 42
    assert not rl.running


def test_request_starts_are_spaced_by_interval():
    interval = 0.05
    rl = RateLimiter(interval=interval, name="spacing")
    starts = []
    lock = threading.Lock()

    def request():
        with lock:
            starts.append(time.monotonic())
        return True

    threads = [threading.Thread(target=rl.submit, args=(request,)) for _ in range(6)]
    with rl:
        for t in threads:
            t.start()
        for t in threads:
            t.join()

    assert len(starts) == 6
    starts.sort()
    gaps = [b - a for a, b in zip(starts, starts[1:])]
    assert min(gaps) >= interval * 0.9
    assert rl.admitted == 6


def test_requests_run_in_submission_order():
    rl = RateLimiter(interval=0.01)
    order = []
    with rl:
        for i in range(5):
            rl.submit(lambda i=i: order.append(i))
    assert order == [0, 1, 2, 3, 4]


def test_errors_reach_the_submitter():
    rl = RateLimiter(interval=0.01)

    def boom():
        raise RuntimeError("upstream")

    with rl:
        with pytest.raises(RuntimeError, match="upstream"):
            rl.submit(boom)
        assert rl.submit(lambda: "still running") == "still running"


def test_limiter_restarts_after_stop():
    rl = RateLimiter(interval=0.01)
    rl.start()
    assert rl.running
    rl.stop()
    assert not rl.running
    assert rl.submit(lambda: "again") == "again"
    assert rl.running
    rl.stop()


def test_fake_clock_waits_out_the_interval():
    now = [100.0]
    sleeps = []

    def sleep(seconds):
        sleeps.append(seconds)
        now[0] += seconds

    rl = RateLimiter(interval=2.0, clock=lambda: now[0], sleep=sleep)
    with rl:
        rl.submit(lambda: None)
        rl.submit(lambda: None)
    assert sleeps == [2.0]


def test_poll_through_limiter_respects_interval():
    interval = 0.03
    handles = [f"p{i}" for i in range(8)]
    poller = TestPoller(programs={}, handles=handles, limiter=RateLimiter(interval=interval, name="test"))
    PollOrchestrator(poller, concurrency=8).run(poller.handles, PollOptions())

    starts = sorted(poller.fetch_starts)
    assert len(starts) == 8
    gaps = [b - a for a, b in zip(starts, starts[1:])]
    assert min(gaps) >= interval * 0.9
    assert not poller.limiter.running
