"""
Purpose: Map platform names to poller classes and build configured instances.
Constraints: Construction only; no network I/O.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Type

from bounty_scope.core.rate_limiter import RateLimiter
from bounty_scope.core.utils.http import HttpClient
from bounty_scope.core.utils.retry import RetryPolicy
from bounty_scope.platforms.base import Poller
from bounty_scope.platforms.bugcrowd import BugcrowdPoller
from bounty_scope.platforms.hackerone import HackerOnePoller
from bounty_scope.platforms.immunefi import ImmunefiPoller
from bounty_scope.platforms.intigriti import IntigritiPoller
from bounty_scope.platforms.test import TestPoller
from bounty_scope.platforms.yeswehack import YesWeHackPoller

logger = logging.getLogger(__name__)


class PlatformRegistry:
    """Registry of poller classes by platform name."""

    def __init__(self):
        self._pollers: Dict[str, Type[Poller]] = {}

    def register(self, name: str, poller_cls: Type[Poller]) -> None:
        self._pollers[name] = poller_cls
        logger.debug("Registered poller: %s", name)

    def get(self, name: str) -> Optional[Type[Poller]]:
        return self._pollers.get(name)

    def list_platforms(self) -> List[str]:
        return list(self._pollers.keys())

    def create(
        self,
        name: str,
        *,
        interval: Optional[float] = None,
        policy: Optional[RetryPolicy] = None,
        proxy: str = "",
    ) -> Poller:
        """Build a poller whose HTTP client owns a limiter for `interval`."""
        poller_cls = self.get(name)
        if poller_cls is None:
            raise ValueError(f"Unknown platform: {name} (known: {', '.join(self.list_platforms())})")
        if interval is None:
            interval = poller_cls.default_interval
        limiter = RateLimiter(interval=interval, name=name)
        if poller_cls is TestPoller:
            return TestPoller(limiter=limiter if limiter.enabled else None)
        http = HttpClient(policy=policy, limiter=limiter if limiter.enabled else None, proxy=proxy)
        return poller_cls(http)


_registry = PlatformRegistry()


def get_platform_registry() -> PlatformRegistry:
    return _registry


def init_platforms() -> PlatformRegistry:
    for poller_cls in (
        HackerOnePoller,
        BugcrowdPoller,
        IntigritiPoller,
        YesWeHackPoller,
        ImmunefiPoller,
        TestPoller,
    ):
        _registry.register(poller_cls.name, poller_cls)
    return _registry
