"""
Purpose: In-process counters for poll runs, appended to a JSON-lines file on demand.
Constraints: Counting only; no rates, no exporters.
"""

from __future__ import annotations

import json
import threading
import time
from collections import Counter
from pathlib import Path
from typing import Any, Dict, Optional


class MetricsCollector:
    """Thread-safe named counters.

    Names are dotted: `fetch.<platform>`, `change.<platform>.<kind>`,
    `emit.<platform>`, `log.<level>`. Each `record` bumps the total for the
    name and, when `success` is false, its error count as well.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._started = time.time()
        self._totals: Counter = Counter()
        self._errors: Counter = Counter()

    def record(self, name: str, success: bool = True) -> None:
        with self._lock:
            self._totals[name] += 1
            if not success:
                self._errors[name] += 1

    def record_error(self, name: str = "error") -> None:
        self.record(name, success=False)

    def record_fetch(self, platform: str, success: bool = True) -> None:
        self.record(f"fetch.{platform}", success=success)

    def record_change(self, platform: str, kind: str) -> None:
        self.record(f"change.{platform}.{kind}")

    def total(self, name: str) -> int:
        with self._lock:
            return self._totals[name]

    def errors(self, name: str) -> int:
        with self._lock:
            return self._errors[name]

    def platform_summary(self) -> Dict[str, Dict[str, Any]]:
        """Fetch and change counts grouped by platform."""
        with self._lock:
            totals = dict(self._totals)
            errors = dict(self._errors)
        summary: Dict[str, Dict[str, Any]] = {}
        for name, count in totals.items():
            parts = name.split(".")
            if parts[0] == "fetch" and len(parts) == 2:
                entry = summary.setdefault(parts[1], {"fetched": 0, "failed": 0, "changes": {}})
                entry["failed"] = errors.get(name, 0)
                entry["fetched"] = count - entry["failed"]
            elif parts[0] == "change" and len(parts) == 3:
                entry = summary.setdefault(parts[1], {"fetched": 0, "failed": 0, "changes": {}})
                entry["changes"][parts[2]] = count
        return summary

    def snapshot(self) -> Dict[str, Any]:
        now = time.time()
        with self._lock:
            totals = dict(self._totals)
            errors = dict(self._errors)
        return {
            "timestamp_utc": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(now)),
            "uptime_seconds": int(now - self._started),
            "totals": totals,
            "errors": errors,
            "platforms": self.platform_summary(),
        }

    def write_snapshot(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(self.snapshot(), sort_keys=True) + "\n")


_metrics: Optional[MetricsCollector] = None
_metrics_lock = threading.Lock()


def get_metrics() -> MetricsCollector:
    """Process-wide collector shared by the orchestrator, the runner and the log handler."""
    global _metrics
    with _metrics_lock:
        if _metrics is None:
            _metrics = MetricsCollector()
        return _metrics
