"""
Purpose: Append change events to a CSV audit trail and read them back.
Constraints: Storage helper only; no diff logic.
"""

# Imports
import csv
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from bounty_scope.core.errors import StoreError
from bounty_scope.core.models import ChangeEvent

CHANGE_LOG_HEADER = [
    "timestamp_utc",
    "platform",
    "kind",
    "program_url",
    "target",
    "category",
    "in_scope",
    "old_description",
    "new_description",
]


# Helpers
def append_rows(path: Path, rows: Iterable[Mapping[str, Any]], header: Sequence[str]) -> int:
    path.parent.mkdir(parents=True, exist_ok=True)
    file_exists = path.exists() and path.stat().st_size > 0
    count = 0
    with path.open("a", newline="", encoding="utf-8") as csvfile:
        writer = csv.DictWriter(csvfile, fieldnames=header)
        if not file_exists:
            writer.writeheader()
        for row in rows:
            writer.writerow(row)
            count += 1
    return count


def event_row(event: ChangeEvent, timestamp: Optional[str] = None) -> Dict[str, Any]:
    return {
        "timestamp_utc": timestamp or datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "platform": event.platform,
        "kind": event.kind.value,
        "program_url": event.program_url,
        "target": event.target,
        "category": event.category,
        "in_scope": "1" if event.in_scope else "0",
        "old_description": event.old_value.description if event.old_value else "",
        "new_description": event.new_value.description if event.new_value else "",
    }


# Public API
def append_changes(path: Path, events: Iterable[ChangeEvent]) -> int:
    """Append one row per event; all rows of one call share a timestamp. Raises StoreError."""
    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    rows = [event_row(e, stamp) for e in events]
    try:
        return append_rows(path, rows, CHANGE_LOG_HEADER)
    except OSError as exc:
        raise StoreError(f"Could not append to change log {path}: {exc}") from exc


def read_changes(path: Path, platform: Optional[str] = None, limit: Optional[int] = None) -> List[Dict[str, str]]:
    """Return logged rows oldest first, optionally for one platform and only the last `limit`."""
    if not path.exists():
        return []
    with path.open("r", newline="", encoding="utf-8") as csvfile:
        rows = [row for row in csv.DictReader(csvfile) if not platform or row.get("platform") == platform]
    if limit is not None and limit >= 0:
        rows = rows[-limit:] if limit else []
    return rows
