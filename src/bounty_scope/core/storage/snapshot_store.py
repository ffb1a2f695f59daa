"""
Purpose: Persist one scope snapshot per platform between poll runs.
Constraints: Storage only; callers decide what to save and when.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from bounty_scope.core.errors import StoreError
from bounty_scope.core.models import Snapshot

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


class SnapshotStore(ABC):
    """Persistence contract used by the poll runner."""

    @abstractmethod
    def load_snapshot(self, platform: str) -> Optional[Snapshot]:
        """Return the persisted snapshot, or None when the platform was never polled."""

    @abstractmethod
    def save_snapshot(self, platform: str, snapshot: Snapshot) -> None:
        """Replace the persisted snapshot wholesale. Raises StoreError."""

    @contextmanager
    def lock(self) -> Iterator[None]:
        """Single-writer section; the default store needs none."""
        yield


class JsonSnapshotStore(SnapshotStore):
    """One `<platform>.json` file per platform under `root`."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def path_for(self, platform: str) -> Path:
        return self.root / f"{platform}.json"

    def load_snapshot(self, platform: str) -> Optional[Snapshot]:
        path = self.path_for(platform)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreError(f"Could not read snapshot {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StoreError(f"Snapshot file {path} should contain a JSON object")
        snapshot = Snapshot.from_dict(data)
        if not snapshot.platform:
            snapshot.platform = platform
        logger.debug("Loaded %d programs for %s from %s", snapshot.program_count, platform, path)
        return snapshot

    def save_snapshot(self, platform: str, snapshot: Snapshot) -> None:
        path = self.path_for(platform)
        payload = {"version": SNAPSHOT_VERSION, **snapshot.to_dict()}
        payload["platform"] = platform
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except OSError as exc:
            if tmp_path.exists():
                tmp_path.unlink()
            raise StoreError(f"Could not write snapshot {path}: {exc}") from exc
        logger.info("Saved %d programs for %s", snapshot.program_count, platform)

    @contextmanager
    def lock(self) -> Iterator[None]:
        """Exclusive flock on `<root>/.lock`; waits while another process holds it."""
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd = open(self.root / ".lock", "a+")
        except OSError as exc:
            raise StoreError(f"Could not open lock file in {self.root}: {exc}") from exc
        try:
            try:
                fcntl.flock(fd.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                logger.warning("Another process is writing to %s, waiting for the lock", self.root)
                fcntl.flock(fd.fileno(), fcntl.LOCK_EX)
            yield
        finally:
            fcntl.flock(fd.fileno(), fcntl.LOCK_UN)
            fd.close()
