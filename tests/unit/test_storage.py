import json
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

import pytest

from bounty_scope.core.errors import StoreError
from bounty_scope.core.models import ChangeEvent, ChangeKind, ProgramData, ScopeElement, Snapshot
from bounty_scope.core.storage.change_log import CHANGE_LOG_HEADER, append_changes, read_changes
from bounty_scope.core.storage.snapshot_store import JsonSnapshotStore


def _snapshot():
    program = ProgramData(
        url="https://hackerone.com/acme",
        in_scope=[ScopeElement("*.acme.com", "all hosts", "wildcard", is_bbp=True)],
        out_of_scope=[ScopeElement("blog.acme.com", "", "url")],
    )
    return Snapshot.from_programs("h1", [program], {"https://hackerone.com/acme": "acme"})


class JsonSnapshotStoreTests(unittest.TestCase):
    def test_missing_snapshot_loads_as_none(self):
        with TemporaryDirectory() as tmp:
            self.assertIsNone(JsonSnapshotStore(Path(tmp)).load_snapshot("h1"))

    def test_saved_snapshot_loads_back(self):
        with TemporaryDirectory() as tmp:
            store = JsonSnapshotStore(Path(tmp) / "snapshots")
            store.save_snapshot("h1", _snapshot())
            loaded = store.load_snapshot("h1")
            self.assertEqual(loaded.programs, _snapshot().programs)
            self.assertEqual(loaded.handle_for("https://hackerone.com/acme"), "acme")
            self.assertFalse(store.path_for("h1").with_suffix(".json.tmp").exists())

    def test_corrupt_snapshot_raises_store_error(self):
        with TemporaryDirectory() as tmp:
            store = JsonSnapshotStore(Path(tmp))
            store.path_for("h1").write_text("{not json", encoding="utf-8")
            with self.assertRaises(StoreError):
                store.load_snapshot("h1")
            store.path_for("bc").write_text("[]", encoding="utf-8")
            with self.assertRaises(StoreError):
                store.load_snapshot("bc")

    def test_saved_file_is_versioned(self):
        with TemporaryDirectory() as tmp:
            store = JsonSnapshotStore(Path(tmp))
            store.save_snapshot("h1", _snapshot())
            data = json.loads(store.path_for("h1").read_text(encoding="utf-8"))
            self.assertEqual(data["version"], 1)
            self.assertEqual(data["platform"], "h1")
            self.assertEqual(data["programs"][0]["handle"], "acme")


def test_lock_wraps_save_and_load(tmp_path):
    store = JsonSnapshotStore(tmp_path)
    with store.lock():
        store.save_snapshot("h1", _snapshot())
    with store.lock():
        assert store.load_snapshot("h1") is not None
    assert (tmp_path / ".lock").exists()


def test_change_log_appends_with_single_header(tmp_path):
    path = tmp_path / "logs" / "changes.csv"
    added = ChangeEvent(ChangeKind.ADDED, "h1", "https://hackerone.com/acme", "api.acme.com", "url", True,
                        new_value=ScopeElement("api.acme.com", "api"))
    gone = ChangeEvent(ChangeKind.PROGRAM_REMOVED, "bc", "https://bugcrowd.com/old")

    assert append_changes(path, [added]) == 1
    assert append_changes(path, [gone]) == 1

    lines = path.read_text(encoding="utf-8").splitlines()
    assert lines[0] == ",".join(CHANGE_LOG_HEADER)
    assert len(lines) == 3

    rows = read_changes(path)
    assert [r["kind"] for r in rows] == ["added", "program_removed"]
    assert rows[0]["new_description"] == "api"
    assert read_changes(path, platform="bc")[0]["program_url"] == "https://bugcrowd.com/old"
    assert read_changes(path, limit=1) == rows[-1:]
    assert read_changes(tmp_path / "missing.csv") == []


@pytest.mark.parametrize("limit,expected", [(0, 0), (5, 2), (None, 2)])
def test_read_changes_limit(tmp_path, limit, expected):
    path = tmp_path / "changes.csv"
    events = [ChangeEvent(ChangeKind.REMOVED, "it", "u", f"t{i}", "url", False) for i in range(2)]
    append_changes(path, events)
    assert len(read_changes(path, limit=limit)) == expected
