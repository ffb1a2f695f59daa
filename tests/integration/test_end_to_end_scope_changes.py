import io

from apps.cli.cli import main
from bounty_scope.core.models import ChangeKind, PollOptions, ProgramData, Snapshot
from bounty_scope.core.storage.snapshot_store import JsonSnapshotStore
from bounty_scope.output import ScopeEmitter
from bounty_scope.platforms.test import PROGRAM_A, PROGRAM_B, TestPoller, default_programs
from bounty_scope.polling.runner import poll_platform


def _previous_snapshot():
    a = default_programs()[PROGRAM_A]
    old_a = ProgramData(
        url=PROGRAM_A,
        in_scope=[e for e in a.in_scope if e.target != "new.a.example.com"],
        out_of_scope=a.out_of_scope,
    )
    return Snapshot.from_programs("test", [old_a], {PROGRAM_A: PROGRAM_A})


def test_new_target_and_new_program_are_reported(tmp_path):
    store = JsonSnapshotStore(tmp_path / "snapshots")
    store.save_snapshot("test", _previous_snapshot())
    stream = io.StringIO()

    result = poll_platform(
        TestPoller(),
        PollOptions(),
        store=store,
        emitter=ScopeEmitter(stream=stream),
        change_log=tmp_path / "changes.csv",
    )

    assert result.ok
    assert sorted((e.kind, e.program_url, e.target) for e in result.events) == [
        (ChangeKind.ADDED, PROGRAM_A, "new.a.example.com"),
        (ChangeKind.ADDED, PROGRAM_B, "api.b.example.com"),
    ]
    assert sorted(stream.getvalue().splitlines()) == [
        f"+  test  {PROGRAM_A}  new.a.example.com",
        f"+  test  {PROGRAM_B}  api.b.example.com",
    ]

    # a second identical poll is quiet
    again = poll_platform(TestPoller(), PollOptions(), store=store)
    assert again.events == []


def test_cli_poll_then_changes(tmp_path, capsys):
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    store_dir = tmp_path / "snapshots"
    JsonSnapshotStore(store_dir).save_snapshot("test", _previous_snapshot())
    change_log = tmp_path / "changes.csv"

    code = main(
        [
            "--config-dir", str(config_dir),
            "poll", "--platform", "test",
            "--store-dir", str(store_dir),
            "--change-log", str(change_log),
        ]
    )
    out = capsys.readouterr().out.splitlines()
    assert code == 0
    assert f"+  test  {PROGRAM_B}  api.b.example.com" in out

    assert main(["--config-dir", str(config_dir), "changes", "--change-log", str(change_log)]) == 0
    logged = capsys.readouterr().out.splitlines()
    assert len(logged) == 2
    assert all("added" in line for line in logged)
