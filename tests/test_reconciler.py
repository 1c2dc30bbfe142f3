"""Tests for the reconciliation pass."""

import os
from pathlib import Path

import pytest

from unitsync.errors import ErrorKind
from unitsync.fingerprint import fingerprint
from unitsync.reconciler import PassResult, Reconciler, sync_units


def write(path: Path, content: str) -> None:
    path.write_text(content)


@pytest.fixture
def reconciler(src_dir, dest_dir, manager):
    return Reconciler(src_dir, dest_dir, manager)


def test_lifecycle(src_dir, dest_dir, manager):
    """Create, resync, change and remove a unit across passes."""
    state = {}

    # zero units
    assert sync_units(src_dir, dest_dir, state, manager)
    assert manager.calls == []

    # create unit
    write(src_dir / "test1.service", "test1")
    assert sync_units(src_dir, dest_dir, state, manager)
    assert (dest_dir / "test1.service").read_text() == "test1"
    assert manager.last_call == ("ensure_running", "test1.service")
    assert state == {"test1.service": fingerprint(src_dir / "test1.service")}

    # sync unit no change
    assert sync_units(src_dir, dest_dir, state, manager)
    assert (dest_dir / "test1.service").exists()
    assert manager.actions == [("start", "test1.service")]

    # change unit
    write(src_dir / "test1.service", "test2")
    assert sync_units(src_dir, dest_dir, state, manager)
    assert (dest_dir / "test1.service").read_text() == "test2"
    assert manager.last_call == ("restart", "test1.service")
    assert state["test1.service"] == fingerprint(src_dir / "test1.service")

    # remove unit
    os.remove(src_dir / "test1.service")
    assert sync_units(src_dir, dest_dir, state, manager)
    assert not (dest_dir / "test1.service").exists()
    assert manager.last_call == ("ensure_stopped", "test1.service")
    assert state == {}


def test_scenario_action_counts(reconciler, src_dir, dest_dir, manager):
    assert reconciler.sync()
    assert reconciler.last_result.actions == []

    write(src_dir / "a.service", "X")
    assert reconciler.sync()
    assert manager.actions == [("start", "a.service")]
    assert reconciler.last_result.actions == [("wrote", "a.service"), ("started", "a.service")]

    assert reconciler.sync()
    assert manager.actions == [("start", "a.service")]
    assert reconciler.last_result.actions == []

    write(src_dir / "a.service", "Y")
    assert reconciler.sync()
    assert manager.actions[1:] == [("restart", "a.service")]
    assert (dest_dir / "a.service").read_text() == "Y"

    os.remove(src_dir / "a.service")
    assert reconciler.sync()
    assert manager.actions[2:] == [("stop", "a.service")]
    assert not (dest_dir / "a.service").exists()
    assert reconciler.state == {}


def test_idempotent_second_pass(reconciler, src_dir, dest_dir, manager):
    for name in ("a.service", "b.service", "c.timer"):
        write(src_dir / name, name)
    assert reconciler.sync()

    before_state = dict(reconciler.state)
    before_dest = {p.name: p.read_bytes() for p in dest_dir.iterdir()}
    before_actions = list(manager.actions)

    assert reconciler.sync()
    assert manager.actions == before_actions
    assert reconciler.state == before_state
    assert {p.name: p.read_bytes() for p in dest_dir.iterdir()} == before_dest


def test_convergence(reconciler, src_dir, dest_dir):
    write(src_dir / "a.service", "alpha")
    write(src_dir / "b.service", "beta")
    write(dest_dir / "b.service", "stale beta")

    assert reconciler.sync()
    assert set(reconciler.state) == {"a.service", "b.service"}
    for name, checksum in reconciler.state.items():
        assert fingerprint(dest_dir / name) == checksum == fingerprint(src_dir / name)


def test_existing_stale_destination_restarts_on_first_sight(reconciler, src_dir, dest_dir, manager):
    write(src_dir / "a.service", "new")
    write(dest_dir / "a.service", "old")

    assert reconciler.sync()
    assert manager.actions == [("restart", "a.service")]


def test_existing_matching_destination_is_ensured_running(reconciler, src_dir, dest_dir, manager):
    write(src_dir / "a.service", "same")
    write(dest_dir / "a.service", "same")
    manager.active.add("a.service")

    assert reconciler.sync()
    assert manager.actions == []
    assert reconciler.last_result.actions == []
    assert "a.service" in reconciler.state


def test_editor_artifacts_are_skipped(reconciler, src_dir, dest_dir, manager):
    write(src_dir / ".a.service.swp", "swap")
    write(src_dir / "a.service~", "backup")
    write(src_dir / "a.service", "real")

    assert reconciler.sync()
    assert sorted(p.name for p in dest_dir.iterdir()) == ["a.service"]
    assert list(reconciler.state) == ["a.service"]
    assert all(unit == "a.service" for _, unit in manager.calls)


def test_subdirectories_are_skipped(reconciler, src_dir, dest_dir, manager):
    (src_dir / "drop-in.d").mkdir()

    assert reconciler.sync()
    assert manager.calls == []
    assert list(dest_dir.iterdir()) == []


def test_failure_isolation(reconciler, src_dir, dest_dir, manager):
    write(src_dir / "a.service", "A")
    write(src_dir / "b.service", "B")
    manager.failures["ensure_running"].add("a.service")

    assert not reconciler.sync()
    assert "a.service" not in reconciler.state
    assert "b.service" in reconciler.state
    assert ("start", "b.service") in manager.actions

    errors = reconciler.last_result.errors
    assert len(errors) == 1
    assert errors[0].kind == ErrorKind.CONTROL
    assert errors[0].unit == "a.service"

    # retried on the next pass once the manager recovers
    manager.failures["ensure_running"].clear()
    assert reconciler.sync()
    assert "a.service" in reconciler.state


def test_failed_restart_is_retried(reconciler, src_dir, dest_dir, manager):
    write(src_dir / "a.service", "v1")
    assert reconciler.sync()
    old = reconciler.state["a.service"]

    write(src_dir / "a.service", "v2")
    manager.failures["restart"].add("a.service")
    assert not reconciler.sync()
    # the copy happened, the state did not move
    assert (dest_dir / "a.service").read_text() == "v2"
    assert reconciler.state["a.service"] == old

    manager.failures["restart"].clear()
    assert reconciler.sync()
    assert manager.actions[-1] == ("restart", "a.service")
    assert reconciler.state["a.service"] == fingerprint(src_dir / "a.service")


def test_stop_failure_keeps_state_entry(reconciler, src_dir, dest_dir, manager):
    write(src_dir / "a.service", "A")
    assert reconciler.sync()

    os.remove(src_dir / "a.service")
    manager.failures["ensure_stopped"].add("a.service")
    assert not reconciler.sync()
    assert "a.service" in reconciler.state
    assert (dest_dir / "a.service").exists()

    manager.failures["ensure_stopped"].clear()
    assert reconciler.sync()
    assert reconciler.state == {}
    assert manager.actions[-1] == ("stop", "a.service")


def test_removed_destination_copy_is_not_an_error(reconciler, src_dir, dest_dir, manager):
    write(src_dir / "a.service", "A")
    assert reconciler.sync()

    os.remove(src_dir / "a.service")
    os.remove(dest_dir / "a.service")
    assert reconciler.sync()
    assert reconciler.state == {}
    assert ("removed", "a.service") not in reconciler.last_result.actions


def test_listing_failure_aborts_pass(temp_dir, dest_dir, manager):
    state = {"a.service": "abc"}
    result = PassResult()

    assert not sync_units(temp_dir / "missing", dest_dir, state, manager, result)
    assert manager.calls == []
    assert state == {"a.service": "abc"}
    assert result.errors[0].kind == ErrorKind.LISTING
    assert result.errors[0].aborts


def test_destination_read_error_is_not_first_sight(reconciler, src_dir, dest_dir, manager):
    write(src_dir / "a.service", "A")
    # a directory in place of the destination file cannot be read
    (dest_dir / "a.service").mkdir()

    assert not reconciler.sync()
    assert manager.calls == []
    assert reconciler.state == {}
    assert reconciler.last_result.errors[0].kind == ErrorKind.READ


def test_copy_failure_skips_unit(src_dir, temp_dir, manager):
    write(src_dir / "a.service", "A")
    result = PassResult()

    assert not sync_units(src_dir, temp_dir / "no-such-dest", {}, manager, result)
    assert manager.calls == []
    assert result.errors[0].kind == ErrorKind.COPY
    assert result.errors[0].unit == "a.service"


@pytest.mark.skipif(os.geteuid() == 0, reason="root ignores file permissions")
def test_unreadable_source_marks_failure(reconciler, src_dir, dest_dir, manager):
    write(src_dir / "a.service", "A")
    write(src_dir / "b.service", "B")
    os.chmod(src_dir / "a.service", 0)
    try:
        assert not reconciler.sync()
    finally:
        os.chmod(src_dir / "a.service", 0o644)

    assert list(reconciler.state) == ["b.service"]
    assert reconciler.last_result.errors[0].kind == ErrorKind.READ


def test_unit_replaced_by_directory_is_removed(reconciler, src_dir, dest_dir, manager):
    write(src_dir / "a.service", "A")
    assert reconciler.sync()

    os.remove(src_dir / "a.service")
    (src_dir / "a.service").mkdir()
    assert reconciler.sync()
    assert reconciler.state == {}
    assert ("stop", "a.service") in manager.actions
    assert not (dest_dir / "a.service").exists()


def test_file_vanishing_mid_pass_is_skipped(reconciler, src_dir, dest_dir, manager):
    # a dangling link is listed as a file but cannot be opened
    os.symlink(src_dir / "gone", src_dir / "a.service")

    assert reconciler.sync()
    assert manager.calls == []
    assert reconciler.last_result.errors == []
    assert reconciler.state == {}
    assert list(dest_dir.iterdir()) == []


def test_file_vanishing_mid_pass_is_cleaned_up_same_pass(reconciler, src_dir, dest_dir, manager):
    write(src_dir / "a.service", "A")
    assert reconciler.sync()

    os.remove(src_dir / "a.service")
    os.symlink(src_dir / "gone", src_dir / "a.service")
    assert reconciler.sync()
    assert reconciler.last_result.errors == []
    assert manager.actions == [("start", "a.service"), ("stop", "a.service")]
    assert not (dest_dir / "a.service").exists()
    assert reconciler.state == {}


def test_metadata_only_change_is_a_noop_pass(reconciler, src_dir, dest_dir, manager):
    write(src_dir / "a.service", "A")
    assert reconciler.sync()

    os.chmod(src_dir / "a.service", 0o600)
    os.utime(src_dir / "a.service", (0, 0))
    assert reconciler.sync()
    assert reconciler.last_result.actions == []
    assert manager.actions == [("start", "a.service")]
