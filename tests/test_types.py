import dataclasses

import pytest

from sympath.types import (
    BaseEntry,
    HashJob,
    HashResult,
    MachineIdentity,
    PrevEntry,
    ScanCancelled,
    VolumeInfo,
)


def test_prev_entry_equality_and_defaults():
    entry = PrevEntry(size=5, mtime_ns=7)
    assert entry == PrevEntry(5, 7, "", "")
    assert entry.fingerprint == ""
    assert entry.sha256 == ""
    assert entry != PrevEntry(5, 7, "fp", "sha")


def test_prev_entry_is_immutable():
    entry = PrevEntry(size=5, mtime_ns=7, fingerprint="fp", sha256="sha")
    with pytest.raises(dataclasses.FrozenInstanceError):
        entry.size = 6  # type: ignore[misc]
    assert entry.size == 5
    assert entry == PrevEntry(5, 7, "fp", "sha")


def test_machine_identity_hashable_in_sets():
    a = MachineIdentity("machine-a", "host-a")
    b = MachineIdentity("machine-a", "host-a")
    assert len({a, b}) == 1


def test_hash_result_is_mutable_for_rel_path():
    result = HashResult(state="ok", fingerprint="fp", sha256="sha")
    result.rel_path = "dir/file.txt"
    assert result.rel_path == "dir/file.txt"
    assert result.err == ""


def test_base_entry_defaults():
    entry = BaseEntry(rel_path="a/b.txt", name="b.txt", ext=".txt", state="pending")
    assert entry.fingerprint == ""
    assert entry.err_msg == ""
    assert entry.rel_path_norm == ""
    assert entry.size == 0


def test_hash_job_fields_roundtrip():
    job = HashJob(abs_path="/x/a.txt", rel_path="a.txt", size=3, mtime_ns=9)
    assert dataclasses.astuple(job) == ("/x/a.txt", "a.txt", 3, 9)


def test_volume_info_default_is_case_insensitive_and_unnamed():
    info = VolumeInfo()
    assert info.fs_type == ""
    assert info.case_sensitive is False


def test_scan_cancelled_carries_message():
    err = ScanCancelled("stopped")
    assert str(err) == "stopped"
    assert err.args == ("stopped",)
    with pytest.raises(Exception, match="stopped") as excinfo:
        raise err
    assert excinfo.value is err