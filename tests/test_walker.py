import os
import threading

import pytest

from sympath.exclude import make_exclude_set, resolve_abs_path
from sympath.progress import ScanProgress
from sympath.reuse import ReuseSources
from sympath.types import PrevEntry, ScanCancelled
from sympath.walker import walk_entries


def make_tree(root, files):
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)


def walk(root, **kwargs):
    reuse = kwargs.pop("reuse", ReuseSources())
    return list(walk_entries(resolve_abs_path(str(root)), reuse, **kwargs))


def test_walk_emits_pending_entries_with_jobs(tmp_path):
    make_tree(tmp_path, {"b.txt": "bravo", "a.txt": "alpha", "sub/deep/c.log": "log"})
    items = walk(tmp_path)

    assert [e.rel_path for e, _ in items] == ["a.txt", "b.txt", "sub/deep/c.log"]
    for entry, job in items:
        assert entry.state == "pending"
        assert job is not None
        assert job.rel_path == entry.rel_path
        assert job.size == entry.size
        assert job.mtime_ns == entry.mtime_ns
        st = os.stat(job.abs_path)
        assert st.st_size == entry.size
        assert st.st_mtime_ns == entry.mtime_ns


def test_walk_name_and_extension(tmp_path):
    make_tree(tmp_path, {"Makefile": "all", ".gitignore": "*.o", "dir/Photo.JPG": "x"})
    by_rel = {e.rel_path: e for e, _ in walk(tmp_path)}

    assert by_rel["Makefile"].ext == ""
    assert by_rel[".gitignore"].ext == ".gitignore"
    assert by_rel["dir/Photo.JPG"].name == "Photo.JPG"
    assert by_rel["dir/Photo.JPG"].ext == ".jpg"


def test_walk_reuses_matching_previous_entry(tmp_path):
    make_tree(tmp_path, {"same.txt": "same", "changed.txt": "changed"})
    same = os.stat(tmp_path / "same.txt")
    changed = os.stat(tmp_path / "changed.txt")
    reuse = ReuseSources(
        exact={
            "same.txt": [PrevEntry(same.st_size, same.st_mtime_ns, "fp", "sha")],
            "changed.txt": [PrevEntry(changed.st_size + 1, changed.st_mtime_ns, "fp2", "sha2")],
        }
    )
    by_rel = {e.rel_path: (e, j) for e, j in walk(tmp_path, reuse=reuse)}

    entry, job = by_rel["same.txt"]
    assert entry.state == "reused"
    assert job is None
    assert (entry.fingerprint, entry.sha256) == ("fp", "sha")

    entry, job = by_rel["changed.txt"]
    assert entry.state == "pending"
    assert job is not None
    assert entry.fingerprint == ""


def test_walk_skips_database_files(tmp_path):
    make_tree(
        tmp_path,
        {
            "real.txt": "real",
            "inv.sympath": "db",
            "inv.sympath-wal": "wal",
            "inv.sympath-journal": "journal",
        },
    )
    excludes = make_exclude_set(resolve_abs_path(str(tmp_path / "inv.sympath")))
    items = walk(tmp_path, exclude_set=excludes)
    assert [e.rel_path for e, _ in items] == ["real.txt"]


def test_walk_skips_symlinks(tmp_path):
    make_tree(tmp_path, {"target.txt": "t", "dir/inner.txt": "i"})
    os.symlink(tmp_path / "target.txt", tmp_path / "link.txt")
    os.symlink(tmp_path / "dir", tmp_path / "dirlink")
    items = walk(tmp_path)
    assert [e.rel_path for e, _ in items] == ["dir/inner.txt", "target.txt"]


def test_walk_empty_directory(tmp_path):
    assert walk(tmp_path) == []


def test_walk_missing_root_yields_error_entry(tmp_path):
    items = walk(tmp_path / "missing")
    assert len(items) == 1
    entry, job = items[0]
    assert entry.state == "error"
    assert entry.rel_path == "."
    assert entry.err_msg
    assert job is None


def test_walk_counts_progress(tmp_path):
    make_tree(tmp_path, {"a.txt": "a", "b.txt": "b"})
    st = os.stat(tmp_path / "a.txt")
    reuse = ReuseSources(exact={"a.txt": [PrevEntry(st.st_size, st.st_mtime_ns, "f", "s")]})
    progress = ScanProgress()
    items = walk(tmp_path, reuse=reuse, progress=progress)

    snap = progress.snapshot()
    assert snap.files_discovered == len(items) == 2
    assert snap.files_reused == 1
    assert snap.files_processed == 1
    assert snap.files_pending == 1


def test_walk_cancelled(tmp_path):
    make_tree(tmp_path, {"a.txt": "a"})
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(ScanCancelled):
        walk(tmp_path, cancel=cancel)


def test_walk_propagates_overlap_load_error(tmp_path):
    make_tree(tmp_path, {"a.txt": "a"})

    def failing_loader():
        raise RuntimeError("overlap failed")

    with pytest.raises(RuntimeError, match="overlap failed"):
        walk(tmp_path, reuse=ReuseSources(load_overlap=failing_loader))