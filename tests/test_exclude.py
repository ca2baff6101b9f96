import os
import sqlite3

from sympath.exclude import (
    get_db_path,
    make_exclude_set,
    resolve_abs_path,
    should_exclude,
)


def test_get_db_path(tmp_path):
    db_file = tmp_path / "test.sqlite"
    conn = sqlite3.connect(db_file)
    try:
        conn.execute("SELECT 1")
        got = get_db_path(conn)
    finally:
        conn.close()
    assert got == resolve_abs_path(str(db_file))


def test_get_db_path_in_memory_is_empty():
    conn = sqlite3.connect(":memory:")
    try:
        assert get_db_path(conn) == ""
    finally:
        conn.close()


def test_resolve_abs_path_missing_file_returns_absolute(tmp_path):
    missing = os.path.join(str(tmp_path), "nope", "..", "gone.txt")
    got = resolve_abs_path(missing)
    assert os.path.isabs(got)
    assert got == os.path.abspath(missing)


def test_resolve_abs_path_follows_symlink(tmp_path):
    target = tmp_path / "real.txt"
    target.write_text("x")
    link = tmp_path / "link.txt"
    link.symlink_to(target)
    assert resolve_abs_path(str(link)) == resolve_abs_path(str(target))


def test_make_exclude_set_contents():
    assert make_exclude_set("/data/inv.sympath") == {
        "/data/inv.sympath",
        "/data/inv.sympath-wal",
        "/data/inv.sympath-shm",
    }
    assert make_exclude_set("") == frozenset()


def test_should_exclude_direct_and_companions():
    excludes = make_exclude_set(os.path.join(os.sep, "data", "inv.sympath"))
    data = os.path.join(os.sep, "data")
    assert should_exclude(os.path.join(data, "inv.sympath"), excludes)
    assert should_exclude(os.path.join(data, "inv.sympath-wal"), excludes)
    assert should_exclude(os.path.join(data, "inv.sympath-journal"), excludes)


def test_should_exclude_rejects_unrelated_paths():
    excludes = make_exclude_set(os.path.join(os.sep, "data", "inv.sympath"))
    assert not should_exclude(os.path.join(os.sep, "data", "other.txt"), excludes)
    assert not should_exclude(os.path.join(os.sep, "data", "other-wal"), excludes)
    assert not should_exclude(
        os.path.join(os.sep, "elsewhere", "inv.sympath-journal"), excludes
    )


def test_should_exclude_with_empty_set():
    assert not should_exclude(os.path.join(os.sep, "data", "inv.sympath-wal"), None)
    assert not should_exclude(
        os.path.join(os.sep, "data", "inv.sympath"), make_exclude_set("")
    )