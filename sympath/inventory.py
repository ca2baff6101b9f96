"""Scanning a directory tree into an inventory database.

Each call to :func:`inventory_tree` creates a new scan. The scan
replaces the previous snapshot for the same machine and root only once
the whole pipeline has finished. On any failure it is marked
``"failed"`` and the earlier snapshot stays authoritative.

The pipeline has three stages connected by bounded queues:

* a walker thread lists the files;
* a small pool of hash workers hashes them;
* the writer stores the results on the calling thread.

Hashes are reused from the authoritative scan and from the newest
failed scan of the same root. When a file has no match there, they can
also come from overlapping authoritative scans on the same machine,
provided the file's size and mtime are unchanged.
"""

from __future__ import annotations

import os
import platform
import queue
import sqlite3
import sys
import threading
import time
from collections.abc import Callable, Collection

from .exclude import get_db_path, make_exclude_set, resolve_abs_path
from .fsinfo import detect_volume_info
from .hashing import hash_worker
from .identity import get_local_machine_identity
from .progress import ScanProgress
from .reuse import OverlapReuseIndex, ReuseSources, load_overlap_reuse_index
from .schema import _transaction, configure_connection
from .types import MachineIdentity, PrevEntry, VolumeInfo
from .walker import walk_entries
from .writer import run_writer

MAX_HASH_WORKERS = 4
QUEUE_SIZE = 1000

_POLL_INTERVAL = 0.05
_INTERRUPTED_REUSE_STATES = frozenset({"ok", "reused"})

_ARCH_NAMES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "aarch64": "arm64",
    "arm64": "arm64",
}


class _Aborted(Exception):
    """Internal signal that the pipeline is shutting down after a failure."""


def _platform_os() -> str:
    if sys.platform == "win32":
        return "windows"
    if sys.platform.startswith("linux"):
        return "linux"
    return sys.platform


def _platform_arch() -> str:
    machine = platform.machine().lower()
    return _ARCH_NAMES.get(machine, machine) or "unknown"


def _worker_count() -> int:
    return max(1, min(os.cpu_count() or 1, MAX_HASH_WORKERS))


def get_current_scan_id(conn: sqlite3.Connection, machine_id: str, root: str) -> int | None:
    """Return the authoritative scan ID for a machine and root, or ``None``."""
    row = conn.execute(
        "SELECT current_scan_id FROM roots WHERE machine_id = ? AND root = ?",
        (machine_id, root),
    ).fetchone()
    if row is None or row[0] is None:
        return None
    return row[0]


def get_latest_interrupted_scan_id(conn: sqlite3.Connection, machine_id: str, root: str) -> int | None:
    """Return the newest failed scan for a machine and root, or ``None``.

    Running scans are never returned, so rows of a scan still in
    progress are not exposed for reuse.
    """
    row = conn.execute(
        """
        SELECT scan_id
        FROM scans
        WHERE machine_id = ? AND root = ? AND status = 'failed'
        ORDER BY scan_id DESC
        LIMIT 1
        """,
        (machine_id, root),
    ).fetchone()
    if row is None or row[0] is None:
        return None
    return row[0]


def load_previous_entries(
    conn: sqlite3.Connection,
    scan_id: int | None,
    allowed_states: Collection[str] | None = None,
) -> dict[str, PrevEntry]:
    """Load a scan's entries keyed by relative path.

    With ``allowed_states``, only rows whose state is in it are kept.
    A missing ``scan_id`` gives an empty mapping.
    """
    if not scan_id:
        return {}
    rows = conn.execute(
        "SELECT rel_path, size, mtime_ns, fingerprint, sha256, state FROM entries WHERE scan_id = ?",
        (scan_id,),
    )
    return {
        rel_path: PrevEntry(
            size=size,
            mtime_ns=mtime_ns,
            fingerprint=fingerprint or "",
            sha256=sha256 or "",
        )
        for rel_path, size, mtime_ns, fingerprint, sha256, state in rows
        if allowed_states is None or state in allowed_states
    }


def load_exact_reuse_entries(conn: sqlite3.Connection, machine_id: str, root: str) -> dict[str, list[PrevEntry]]:
    """Collect reuse candidates for the same machine and root.

    Candidates from the newest failed scan (only ``ok`` and ``reused``
    rows) come first, followed by those of the authoritative scan.
    """
    current = get_current_scan_id(conn, machine_id, root)
    interrupted = get_latest_interrupted_scan_id(conn, machine_id, root)

    merged: dict[str, list[PrevEntry]] = {}
    sources = []
    if interrupted:
        sources.append(load_previous_entries(conn, interrupted, _INTERRUPTED_REUSE_STATES))
    sources.append(load_previous_entries(conn, current))
    for source in sources:
        for rel_path, entry in source.items():
            merged.setdefault(rel_path, []).append(entry)
    return merged


def create_scan(conn: sqlite3.Connection, identity: MachineIdentity, root: str, volume: VolumeInfo) -> int:
    """Insert a ``"running"`` scan row and return its ID."""
    with _transaction(conn):
        cursor = conn.execute(
            """
            INSERT INTO scans (machine_id, hostname, root, started_at, status, goos, goarch, fs_type, case_sensitive)
            VALUES (?, ?, ?, ?, 'running', ?, ?, ?, ?)
            """,
            (
                identity.machine_id,
                identity.hostname,
                root,
                time.time_ns(),
                _platform_os(),
                _platform_arch(),
                volume.fs_type,
                1 if volume.case_sensitive else 0,
            ),
        )
    return cursor.lastrowid


def publish_scan(conn: sqlite3.Connection, scan_id: int, machine_id: str, root: str) -> None:
    """Make ``scan_id`` the authoritative scan for its machine and root.

    In one transaction the scan is marked complete, the roots pointer
    is moved to it, and every other scan of that root is deleted.
    """
    with _transaction(conn):
        conn.execute(
            "UPDATE scans SET status='complete', finished_at=? WHERE scan_id=?",
            (time.time_ns(), scan_id),
        )
        conn.execute(
            """
            INSERT INTO roots (machine_id, root, current_scan_id) VALUES (?, ?, ?)
            ON CONFLICT(machine_id, root) DO UPDATE SET current_scan_id=excluded.current_scan_id
            """,
            (machine_id, root, scan_id),
        )
        conn.execute(
            "DELETE FROM scans WHERE machine_id = ? AND root = ? AND scan_id <> ?",
            (machine_id, root, scan_id),
        )


def fail_scan(conn: sqlite3.Connection, scan_id: int) -> None:
    """Mark a scan failed without touching the roots pointer."""
    with _transaction(conn):
        conn.execute(
            "UPDATE scans SET status='failed', finished_at=? WHERE scan_id=?",
            (time.time_ns(), scan_id),
        )


def _overlap_loader(
    conn: sqlite3.Connection, db_path: str, machine_id: str, root: str
) -> Callable[[], OverlapReuseIndex]:
    """Build the lazy overlap loader used from the walker thread.

    A file-backed database is read through a connection of the loader's
    own; an in-memory one can only be read through ``conn``, so its
    index is loaded up front.
    """
    if not db_path:
        index = load_overlap_reuse_index(conn, machine_id, root)
        return lambda: index

    def load() -> OverlapReuseIndex:
        reader = sqlite3.connect(db_path, timeout=5.0)
        try:
            return load_overlap_reuse_index(reader, machine_id, root)
        finally:
            reader.close()

    return load


def _put(q: queue.Queue, item: object, abort: threading.Event) -> None:
    while True:
        if abort.is_set():
            raise _Aborted()
        try:
            q.put(item, timeout=_POLL_INTERVAL)
        except queue.Full:
            continue
        return


def _run_pipeline(
    conn: sqlite3.Connection,
    scan_id: int,
    root: str,
    reuse: ReuseSources,
    exclude_set: Collection[str],
    progress: ScanProgress | None,
    cancel: threading.Event | None,
) -> tuple[Exception | None, Exception | None]:
    """Run walker, hash workers and writer; return (walker error, writer error)."""
    entries: queue.Queue = queue.Queue(QUEUE_SIZE)
    jobs: queue.Queue = queue.Queue(QUEUE_SIZE)
    results: queue.Queue = queue.Queue(QUEUE_SIZE)
    abort = threading.Event()
    walker_errors: list[Exception] = []

    def walk() -> None:
        try:
            for entry, job in walk_entries(root, reuse, exclude_set, progress, cancel):
                _put(entries, entry, abort)
                if job is not None:
                    _put(jobs, job, abort)
        except _Aborted:
            pass
        except Exception as exc:
            walker_errors.append(exc)
        finally:
            if progress is not None:
                progress.note_walk_complete()
            for q in (entries, jobs):
                try:
                    _put(q, None, abort)
                except _Aborted:
                    pass

    workers = [
        threading.Thread(target=hash_worker, args=(jobs, results, progress, abort), daemon=True)
        for _ in range(_worker_count())
    ]

    def close_results() -> None:
        for worker in workers:
            worker.join()
        try:
            _put(results, None, abort)
        except _Aborted:
            pass

    walker = threading.Thread(target=walk, daemon=True)
    closer = threading.Thread(target=close_results, daemon=True)
    for worker in workers:
        worker.start()
    walker.start()
    closer.start()

    writer_error: Exception | None = None
    try:
        run_writer(conn, scan_id, entries, results, cancel)
    except BaseException as exc:
        abort.set()
        if not isinstance(exc, Exception):
            raise
        writer_error = exc
    finally:
        walker.join()
        closer.join()

    return (walker_errors[0] if walker_errors else None), writer_error


def inventory_tree(
    conn: sqlite3.Connection,
    root: str,
    progress: ScanProgress | None = None,
    cancel: threading.Event | None = None,
    on_scan_created: Callable[[int], None] | None = None,
) -> None:
    """Scan ``root`` into ``conn`` and publish the result as its snapshot.

    ``progress`` is updated while the scan runs. Setting ``cancel``
    stops the scan with :class:`ScanCancelled`. ``on_scan_created`` is
    called with the new scan ID once its row exists. On any error the
    scan is marked failed and the error propagates.
    """
    abs_root = resolve_abs_path(root)
    if conn.in_transaction:
        conn.commit()
    configure_connection(conn)
    identity = get_local_machine_identity(conn)

    db_path = get_db_path(conn)
    exclude_set = make_exclude_set(db_path)

    reuse = ReuseSources(
        exact=load_exact_reuse_entries(conn, identity.machine_id, abs_root),
        load_overlap=_overlap_loader(conn, db_path, identity.machine_id, abs_root),
    )
    volume = detect_volume_info(abs_root)

    scan_id = create_scan(conn, identity, abs_root, volume)
    if on_scan_created is not None:
        on_scan_created(scan_id)

    walker_error, writer_error = _run_pipeline(
        conn, scan_id, abs_root, reuse, exclude_set, progress, cancel
    )
    failure = walker_error or writer_error
    if failure is not None:
        try:
            fail_scan(conn, scan_id)
        except sqlite3.Error:
            pass
        raise failure

    publish_scan(conn, scan_id, identity.machine_id, abs_root)