"""The single database writer at the end of the inventory pipeline.

Entries from the walker are inserted; hash results from the workers
update the matching rows. Before any result is applied, every entry
already queued is inserted, so an update never comes before the insert
for the same path. Work is committed in batches of ``BATCH_SIZE``
operations to keep the write-ahead log bounded.
"""

from __future__ import annotations

import queue
import sqlite3
import threading

from .types import BaseEntry, HashResult, ScanCancelled

BATCH_SIZE = 5000

INSERT_SQL = """
    INSERT INTO entries (scan_id, rel_path, rel_path_norm, name, ext, size, mtime_ns, fingerprint, sha256, state, err)
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

UPDATE_SQL = """
    UPDATE entries SET fingerprint=?, sha256=?, state=?, err=?
    WHERE scan_id=? AND rel_path=?
"""

_POLL_INTERVAL = 0.05


def _or_null(value: str) -> str | None:
    return value or None


class _Batch:
    """Executes statements inside transactions committed every BATCH_SIZE ops."""

    def __init__(self, conn: sqlite3.Connection, scan_id: int) -> None:
        self._conn = conn
        self._scan_id = scan_id
        self._ops = 0
        if conn.in_transaction:
            conn.commit()
        conn.execute("BEGIN")

    def insert(self, entry: BaseEntry) -> None:
        self._conn.execute(
            INSERT_SQL,
            (
                self._scan_id,
                entry.rel_path,
                _or_null(entry.rel_path_norm),
                entry.name,
                entry.ext,
                entry.size,
                entry.mtime_ns,
                _or_null(entry.fingerprint),
                _or_null(entry.sha256),
                entry.state,
                _or_null(entry.err_msg),
            ),
        )
        self._tick()

    def update(self, result: HashResult) -> None:
        self._conn.execute(
            UPDATE_SQL,
            (
                _or_null(result.fingerprint),
                _or_null(result.sha256),
                result.state,
                _or_null(result.err),
                self._scan_id,
                result.rel_path,
            ),
        )
        self._tick()

    def _tick(self) -> None:
        self._ops += 1
        if self._ops >= BATCH_SIZE:
            self._conn.commit()
            self._conn.execute("BEGIN")
            self._ops = 0


def _drain(entries: "queue.Queue[BaseEntry | None]", batch: _Batch) -> bool:
    """Insert every queued entry; return False once the end sentinel is seen."""
    while True:
        try:
            entry = entries.get_nowait()
        except queue.Empty:
            return True
        if entry is None:
            return False
        batch.insert(entry)


def _check_cancel(cancel: threading.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise ScanCancelled("scan cancelled")


def _pump(
    batch: _Batch,
    entries: "queue.Queue[BaseEntry | None]",
    results: "queue.Queue[HashResult | None]",
    cancel: threading.Event | None,
) -> None:
    entries_open = True
    results_open = True
    while entries_open or results_open:
        if entries_open:
            entries_open = _drain(entries, batch)
        _check_cancel(cancel)

        if results_open:
            try:
                result = results.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                continue
            if result is None:
                results_open = False
                continue
            if entries_open:
                entries_open = _drain(entries, batch)
            batch.update(result)
        else:
            try:
                entry = entries.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                continue
            if entry is None:
                entries_open = False
            else:
                batch.insert(entry)


def run_writer(
    conn: sqlite3.Connection,
    scan_id: int,
    entries: "queue.Queue[BaseEntry | None]",
    results: "queue.Queue[HashResult | None]",
    cancel: threading.Event | None = None,
) -> None:
    """Persist entries and hash results for ``scan_id`` until both queues end.

    Each queue signals its end with a ``None`` item. On any error, or
    :class:`ScanCancelled` when ``cancel`` is set, the open transaction
    is rolled back and the exception propagates; earlier batches stay
    committed.
    """
    batch = _Batch(conn, scan_id)
    try:
        _pump(batch, entries, results, cancel)
    except BaseException:
        conn.rollback()
        raise
    conn.commit()