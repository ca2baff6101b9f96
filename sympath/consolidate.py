"""Importing the current scans of one inventory database into another.

Only authoritative current scans are copied. For each machine and root
found in the source, the target's existing snapshot for that same pair
is replaced rather than added to. Importing the same source again is
therefore idempotent.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable
from dataclasses import dataclass, field

from .relpath import stored_rel_path_norm
from .schema import _transaction, table_columns


@dataclass(frozen=True)
class ImportSummary:
    """What :func:`import_current_scans` copied."""

    machine_ids: list[str] = field(default_factory=list)
    roots: int = 0


@dataclass(frozen=True)
class _CurrentScan:
    scan_id: int
    machine_id: str
    hostname: str
    root: str
    started_at: int
    finished_at: int | None
    status: str
    goos: str | None
    goarch: str | None
    fs_type: str | None
    case_sensitive: int | None


_CURRENT_SCANS_SQL = """
    SELECT
        s.scan_id,
        s.machine_id,
        s.hostname,
        s.root,
        s.started_at,
        s.finished_at,
        s.status,
        s.goos,
        s.goarch,
        s.fs_type,
        s.case_sensitive
    FROM roots r
    JOIN scans s ON s.scan_id = r.current_scan_id
    ORDER BY s.machine_id, s.root
"""

_INSERT_SCAN_SQL = """
    INSERT INTO scans (
        machine_id, hostname, root, started_at, finished_at,
        status, goos, goarch, fs_type, case_sensitive
    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

_INSERT_ENTRY_SQL = """
    INSERT INTO entries (
        scan_id, rel_path, rel_path_norm, name, ext, size, mtime_ns, fingerprint, sha256, state, err
    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

_UPSERT_ROOT_SQL = """
    INSERT INTO roots (machine_id, root, current_scan_id) VALUES (?, ?, ?)
    ON CONFLICT(machine_id, root) DO UPDATE SET current_scan_id = excluded.current_scan_id
"""


def import_current_scans(
    target: sqlite3.Connection, source: sqlite3.Connection
) -> ImportSummary:
    """Copy every current scan of ``source`` into ``target``.

    Existing target data for each imported machine and root is removed
    first, so repeated imports do not accumulate scans.
    """
    source_has_norm = bool(table_columns(source, "entries").get("rel_path_norm"))
    records = [_CurrentScan(*row) for row in source.execute(_CURRENT_SCANS_SQL).fetchall()]

    for record in records:
        _import_current_scan(target, source, record, source_has_norm)

    return ImportSummary(
        machine_ids=sorted({record.machine_id for record in records}),
        roots=len(records),
    )


def _import_current_scan(
    target: sqlite3.Connection,
    source: sqlite3.Connection,
    record: _CurrentScan,
    source_has_norm: bool,
) -> None:
    key = (record.machine_id, record.root)
    with _transaction(target):
        target.execute(
            "DELETE FROM entries WHERE scan_id IN "
            "(SELECT scan_id FROM scans WHERE machine_id = ? AND root = ?)",
            key,
        )
        target.execute("DELETE FROM roots WHERE machine_id = ? AND root = ?", key)
        target.execute("DELETE FROM scans WHERE machine_id = ? AND root = ?", key)

        cursor = target.execute(
            _INSERT_SCAN_SQL,
            (
                record.machine_id,
                record.hostname,
                record.root,
                record.started_at,
                record.finished_at,
                record.status,
                record.goos,
                record.goarch,
                record.fs_type,
                record.case_sensitive,
            ),
        )
        new_scan_id = cursor.lastrowid

        norm_expr = "rel_path_norm" if source_has_norm else "NULL AS rel_path_norm"
        entry_rows = source.execute(
            f"""
            SELECT rel_path, {norm_expr}, name, ext, size, mtime_ns, fingerprint, sha256, state, err
            FROM entries
            WHERE scan_id = ?
            ORDER BY rel_path
            """,
            (record.scan_id,),
        )
        for rel_path, norm, name, ext, size, mtime_ns, fp, sha, state, err in entry_rows:
            if not norm and rel_path:
                normalized = stored_rel_path_norm(rel_path)
                if normalized is not None:
                    norm = normalized
            target.execute(
                _INSERT_ENTRY_SQL,
                (new_scan_id, rel_path, norm, name, ext, size, mtime_ns, fp, sha, state, err),
            )

        target.execute(_UPSERT_ROOT_SQL, (record.machine_id, record.root, new_scan_id))


def delete_machine_data(conn: sqlite3.Connection, machine_ids: Iterable[str]) -> None:
    """Remove all scans, entries and root pointers of the given machines.

    Empty and repeated machine IDs are ignored. Each machine is removed
    in its own transaction.
    """
    seen: set[str] = set()
    for machine_id in machine_ids:
        if not machine_id or machine_id in seen:
            continue
        seen.add(machine_id)
        with _transaction(conn):
            conn.execute(
                "DELETE FROM entries WHERE scan_id IN "
                "(SELECT scan_id FROM scans WHERE machine_id = ?)",
                (machine_id,),
            )
            conn.execute("DELETE FROM roots WHERE machine_id = ?", (machine_id,))
            conn.execute("DELETE FROM scans WHERE machine_id = ?", (machine_id,))