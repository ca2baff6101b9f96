"""SQLite schema, legacy migration and connection settings.

The schema has four tables: ``metadata`` (key/value settings such as
the local machine identity), ``roots`` (one authoritative snapshot per
machine and path), ``scans`` (one row per scan attempt) and ``entries``
(one row per regular file in a scan). Databases from before machine
awareness are migrated in place, backfilling a supplied identity.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager

from .types import MachineIdentity

METADATA_TABLE_NAME = "metadata"
METADATA_LOCAL_MACHINE_ID_KEY = "local_machine_id"
METADATA_LOCAL_HOSTNAME_KEY = "local_hostname"

CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS roots (
    machine_id TEXT NOT NULL,
    root TEXT NOT NULL,
    current_scan_id INTEGER,
    PRIMARY KEY (machine_id, root)
);

CREATE TABLE IF NOT EXISTS scans (
    scan_id INTEGER PRIMARY KEY,
    machine_id TEXT NOT NULL,
    hostname TEXT NOT NULL,
    root TEXT NOT NULL,
    started_at INTEGER NOT NULL,
    finished_at INTEGER,
    status TEXT NOT NULL CHECK(status IN ('running','complete','failed')),
    goos TEXT,
    goarch TEXT,
    fs_type TEXT,
    case_sensitive INTEGER
);

CREATE TABLE IF NOT EXISTS entries (
    scan_id INTEGER NOT NULL,
    rel_path TEXT NOT NULL,
    rel_path_norm TEXT,
    name TEXT NOT NULL,
    ext TEXT NOT NULL,
    size INTEGER NOT NULL,
    mtime_ns INTEGER NOT NULL,
    fingerprint TEXT,
    sha256 TEXT,
    state TEXT,
    err TEXT,
    PRIMARY KEY (scan_id, rel_path),
    FOREIGN KEY (scan_id) REFERENCES scans(scan_id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_scans_machine_root_status ON scans(machine_id, root, status);
CREATE INDEX IF NOT EXISTS idx_entries_scan ON entries(scan_id);
"""

_UPSERT_METADATA_SQL = """
INSERT INTO metadata (key, value) VALUES (?, ?)
ON CONFLICT(key) DO UPDATE SET value = excluded.value
"""

_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA foreign_keys=ON",
    "PRAGMA busy_timeout=5000",
)


@contextmanager
def _transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run the body in one explicit transaction, rolling back on error."""
    if conn.in_transaction:
        conn.commit()
    conn.execute("BEGIN")
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    conn.commit()


def _require_identity(identity: MachineIdentity) -> None:
    if not identity.machine_id:
        raise ValueError("machine identity is required")
    if not identity.hostname:
        raise ValueError("hostname is required")


def configure_connection(conn: sqlite3.Connection) -> None:
    """Apply WAL journaling, NORMAL sync, foreign keys and a 5 s busy timeout."""
    for pragma in _PRAGMAS:
        conn.execute(pragma).fetchall()


def table_exists(conn: sqlite3.Connection, name: str) -> bool:
    """Report whether a table called ``name`` exists."""
    (count,) = conn.execute(
        "SELECT COUNT(*) FROM sqlite_master WHERE type='table' AND name = ?",
        (name,),
    ).fetchone()
    return count > 0


def table_columns(conn: sqlite3.Connection, table: str) -> dict[str, str]:
    """Map each column of ``table`` (lower-cased name) to its declared type."""
    quoted = '"' + table.replace('"', '""') + '"'
    rows = conn.execute(f"PRAGMA table_info({quoted})").fetchall()
    return {row[1].lower(): row[2] for row in rows}


def ensure_schema(conn: sqlite3.Connection, identity: MachineIdentity) -> None:
    """Create or upgrade the database to the machine-aware schema.

    Raises ValueError if ``identity`` lacks a machine ID or hostname.
    """
    _require_identity(identity)
    _migrate_legacy_schema(conn, identity)
    if conn.in_transaction:
        conn.commit()
    conn.executescript(CREATE_TABLES_SQL)
    _ensure_entries_columns(conn)


def _ensure_entries_columns(conn: sqlite3.Connection) -> None:
    if not table_exists(conn, "entries"):
        return
    if not table_columns(conn, "entries").get("rel_path_norm"):
        with _transaction(conn):
            conn.execute("ALTER TABLE entries ADD COLUMN rel_path_norm TEXT")


def _migrate_legacy_schema(conn: sqlite3.Connection, identity: MachineIdentity) -> None:
    if not (table_exists(conn, "roots") and table_exists(conn, "scans")):
        return

    root_columns = table_columns(conn, "roots")
    scan_columns = table_columns(conn, "scans")
    roots_legacy = not root_columns.get("machine_id")
    scans_legacy = not scan_columns.get("machine_id") or not scan_columns.get("hostname")
    if not roots_legacy and not scans_legacy:
        return

    with _transaction(conn):
        if scans_legacy:
            if not scan_columns.get("machine_id"):
                conn.execute("ALTER TABLE scans ADD COLUMN machine_id TEXT")
            if not scan_columns.get("hostname"):
                conn.execute("ALTER TABLE scans ADD COLUMN hostname TEXT")
            conn.execute(
                "UPDATE scans SET machine_id = ?, hostname = ? "
                "WHERE machine_id IS NULL OR machine_id = '' "
                "OR hostname IS NULL OR hostname = ''",
                (identity.machine_id, identity.hostname),
            )

        if roots_legacy:
            conn.execute(
                """
                CREATE TABLE roots_new (
                    machine_id TEXT NOT NULL,
                    root TEXT NOT NULL,
                    current_scan_id INTEGER,
                    PRIMARY KEY (machine_id, root)
                )
                """
            )
            conn.execute(
                "INSERT INTO roots_new (machine_id, root, current_scan_id) "
                "SELECT ?, root, current_scan_id FROM roots",
                (identity.machine_id,),
            )
            conn.execute("DROP TABLE roots")
            conn.execute("ALTER TABLE roots_new RENAME TO roots")

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS metadata (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )
        conn.execute(
            _UPSERT_METADATA_SQL, (METADATA_LOCAL_MACHINE_ID_KEY, identity.machine_id)
        )
        conn.execute(
            _UPSERT_METADATA_SQL, (METADATA_LOCAL_HOSTNAME_KEY, identity.hostname)
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_scans_machine_root_status "
            "ON scans(machine_id, root, status)"
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_entries_scan ON entries(scan_id)")


def is_machine_aware_inventory_db(conn: sqlite3.Connection) -> bool:
    """Report whether the database already has the machine-aware layout.

    This only inspects the structure; it never modifies the database.
    """
    if not all(table_exists(conn, name) for name in ("roots", "scans", "entries")):
        return False
    root_columns = table_columns(conn, "roots")
    scan_columns = table_columns(conn, "scans")
    if not root_columns.get("machine_id"):
        return False
    return bool(scan_columns.get("machine_id") and scan_columns.get("hostname"))