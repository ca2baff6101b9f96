"""Unicode-normalised comparison keys for relative paths.

The raw relative path stays the on-disk identity. A separate NFC form
is stored only where it differs from the raw path, so most rows keep a
NULL ``rel_path_norm``.
"""

from __future__ import annotations

import sqlite3
import unicodedata

from .schema import _UPSERT_METADATA_SQL, _transaction

METADATA_REL_PATH_NORM_BACKFILL_V1_KEY = "rel_path_norm_backfill_v1"
REL_PATH_NORM_BACKFILL_DONE_VALUE = "done"
REL_PATH_NORM_BACKFILL_BATCH_SIZE = 1000


def stored_rel_path_norm(rel_path: str) -> str | None:
    """Return the NFC form of ``rel_path`` if it differs, else ``None``.

    Paths that are not valid Unicode (holding lone surrogates) give ``None``.
    """
    try:
        rel_path.encode("utf-8")
    except UnicodeEncodeError:
        return None
    normalized = unicodedata.normalize("NFC", rel_path)
    if normalized == rel_path:
        return None
    return normalized


def compare_rel_path_key(rel_path: str) -> str:
    """Return the normalisation-aware comparison key for ``rel_path``."""
    normalized = stored_rel_path_norm(rel_path)
    return rel_path if normalized is None else normalized


def _backfill_done(conn: sqlite3.Connection) -> bool:
    row = conn.execute(
        "SELECT value FROM metadata WHERE key = ?",
        (METADATA_REL_PATH_NORM_BACKFILL_V1_KEY,),
    ).fetchone()
    return row is not None and row[0] == REL_PATH_NORM_BACKFILL_DONE_VALUE


def ensure_rel_path_norm_backfill(conn: sqlite3.Connection) -> None:
    """Fill ``rel_path_norm`` for existing entries, once per database.

    A metadata marker records completion so later calls do nothing.
    """
    if _backfill_done(conn):
        return

    last_row_id = 0
    while True:
        rows = conn.execute(
            """
            SELECT rowid, rel_path, rel_path_norm
            FROM entries
            WHERE rowid > ?
            ORDER BY rowid
            LIMIT ?
            """,
            (last_row_id, REL_PATH_NORM_BACKFILL_BATCH_SIZE),
        ).fetchall()
        if not rows:
            break
        last_row_id = rows[-1][0]

        updates = [
            (normalized, row_id)
            for row_id, rel_path, existing in rows
            if not existing
            and (normalized := stored_rel_path_norm(rel_path)) is not None
        ]
        if updates:
            with _transaction(conn):
                conn.executemany(
                    "UPDATE entries SET rel_path_norm = ? WHERE rowid = ?", updates
                )

    with _transaction(conn):
        conn.execute(
            _UPSERT_METADATA_SQL,
            (METADATA_REL_PATH_NORM_BACKFILL_V1_KEY, REL_PATH_NORM_BACKFILL_DONE_VALUE),
        )