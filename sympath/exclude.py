"""Keeping the inventory database and its companion files out of a scan.

Paths are resolved through symlinks so that the database path SQLite
reports matches the paths seen while walking (for example where
``/var`` is a link to ``/private/var``).
"""

from __future__ import annotations

import os
import sqlite3
from collections.abc import Collection

_COMPANION_SUFFIXES = ("-wal", "-shm", "-journal")


def resolve_abs_path(path: str) -> str:
    """Return the absolute path with symlinks resolved.

    If the path cannot be resolved (for example it does not exist), the
    plain absolute path is returned.
    """
    try:
        absolute = os.path.abspath(path)
    except (OSError, ValueError):
        return path
    try:
        return os.path.realpath(absolute, strict=True)
    except (OSError, RuntimeError):
        return absolute


def get_db_path(conn: sqlite3.Connection) -> str:
    """Return the resolved file path of the main database, or ``""`` if in memory."""
    for _seq, name, file in conn.execute("PRAGMA database_list"):
        if name == "main" and file:
            return resolve_abs_path(file)
    return ""


def make_exclude_set(db_path: str) -> frozenset[str]:
    """Paths to skip while scanning: the database and its WAL/SHM files."""
    if not db_path:
        return frozenset()
    return frozenset({db_path, db_path + "-wal", db_path + "-shm"})


def should_exclude(abs_path: str, exclude_set: Collection[str] | None) -> bool:
    """Report whether ``abs_path`` is an excluded database file.

    Besides exact matches, a ``-wal``, ``-shm`` or ``-journal`` file is
    excluded when it sits next to an excluded file whose name it extends.
    """
    if not exclude_set:
        return False
    if abs_path in exclude_set:
        return True
    base = os.path.basename(abs_path)
    if not base.endswith(_COMPANION_SUFFIXES):
        return False
    directory = os.path.dirname(abs_path)
    stems = {base.removesuffix(suffix) for suffix in _COMPANION_SUFFIXES}
    return any(
        os.path.dirname(p) == directory and os.path.basename(p) in stems
        for p in exclude_set
    )