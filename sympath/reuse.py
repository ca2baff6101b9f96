"""Scan-time hash reuse from earlier scans.

Two layers are consulted for each file. The exact layer holds entries
from earlier scans of the same root, grouped by relative path. If it
misses, an overlap layer is loaded once, built from other authoritative
scans on the same machine whose roots are ancestors or descendants of
the target root, with their paths translated into the target's terms.

In both layers a candidate must match the file's size and mtime. If
several candidates match but disagree on fingerprint or SHA-256, the
lookup misses so the file is hashed fresh.
"""

from __future__ import annotations

import enum
import os
import posixpath
import sqlite3
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass

from .types import PrevEntry


def _unique_match(candidates: Iterable[PrevEntry], size: int, mtime_ns: int) -> PrevEntry | None:
    matched: PrevEntry | None = None
    for candidate in candidates:
        if candidate.size != size or candidate.mtime_ns != mtime_ns:
            continue
        if matched is None:
            matched = candidate
        elif (matched.fingerprint, matched.sha256) != (candidate.fingerprint, candidate.sha256):
            return None
    return matched


class OverlapReuseIndex(dict):
    """Reuse candidates from overlapping roots, keyed by target relative path."""

    def add(self, rel_path: str, entry: PrevEntry) -> None:
        """Append a candidate for ``rel_path``."""
        self.setdefault(rel_path, []).append(entry)

    def lookup(self, rel_path: str, size: int, mtime_ns: int) -> PrevEntry | None:
        """Return the single consistent matching candidate, or ``None``."""
        return _unique_match(self.get(rel_path, ()), size, mtime_ns)


class ReuseSources:
    """Exact-root candidates plus a lazily loaded overlap index.

    Not safe for concurrent use; the walker consults it from one thread.
    """

    def __init__(
        self,
        exact: Mapping[str, Sequence[PrevEntry]] | None = None,
        load_overlap: Callable[[], Mapping[str, Sequence[PrevEntry]] | None] | None = None,
    ) -> None:
        self.exact = exact if exact is not None else {}
        self._load_overlap = load_overlap
        self._overlap = OverlapReuseIndex()
        self._overlap_loaded = False

    def lookup(self, rel_path: str, size: int, mtime_ns: int) -> PrevEntry | None:
        """Return reusable hashes for a file, or ``None`` if it must be hashed.

        Errors raised while loading the overlap index propagate; the
        loader is never called more than once.
        """
        matched = _unique_match(self.exact.get(rel_path, ()), size, mtime_ns)
        if matched is not None:
            return matched

        if not self._overlap_loaded:
            self._overlap_loaded = True
            if self._load_overlap is not None:
                index = self._load_overlap()
                if index is not None:
                    self._overlap = OverlapReuseIndex(index)

        return self._overlap.lookup(rel_path, size, mtime_ns)


class OverlapRootKind(enum.Enum):
    """How a source root relates to the target root."""

    ANCESTOR = 1
    DESCENDANT = 2


@dataclass(frozen=True)
class OverlapRoot:
    """A source scan whose root overlaps the target root.

    For an ancestor, ``source_subdir`` is the target's path inside the
    source; for a descendant, ``target_prefix`` is the source's path
    inside the target. Both use forward slashes.
    """

    source_root: str
    scan_id: int
    kind: OverlapRootKind
    source_subdir: str = ""
    target_prefix: str = ""


def descendant_relative_path(base: str, candidate: str) -> str | None:
    """Return ``candidate`` relative to ``base`` if it lies within it.

    The result uses forward slashes and is ``""`` when both are the same
    path. ``None`` means ``candidate`` is outside ``base``.
    """
    if os.path.isabs(base) != os.path.isabs(candidate):
        return None
    try:
        rel = os.path.relpath(candidate, base)
    except ValueError:
        return None
    if rel == os.curdir:
        return ""
    if rel == os.pardir or rel.startswith(os.pardir + os.sep):
        return None
    return rel.replace(os.sep, "/")


def classify_overlap_root(target_root: str, source_root: str, scan_id: int) -> OverlapRoot | None:
    """Describe how ``source_root`` overlaps ``target_root``, or ``None`` if not at all."""
    rel = descendant_relative_path(source_root, target_root)
    if rel is not None:
        if not rel:
            return None
        return OverlapRoot(
            source_root=source_root,
            scan_id=scan_id,
            kind=OverlapRootKind.ANCESTOR,
            source_subdir=rel,
        )

    rel = descendant_relative_path(target_root, source_root)
    if rel is not None:
        if not rel:
            return None
        return OverlapRoot(
            source_root=source_root,
            scan_id=scan_id,
            kind=OverlapRootKind.DESCENDANT,
            target_prefix=rel,
        )
    return None


_TRUSTED_ENTRIES_SQL = """
    SELECT rel_path, size, mtime_ns, fingerprint, sha256
    FROM entries
    WHERE scan_id = ?
      AND state IN ('ok', 'reused')
      AND NULLIF(fingerprint, '') IS NOT NULL
      AND NULLIF(sha256, '') IS NOT NULL
"""


def _prev_entry(size: int, mtime_ns: int, fingerprint: str | None, sha256: str | None) -> PrevEntry:
    return PrevEntry(
        size=size,
        mtime_ns=mtime_ns,
        fingerprint=fingerprint or "",
        sha256=sha256 or "",
    )


def _load_ancestor_entries(conn: sqlite3.Connection, index: OverlapReuseIndex, overlap: OverlapRoot) -> None:
    prefix = overlap.source_subdir + "/"
    rows = conn.execute(
        _TRUSTED_ENTRIES_SQL + " AND substr(rel_path, 1, length(?) + 1) = ? || '/'",
        (overlap.scan_id, overlap.source_subdir, overlap.source_subdir),
    )
    for rel_path, size, mtime_ns, fingerprint, sha256 in rows:
        if not rel_path.startswith(prefix):
            continue
        index.add(rel_path[len(prefix):], _prev_entry(size, mtime_ns, fingerprint, sha256))


def _load_descendant_entries(conn: sqlite3.Connection, index: OverlapReuseIndex, overlap: OverlapRoot) -> None:
    rows = conn.execute(_TRUSTED_ENTRIES_SQL, (overlap.scan_id,))
    for rel_path, size, mtime_ns, fingerprint, sha256 in rows:
        target_rel_path = posixpath.normpath(posixpath.join(overlap.target_prefix, rel_path))
        index.add(target_rel_path, _prev_entry(size, mtime_ns, fingerprint, sha256))


def load_overlap_reuse_index(conn: sqlite3.Connection, machine_id: str, target_root: str) -> OverlapReuseIndex:
    """Build the overlap index from the machine's other authoritative scans."""
    roots = conn.execute(
        """
        SELECT root, current_scan_id
        FROM roots
        WHERE machine_id = ? AND root <> ? AND current_scan_id IS NOT NULL
        """,
        (machine_id, target_root),
    ).fetchall()

    index = OverlapReuseIndex()
    for source_root, scan_id in roots:
        overlap = classify_overlap_root(target_root, source_root, scan_id)
        if overlap is None:
            continue
        if overlap.kind is OverlapRootKind.ANCESTOR:
            _load_ancestor_entries(conn, index, overlap)
        else:
            _load_descendant_entries(conn, index, overlap)
    return index