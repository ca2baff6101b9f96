"""Directory traversal that feeds the inventory pipeline.

Every regular file under the root produces a :class:`BaseEntry`. Files
whose size and mtime match a reusable earlier entry come out as
``"reused"`` with the stored hashes copied in. All other files come out
as ``"pending"`` together with a :class:`HashJob`.

Symlinks, non-regular files and the excluded database files are
skipped. A directory that cannot be read is skipped with its subtree.
Directories are visited depth first, with names in lexical order.
"""

from __future__ import annotations

import os
import posixpath
import stat
import threading
from collections.abc import Collection, Iterator

from .exclude import resolve_abs_path, should_exclude
from .progress import ScanProgress
from .relpath import stored_rel_path_norm
from .reuse import ReuseSources
from .types import BaseEntry, HashJob, ScanCancelled


def _check_cancel(cancel: threading.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise ScanCancelled("scan cancelled")


def _extension(name: str) -> str:
    """Lower-cased suffix from the last dot on, or ``""`` if there is none."""
    dot = name.rfind(".")
    return name[dot:].lower() if dot >= 0 else ""


def _relative(root: str, path: str) -> str | None:
    try:
        rel = os.path.relpath(path, root)
    except ValueError:
        return None
    return rel.replace(os.sep, "/")


def _sorted_children(directory: str) -> list[os.DirEntry] | None:
    try:
        with os.scandir(directory) as it:
            return sorted(it, key=lambda e: e.name)
    except OSError:
        return None


def _note(progress: ScanProgress | None, entry: BaseEntry) -> None:
    if progress is not None:
        progress.note_discovered(entry.state)


def _file_item(
    root: str,
    path: str,
    st: os.stat_result,
    reuse: ReuseSources,
    exclude_set: Collection[str] | None,
) -> tuple[BaseEntry, HashJob | None] | None:
    if not stat.S_ISREG(st.st_mode):
        return None
    abs_path = resolve_abs_path(path)
    if should_exclude(abs_path, exclude_set):
        return None
    rel = _relative(root, path)
    if rel is None:
        return None

    rel_path_norm = stored_rel_path_norm(rel) or ""
    name = posixpath.basename(rel)
    ext = _extension(name)
    size = st.st_size
    mtime_ns = st.st_mtime_ns

    prev = reuse.lookup(rel, size, mtime_ns)
    if prev is not None:
        entry = BaseEntry(
            rel_path=rel,
            rel_path_norm=rel_path_norm,
            name=name,
            ext=ext,
            size=size,
            mtime_ns=mtime_ns,
            state="reused",
            fingerprint=prev.fingerprint,
            sha256=prev.sha256,
        )
        return entry, None

    entry = BaseEntry(
        rel_path=rel,
        rel_path_norm=rel_path_norm,
        name=name,
        ext=ext,
        size=size,
        mtime_ns=mtime_ns,
        state="pending",
    )
    job = HashJob(abs_path=abs_path, rel_path=rel, size=size, mtime_ns=mtime_ns)
    return entry, job


def walk_entries(
    root: str,
    reuse: ReuseSources,
    exclude_set: Collection[str] | None = None,
    progress: ScanProgress | None = None,
    cancel: threading.Event | None = None,
) -> Iterator[tuple[BaseEntry, HashJob | None]]:
    """Yield ``(entry, job)`` for every regular file under ``root``.

    ``job`` is ``None`` for reused entries and for the error entry
    produced when ``root`` itself cannot be examined. Raises
    :class:`ScanCancelled` when ``cancel`` is set; errors from loading
    reuse data propagate.
    """
    _check_cancel(cancel)
    try:
        root_stat = os.lstat(root)
    except OSError as exc:
        rel = _relative(root, root)
        if rel is not None:
            name = posixpath.basename(rel)
            entry = BaseEntry(
                rel_path=rel,
                name=name,
                ext=_extension(name),
                state="error",
                err_msg=str(exc),
            )
            _note(progress, entry)
            yield entry, None
        return

    if not stat.S_ISDIR(root_stat.st_mode):
        item = _file_item(root, root, root_stat, reuse, exclude_set)
        if item is not None:
            _note(progress, item[0])
            yield item
        return

    children = _sorted_children(root)
    if children is None:
        return
    stack: list[Iterator[os.DirEntry]] = [iter(children)]
    while stack:
        child = next(stack[-1], None)
        if child is None:
            stack.pop()
            continue
        _check_cancel(cancel)
        try:
            st = child.stat(follow_symlinks=False)
        except OSError:
            continue
        if stat.S_ISDIR(st.st_mode):
            grandchildren = _sorted_children(child.path)
            if grandchildren is not None:
                stack.append(iter(grandchildren))
            continue
        item = _file_item(root, child.path, st, reuse, exclude_set)
        if item is not None:
            _note(progress, item[0])
            yield item