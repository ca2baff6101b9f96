"""Content hashing: full SHA-256 plus a fast head/tail fingerprint.

Both hashes come from one sequential read. The file is stat'ed before
and after reading; if it changed, or no longer matches the size and
mtime the walker saw, the result is marked ``"unstable"``.
"""

from __future__ import annotations

import hashlib
import os
import queue
import threading

from .progress import ScanProgress
from .types import HashJob, HashResult

READ_BUF_SIZE = 1024 * 1024
FINGERPRINT_SAMPLE = 64 * 1024

_POLL_INTERVAL = 0.05


def compute_fingerprint(first: bytes, last: bytes, size: int) -> str:
    """SHA-256 of ``first || last || size`` (8-byte little-endian), as hex."""
    h = hashlib.sha256()
    h.update(first)
    h.update(last)
    h.update((size & 0xFFFFFFFFFFFFFFFF).to_bytes(8, "little"))
    return h.hexdigest()


def _stat_failure(exc: OSError) -> HashResult:
    state = "vanished" if isinstance(exc, FileNotFoundError) else "error"
    return HashResult(state=state, err=str(exc))


def compute_hashes(abs_path: str, expected_size: int, expected_mtime_ns: int) -> HashResult:
    """Hash the file at ``abs_path`` and check it stayed unchanged while read.

    The returned state is ``"ok"``, ``"unstable"``, ``"vanished"`` or ``"error"``.
    """
    try:
        pre = os.stat(abs_path)
    except OSError as exc:
        return _stat_failure(exc)

    full = hashlib.sha256()
    first = b""
    last = b""
    try:
        with open(abs_path, "rb") as f:
            while chunk := f.read(READ_BUF_SIZE):
                full.update(chunk)
                if len(first) < FINGERPRINT_SAMPLE:
                    first += chunk[: FINGERPRINT_SAMPLE - len(first)]
                last = (last + chunk)[-FINGERPRINT_SAMPLE:]
    except OSError as exc:
        return _stat_failure(exc)

    sha = full.hexdigest()
    fingerprint = compute_fingerprint(first, last, pre.st_size)

    try:
        post = os.stat(abs_path)
    except OSError as exc:
        return _stat_failure(exc)

    if (
        post.st_size != pre.st_size
        or post.st_mtime_ns != pre.st_mtime_ns
        or pre.st_size != expected_size
        or pre.st_mtime_ns != expected_mtime_ns
    ):
        return HashResult(
            state="unstable",
            fingerprint=fingerprint,
            sha256=sha,
            err="file changed during read",
        )
    return HashResult(state="ok", fingerprint=fingerprint, sha256=sha)


def _hash_job(job: HashJob) -> HashResult:
    result = compute_hashes(job.abs_path, job.size, job.mtime_ns)
    if result.state == "unstable":
        result = compute_hashes(job.abs_path, job.size, job.mtime_ns)
    result.rel_path = job.rel_path
    return result


def _cancelled(cancel: threading.Event | None) -> bool:
    return cancel is not None and cancel.is_set()


def hash_worker(
    jobs: "queue.Queue[HashJob | None]",
    results: "queue.Queue[HashResult]",
    progress: ScanProgress | None = None,
    cancel: threading.Event | None = None,
) -> None:
    """Hash jobs from ``jobs`` into ``results`` until a ``None`` sentinel arrives.

    The sentinel is put back so that every worker sharing the queue stops.
    An unstable file is retried once. The worker returns early when
    ``cancel`` is set.
    """
    while not _cancelled(cancel):
        try:
            job = jobs.get(timeout=_POLL_INTERVAL)
        except queue.Empty:
            continue
        if job is None:
            jobs.put(None)
            return
        result = _hash_job(job)
        while True:
            if _cancelled(cancel):
                return
            try:
                results.put(result, timeout=_POLL_INTERVAL)
            except queue.Full:
                continue
            break
        if progress is not None:
            progress.note_hashed()