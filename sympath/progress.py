"""Live scan counters that can be sampled while a scan runs."""

from __future__ import annotations

import threading
from dataclasses import dataclass


@dataclass(frozen=True)
class ScanProgressSnapshot:
    """A point-in-time view of :class:`ScanProgress`."""

    files_discovered: int = 0
    files_processed: int = 0
    files_pending: int = 0
    files_hashed: int = 0
    files_reused: int = 0
    walk_complete: bool = False


class ScanProgress:
    """Thread-safe scan counters. A fresh instance is ready to use."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._discovered = 0
        self._processed = 0
        self._hashed = 0
        self._reused = 0
        self._walk_complete = False

    def snapshot(self) -> ScanProgressSnapshot:
        """Return a consistent view of the current counts."""
        with self._lock:
            discovered = self._discovered
            processed = min(self._processed, discovered)
            return ScanProgressSnapshot(
                files_discovered=discovered,
                files_processed=processed,
                files_pending=discovered - processed,
                files_hashed=self._hashed,
                files_reused=self._reused,
                walk_complete=self._walk_complete,
            )

    def note_discovered(self, state: str) -> None:
        """Count a file found by the walker with its initial state."""
        with self._lock:
            self._discovered += 1
            if state == "reused":
                self._reused += 1
                self._processed += 1
            elif state == "error":
                self._processed += 1

    def note_hashed(self) -> None:
        """Count a file whose hash result has been produced."""
        with self._lock:
            self._hashed += 1
            self._processed += 1

    def note_walk_complete(self) -> None:
        """Mark the directory walk as finished."""
        with self._lock:
            self._walk_complete = True