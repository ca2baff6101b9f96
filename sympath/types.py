"""Records passed between the stages of the inventory pipeline."""

from __future__ import annotations

from dataclasses import dataclass


class ScanCancelled(Exception):
    """Raised when a scan is stopped by its cancel event."""


@dataclass(frozen=True)
class MachineIdentity:
    """Identifies the machine that produces local scan rows.

    ``machine_id`` is the stable key used in the database; ``hostname``
    is display metadata only, since hostnames can change.
    """

    machine_id: str
    hostname: str


@dataclass(frozen=True)
class PrevEntry:
    """The part of a stored entry needed to decide whether hashes can be reused."""

    size: int
    mtime_ns: int
    fingerprint: str = ""
    sha256: str = ""


@dataclass(frozen=True)
class HashJob:
    """A file whose content must be hashed.

    ``abs_path`` is used to open the file; ``rel_path`` is the
    forward-slash key stored in the database.
    """

    abs_path: str
    rel_path: str
    size: int
    mtime_ns: int


@dataclass
class HashResult:
    """Outcome of hashing one file.

    ``state`` is one of ``"ok"``, ``"unstable"``, ``"vanished"`` or ``"error"``.
    """

    state: str
    rel_path: str = ""
    fingerprint: str = ""
    sha256: str = ""
    err: str = ""


@dataclass(frozen=True)
class BaseEntry:
    """Metadata for one regular file, emitted by the walker.

    ``state`` is ``"reused"`` (hashes filled in from an earlier scan),
    ``"pending"`` (a hash job was queued) or ``"error"`` (``err_msg`` says why).
    """

    rel_path: str
    name: str
    ext: str
    state: str
    size: int = 0
    mtime_ns: int = 0
    rel_path_norm: str = ""
    fingerprint: str = ""
    sha256: str = ""
    err_msg: str = ""


@dataclass(frozen=True)
class VolumeInfo:
    """Filesystem type name and case sensitivity detected for a root."""

    fs_type: str = ""
    case_sensitive: bool = False