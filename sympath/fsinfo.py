"""Filesystem type and case-sensitivity detection for a scan root.

The filesystem type comes from the mount table. Case sensitivity is
found by probing: a temporary file is created in the root and its
upper-cased name is looked up.
"""

from __future__ import annotations

import os
import sys
import tempfile

import psutil

from .types import VolumeInfo

_CASE_PROBE_PREFIX = ".case_probe_"

# Names for the filesystem families recognised on Linux. Mount-table
# names that share a statfs magic number with a family are folded into it.
_LINUX_FS_NAMES = {
    "ext2": "ext4",
    "ext3": "ext4",
    "ext4": "ext4",
    "xfs": "xfs",
    "btrfs": "btrfs",
    "tmpfs": "tmpfs",
    "cramfs": "cramfs",
    "jfs": "jfs",
    "reiserfs": "reiserfs",
    "nfs": "nfs",
    "nfs4": "nfs",
    "cifs": "cifs",
    "smb3": "cifs",
    "fuse": "fuse",
    "fuseblk": "fuse",
    "f2fs": "f2fs",
    "bcachefs": "bcachefs",
}


def probe_case_sensitivity(root: str) -> bool:
    """Report whether the filesystem holding ``root`` distinguishes case.

    Creates a probe file in ``root`` and checks whether its upper-cased
    name resolves. If no probe file can be created, case-sensitive is
    assumed as the safer default.
    """
    try:
        fd, probe_path = tempfile.mkstemp(prefix=_CASE_PROBE_PREFIX, dir=root)
    except OSError:
        return True
    try:
        os.close(fd)
        upper_path = os.path.join(root, os.path.basename(probe_path).upper())
        try:
            os.stat(upper_path)
        except OSError:
            return True
        return False
    finally:
        try:
            os.remove(probe_path)
        except OSError:
            pass


def _mount_fs_type(path: str) -> str:
    """Return the mount-table filesystem type of the mount holding ``path``."""
    try:
        partitions = psutil.disk_partitions(all=True)
    except (OSError, RuntimeError):
        return ""
    target = os.path.normcase(path)
    best_len = -1
    best_type = ""
    for part in partitions:
        mountpoint = os.path.normcase(part.mountpoint)
        if not mountpoint:
            continue
        try:
            common = os.path.commonpath([target, mountpoint])
        except ValueError:
            continue
        if os.path.normcase(common) != os.path.normcase(os.path.normpath(mountpoint)):
            continue
        if len(mountpoint) > best_len:
            best_len = len(mountpoint)
            best_type = part.fstype
    return best_type


def _linux_fs_name(mount_type: str) -> str:
    if mount_type.startswith("fuse."):
        return "fuse"
    return _LINUX_FS_NAMES.get(mount_type, "")


def detect_volume_info(root: str) -> VolumeInfo:
    """Return the filesystem type name and case sensitivity for ``root``.

    An empty :class:`VolumeInfo` is returned when ``root`` cannot be
    examined.
    """
    path = os.path.realpath(os.path.abspath(root))
    if sys.platform == "win32":
        drive, _ = os.path.splitdrive(path)
        if not drive:
            return VolumeInfo()
    try:
        os.stat(path)
    except OSError:
        return VolumeInfo()

    mount_type = _mount_fs_type(path)
    if sys.platform.startswith("linux"):
        fs_type = _linux_fs_name(mount_type)
    else:
        fs_type = mount_type
    return VolumeInfo(fs_type=fs_type, case_sensitive=probe_case_sensitivity(path))