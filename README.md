# sympath

`sympath` is a library that walks a directory tree and records every regular
file in a SQLite database. For each file it stores:

- the relative path, with forward slashes;
- the name and the lower-cased extension;
- the size and the modification time in nanoseconds;
- a full SHA-256;
- a fast fingerprint.

The fingerprint is the SHA-256 of three parts: the first 64 KiB, the last
64 KiB, and the file size as 8 little-endian bytes.

Each machine and root keeps a single authoritative snapshot. A new scan is
written as a `running` scan row. It becomes the root's current snapshot only
after the whole walk, hash and write pipeline has finished. When that happens,
the older scans of that root are deleted. If a scan fails or is cancelled, it
is marked `failed` and the previous snapshot stays current.

## Features

- **Fast rescans.** Files whose size and modification time have not changed
  keep their stored hashes instead of being read again. Such files are stored
  with state `reused`. Hashes can come from:
  - the current snapshot of the same root;
  - the newest `failed` scan of that root, using only its `ok` and `reused`
    rows;
  - current snapshots of overlapping roots on the same machine. These are
    roots that are ancestors or descendants of the root being scanned, and
    they are consulted only when the first two give no match.

  If several matching candidates disagree on their hashes, the file is hashed
  again. Rows of a scan that is still `running` are never reused.
- **Change detection while hashing.** Each file is stat'ed before and after it
  is read. If it changed, the file is read once more. If it still does not
  match, it is stored as `unstable`. A file that disappears before it can be
  read is stored as `vanished`.
- **Self-exclusion.** When the database sits inside the scanned tree, it is
  skipped, together with its `-wal`, `-shm` and `-journal` companions.
  Symlinks and non-regular files are skipped too, as are directories that
  cannot be read.
- **Machine-aware storage.** Every scan is tagged with a machine ID and a
  hostname, so databases from several machines can be merged into one. Older
  databases without these columns are migrated in place.
- **Unicode path keys.** When the NFC form of a path differs from its raw
  form, the NFC form is also stored in `rel_path_norm`.
- **Volume metadata.** Each scan records the operating system, the CPU
  architecture, the filesystem type and whether the filesystem is case
  sensitive. The filesystem type is read from the mount table through psutil.
  Case sensitivity is found by creating a probe file.

## Scanning a tree

```python
import sqlite3

from sympath.identity import prepare_local_machine_db
from sympath.inventory import inventory_tree
from sympath.progress import ScanProgress
from sympath.types import MachineIdentity

conn = sqlite3.connect("inventory.sympath")
prepare_local_machine_db(
    conn, MachineIdentity(machine_id="machine-a", hostname="host-a")
)

progress = ScanProgress()
inventory_tree(conn, "/data/photos", progress)

snap = progress.snapshot()
print(snap.files_discovered, snap.files_hashed, snap.files_reused)
```

`prepare_local_machine_db` applies the connection settings and records the
identity in the `metadata` table. The settings are WAL journaling,
`synchronous=NORMAL`, foreign keys, and a 5 second busy timeout. This call is
optional. Without it, `get_local_machine_identity` fills in whatever is
missing and stores the result in the database: a random UUID for the machine
ID, and the current host name for the hostname.

`inventory_tree(conn, root, progress=None, cancel=None, on_scan_created=None)`:

- `progress` is a `ScanProgress`. It is safe to read from another thread
  while the scan runs.
- `cancel` is a `threading.Event`. Setting it stops the scan with
  `sympath.types.ScanCancelled`, and the scan is recorded as `failed`.
- `on_scan_created` is called with the new scan ID once its row exists.

Files are hashed by up to four worker threads. The rows are written on the
calling thread, in transactions of up to 5000 operations each.

## Consolidating databases

```python
import sqlite3

from sympath.consolidate import delete_machine_data, import_current_scans
from sympath.identity import prepare_local_machine_db
from sympath.types import MachineIdentity

target = sqlite3.connect("combined.sympath")
prepare_local_machine_db(
    target, MachineIdentity(machine_id="machine-a", hostname="host-a")
)
source = sqlite3.connect("remote.sympath")

summary = import_current_scans(target, source)
print(summary.machine_ids, summary.roots)

delete_machine_data(target, ["retired-machine"])
```

The target must already have the schema. `prepare_local_machine_db` or
`sympath.schema.ensure_schema` sets it up.

`import_current_scans` copies only the current snapshots of the source. For
each machine and root, it first removes what the target already held, so
repeating the import gives the same result. If the source has no
`rel_path_norm` column, the NFC keys are computed during the import.

`delete_machine_data` removes the scans, entries and root pointers of the
given machines.

`sympath.schema.is_machine_aware_inventory_db(conn)` reports whether a
database already has the machine-aware layout. It does not modify the
database.

## Other helpers

- `sympath.filename.new_random_sympath_filename()` returns a random
  alphanumeric name with ten characters, such as `aB3dE5gH7j.sympath`.
- `sympath.filename.random_sympath_filename(length)` does the same with a
  chosen length. Lengths below ten raise `ValueError`.
- `sympath.relpath.compare_rel_path_key(rel_path)` returns the NFC comparison
  key for a relative path.
- `sympath.relpath.ensure_rel_path_norm_backfill(conn)` fills
  `rel_path_norm` for rows written before that column existed. It runs once
  per database and records that it has done so in `metadata`.
- `sympath.hashing.compute_hashes(path, size, mtime_ns)` hashes one file and
  returns a `HashResult`.
- `sympath.fsinfo.detect_volume_info(root)` returns a `VolumeInfo` for a
  path.

## What it does not do

`sympath` is a library only. It has no command-line program. It does not
fetch databases from other machines. It does not read a machine ID from a
file: the machine identity is whatever the caller passes in, or whatever is
already stored in the database. It has no functions for comparing or browsing
snapshots. The data is left in the SQLite tables `metadata`, `roots`, `scans`
and `entries`, for the caller to query.