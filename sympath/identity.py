"""The stable local-machine identity stored in an inventory database.

A database may hold scans from many machines after consolidation, but
local rescans need to know which identity to use for new rows. That
identity is kept in the ``metadata`` table so later scans stay
consistent.
"""

from __future__ import annotations

import socket
import sqlite3
import uuid

from .schema import (
    METADATA_LOCAL_HOSTNAME_KEY,
    METADATA_LOCAL_MACHINE_ID_KEY,
    _UPSERT_METADATA_SQL,
    _transaction,
    configure_connection,
    ensure_schema,
)
from .types import MachineIdentity

_UNKNOWN_HOST = "unknown-host"


def prepare_local_machine_db(conn: sqlite3.Connection, identity: MachineIdentity) -> None:
    """Configure ``conn`` for local scanning and record ``identity`` in it."""
    configure_connection(conn)
    set_local_machine_identity(conn, identity)


def set_local_machine_identity(conn: sqlite3.Connection, identity: MachineIdentity) -> None:
    """Record the identity that later local scans into ``conn`` should use.

    Raises ValueError if the machine ID or hostname is empty.
    """
    if not identity.machine_id:
        raise ValueError("machine ID is required")
    if not identity.hostname:
        raise ValueError("hostname is required")
    ensure_schema(conn, identity)
    with _transaction(conn):
        conn.execute(
            _UPSERT_METADATA_SQL, (METADATA_LOCAL_MACHINE_ID_KEY, identity.machine_id)
        )
        conn.execute(
            _UPSERT_METADATA_SQL, (METADATA_LOCAL_HOSTNAME_KEY, identity.hostname)
        )


def _local_hostname() -> str:
    try:
        name = socket.gethostname()
    except OSError:
        name = ""
    return name or _UNKNOWN_HOST


def get_local_machine_identity(conn: sqlite3.Connection) -> MachineIdentity:
    """Return the identity stored in ``conn``, creating one if none is stored.

    A missing machine ID is replaced by a fresh UUID and a missing
    hostname by the current host name; the result is saved.
    """
    bootstrap = MachineIdentity(machine_id=str(uuid.uuid4()), hostname=_local_hostname())
    ensure_schema(conn, bootstrap)

    stored = dict(
        conn.execute(
            "SELECT key, value FROM metadata WHERE key IN (?, ?)",
            (METADATA_LOCAL_MACHINE_ID_KEY, METADATA_LOCAL_HOSTNAME_KEY),
        ).fetchall()
    )
    machine_id = stored.get(METADATA_LOCAL_MACHINE_ID_KEY, "")
    hostname = stored.get(METADATA_LOCAL_HOSTNAME_KEY, "")
    if machine_id and hostname:
        return MachineIdentity(machine_id=machine_id, hostname=hostname)

    identity = MachineIdentity(
        machine_id=machine_id or bootstrap.machine_id,
        hostname=hostname or bootstrap.hostname,
    )
    set_local_machine_identity(conn, identity)
    return identity