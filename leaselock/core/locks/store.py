"""Lock Store - persistence for leases

The store is the only shared mutable state of the lock manager. Every
mutation below is a single SQL statement, so no two processes can observe a
half-applied change:

- INSERT guarded by UNIQUE(lock_name) (the mutual-exclusion backstop)
- owner-checked UPDATE / DELETE
- staleness-checked DELETE

Liveness in SQL mirrors Lease.is_live():
    now < expires_at AND (now - heartbeat_at) < 2 * timeout_seconds
"""

from __future__ import annotations

import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

from leaselock.core.locks.exceptions import LockStorageError
from leaselock.core.locks.lease import HEARTBEAT_GRACE_FACTOR, Lease
from leaselock.core.storage.paths import ensure_db_exists
from leaselock.store.migrator import MigrationError, auto_migrate

logger = logging.getLogger(__name__)

_STALE_SQL = f"(expires_at <= :now OR (:now - heartbeat_at) >= {HEARTBEAT_GRACE_FACTOR} * timeout_seconds)"
_LIVE_SQL = f"NOT {_STALE_SQL}"

_COLUMNS = (
    "lock_name, lock_id, owner, acquired_at, expires_at, "
    "timeout_seconds, heartbeat_at, metadata"
)


class LockStore(ABC):
    """Storage contract required by LockManager

    Implementations must make insert() atomic with respect to lock_name:
    while a row exists for a name, a second insert for it returns False.
    Unexpected storage failures raise LockStorageError.
    """

    @abstractmethod
    def insert(self, lease: Lease) -> bool:
        """Insert a new lease; False if a row for lease.lock_name exists

        Raises ValueError if the metadata cannot be stored as JSON.
        """

    @abstractmethod
    def get(self, lock_name: str) -> Optional[Lease]:
        """Row for lock_name, live or not"""

    @abstractmethod
    def list_leases(self, live_at: Optional[float] = None) -> List[Lease]:
        """All rows, newest acquisition first; only live ones if live_at is given"""

    @abstractmethod
    def delete(self, lock_name: str) -> Optional[Lease]:
        """Delete the row for lock_name regardless of owner, returning it"""

    @abstractmethod
    def delete_owned(self, lock_name: str, owner: str) -> Optional[Lease]:
        """Delete the row for lock_name if owned by owner, returning it"""

    @abstractmethod
    def delete_if_stale(self, lock_name: str, now: float) -> bool:
        """Delete the row for lock_name only if it is stale at now"""

    @abstractmethod
    def delete_stale(self, now: float) -> int:
        """Delete every stale row, returning the count"""

    @abstractmethod
    def delete_by_owner(self, owner: str) -> int:
        """Delete every row owned by owner, returning the count"""

    @abstractmethod
    def extend(self, lock_name: str, owner: str, extra_seconds: int, now: float) -> bool:
        """Push expires_at and timeout_seconds of a live owned row"""

    @abstractmethod
    def touch(self, lock_name: str, owner: str, now: float) -> bool:
        """Refresh heartbeat_at of a live owned row"""

    @abstractmethod
    def count_acquired_since(self, since: float) -> int:
        """Number of rows acquired at or after since"""


def _row_to_lease(row: sqlite3.Row) -> Lease:
    metadata = {}
    if row["metadata"]:
        try:
            metadata = json.loads(row["metadata"])
        except json.JSONDecodeError:
            logger.warning(f"Failed to parse metadata for lock {row['lock_name']}")

    return Lease(
        lock_name=row["lock_name"],
        lock_id=row["lock_id"],
        owner=row["owner"],
        acquired_at=float(row["acquired_at"]),
        expires_at=float(row["expires_at"]),
        timeout_seconds=int(row["timeout_seconds"]),
        heartbeat_at=float(row["heartbeat_at"]),
        metadata=metadata if isinstance(metadata, dict) else {"value": metadata},
    )


class SQLiteLockStore(LockStore):
    """LockStore over a SQLite database file shared by all processes

    A fresh connection is opened per operation, so one instance can be
    shared freely between threads.

    Example:
        >>> store = SQLiteLockStore(Path("/var/lib/app/locks.sqlite"))
        >>> manager = LockManager(store)
    """

    def __init__(self, db_path: Path, busy_timeout_ms: int = 5000, migrate: bool = True):
        """Initialize SQLite lock store

        Args:
            db_path: Database file (created if missing)
            busy_timeout_ms: How long a writer waits for a competing writer
            migrate: Apply pending schema migrations on startup
        """
        self.db_path = Path(db_path)
        self.busy_timeout_ms = busy_timeout_ms

        try:
            ensure_db_exists(self.db_path, busy_timeout_ms)
            if migrate:
                auto_migrate(self.db_path, busy_timeout_ms)
        except (sqlite3.Error, MigrationError, OSError) as e:
            raise LockStorageError(f"Failed to open lock store {self.db_path}: {e}") from e

    @contextmanager
    def _connection(self, write: bool = True) -> Iterator[sqlite3.Connection]:
        """Connection for exactly one statement, committed on success

        Writes take the database write lock up front (BEGIN IMMEDIATE) so a
        competing writer waits on busy_timeout instead of failing when its
        read snapshot goes stale.
        """
        try:
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.busy_timeout_ms / 1000,
                isolation_level=None,
            )
        except sqlite3.Error as e:
            logger.error(f"Failed to connect to lock store {self.db_path}: {e}")
            raise LockStorageError(f"Failed to connect to lock store: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA synchronous=NORMAL")
            if write:
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            if conn.in_transaction:
                conn.commit()
        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.rollback()
            logger.error(f"Lock store operation failed: {e}")
            raise LockStorageError(f"Lock store operation failed: {e}") from e
        finally:
            conn.close()

    def insert(self, lease: Lease) -> bool:
        try:
            metadata = json.dumps(lease.metadata)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Lock metadata for {lease.lock_name} is not JSON-serializable: {e}") from e

        with self._connection() as conn:
            try:
                conn.execute(
                    f"""
                    INSERT INTO database_locks ({_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        lease.lock_name,
                        lease.lock_id,
                        lease.owner,
                        lease.acquired_at,
                        lease.expires_at,
                        lease.timeout_seconds,
                        lease.heartbeat_at,
                        metadata,
                    ),
                )
            except sqlite3.IntegrityError as e:
                if "lock_name" not in str(e):
                    raise
                return False
        return True

    def get(self, lock_name: str) -> Optional[Lease]:
        with self._connection(write=False) as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM database_locks WHERE lock_name = ?",
                (lock_name,),
            ).fetchone()
        return _row_to_lease(row) if row else None

    def list_leases(self, live_at: Optional[float] = None) -> List[Lease]:
        with self._connection(write=False) as conn:
            if live_at is None:
                rows = conn.execute(
                    f"SELECT {_COLUMNS} FROM database_locks ORDER BY acquired_at DESC"
                ).fetchall()
            else:
                rows = conn.execute(
                    f"""
                    SELECT {_COLUMNS} FROM database_locks
                    WHERE {_LIVE_SQL}
                    ORDER BY acquired_at DESC
                    """,
                    {"now": live_at},
                ).fetchall()
        return [_row_to_lease(row) for row in rows]

    def delete(self, lock_name: str) -> Optional[Lease]:
        with self._connection() as conn:
            rows = conn.execute(
                f"DELETE FROM database_locks WHERE lock_name = ? RETURNING {_COLUMNS}",
                (lock_name,),
            ).fetchall()
        return _row_to_lease(rows[0]) if rows else None

    def delete_owned(self, lock_name: str, owner: str) -> Optional[Lease]:
        with self._connection() as conn:
            rows = conn.execute(
                f"""
                DELETE FROM database_locks
                WHERE lock_name = ? AND owner = ?
                RETURNING {_COLUMNS}
                """,
                (lock_name, owner),
            ).fetchall()
        return _row_to_lease(rows[0]) if rows else None

    def delete_if_stale(self, lock_name: str, now: float) -> bool:
        with self._connection() as conn:
            cursor = conn.execute(
                f"DELETE FROM database_locks WHERE lock_name = :name AND {_STALE_SQL}",
                {"name": lock_name, "now": now},
            )
            return cursor.rowcount > 0

    def delete_stale(self, now: float) -> int:
        with self._connection() as conn:
            cursor = conn.execute(
                f"DELETE FROM database_locks WHERE {_STALE_SQL}",
                {"now": now},
            )
            return cursor.rowcount

    def delete_by_owner(self, owner: str) -> int:
        with self._connection() as conn:
            cursor = conn.execute(
                "DELETE FROM database_locks WHERE owner = ?",
                (owner,),
            )
            return cursor.rowcount

    def extend(self, lock_name: str, owner: str, extra_seconds: int, now: float) -> bool:
        with self._connection() as conn:
            cursor = conn.execute(
                f"""
                UPDATE database_locks
                SET expires_at = expires_at + :extra,
                    timeout_seconds = timeout_seconds + :extra,
                    updated_at = CURRENT_TIMESTAMP
                WHERE lock_name = :name AND owner = :owner AND {_LIVE_SQL}
                """,
                {"extra": extra_seconds, "name": lock_name, "owner": owner, "now": now},
            )
            return cursor.rowcount > 0

    def touch(self, lock_name: str, owner: str, now: float) -> bool:
        with self._connection() as conn:
            cursor = conn.execute(
                f"""
                UPDATE database_locks
                SET heartbeat_at = :now,
                    updated_at = CURRENT_TIMESTAMP
                WHERE lock_name = :name AND owner = :owner AND {_LIVE_SQL}
                """,
                {"name": lock_name, "owner": owner, "now": now},
            )
            return cursor.rowcount > 0

    def count_acquired_since(self, since: float) -> int:
        with self._connection(write=False) as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM database_locks WHERE acquired_at >= ?",
                (since,),
            ).fetchone()
        return int(row[0])
