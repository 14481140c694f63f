# leaselock/core/storage/paths.py
from __future__ import annotations
from pathlib import Path
import hashlib
import sqlite3
import tempfile
import time


def leaselock_home() -> Path:
    """Always ~/.leaselock (Windows too)"""
    return Path.home() / ".leaselock"


def store_root() -> Path:
    """Unified storage root"""
    return leaselock_home() / "store"


def default_db_path() -> Path:
    """Default lock database file shared by every process on the host"""
    return store_root() / "locks.sqlite"


def default_cleanup_marker_path(db_path: Path | None = None) -> Path:
    """File recording the last stale-lock sweep of one database

    The name carries a digest of the database path, so sweeps of different
    databases are rate limited independently.
    """
    db = Path(db_path) if db_path is not None else default_db_path()
    digest = hashlib.sha256(str(db.expanduser().resolve()).encode("utf-8")).hexdigest()[:16]
    return Path(tempfile.gettempdir()) / f"leaselock_cleanup_time_{digest}"


def _enable_wal(conn: sqlite3.Connection, timeout: float) -> str:
    # Changing journal_mode does not go through the busy handler, so a
    # concurrent opener holding the file yields "database is locked" at once.
    deadline = time.monotonic() + timeout
    while True:
        try:
            mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
            if mode.lower() != "wal":
                mode = conn.execute("PRAGMA journal_mode=WAL").fetchone()[0]
            return mode
        except sqlite3.OperationalError as e:
            if "locked" not in str(e) or time.monotonic() >= deadline:
                raise
            time.sleep(0.05)


def ensure_db_exists(db_path: Path | None = None, busy_timeout_ms: int = 5000) -> Path:
    """Make sure the database file exists in WAL mode, returning its path

    Safe to call from many processes opening the same new file at once.
    """
    p = Path(db_path) if db_path is not None else default_db_path()
    p.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(p), timeout=busy_timeout_ms / 1000)
    try:
        _enable_wal(conn, busy_timeout_ms / 1000)
    finally:
        conn.close()

    return p
