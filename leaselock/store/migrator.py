"""Database migration utilities for the lock store

- Versions are never hard-coded: they are scanned from migrations/vNN_*.sql
- Applied versions are recorded in schema_version
- Running the migrator twice is a no-op
"""

import logging
import re
import sqlite3
from pathlib import Path
from typing import List, Tuple

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

_MIGRATION_PATTERN = re.compile(r"^v(\d+)_(.+)\.sql$")


class MigrationError(Exception):
    """Raised when a migration file cannot be applied"""


class Migrator:
    """Applies pending SQL migrations to one SQLite database"""

    def __init__(
        self,
        db_path: Path,
        migrations_dir: Path = MIGRATIONS_DIR,
        busy_timeout_ms: int = 5000
    ):
        self.db_path = Path(db_path)
        self.migrations_dir = Path(migrations_dir)
        self.busy_timeout_ms = busy_timeout_ms

    def _connect(self) -> sqlite3.Connection:
        # Several processes may migrate the same new file at once
        return sqlite3.connect(str(self.db_path), timeout=self.busy_timeout_ms / 1000)

    def _ensure_version_table(self, conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                description TEXT,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        conn.commit()

    def get_current_version(self, conn: sqlite3.Connection) -> int:
        """
        Highest applied migration version (0 if none)
        """
        row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] or 0

    def get_available_migrations(self) -> List[Tuple[int, Path]]:
        """
        Scan the migrations directory

        Returns:
            (version, path) tuples sorted by version
        """
        if not self.migrations_dir.exists():
            logger.warning(f"Migrations directory not found: {self.migrations_dir}")
            return []

        migrations = []
        for file in self.migrations_dir.iterdir():
            match = _MIGRATION_PATTERN.match(file.name)
            if match:
                migrations.append((int(match.group(1)), file))

        migrations.sort(key=lambda m: m[0])
        return migrations

    def get_pending_migrations(self, conn: sqlite3.Connection) -> List[Tuple[int, Path]]:
        current_version = self.get_current_version(conn)
        all_migrations = self.get_available_migrations()
        pending = [(v, p) for v, p in all_migrations if v > current_version]

        logger.debug(
            f"Current version: v{current_version:02d}, "
            f"Available migrations: {len(all_migrations)}, "
            f"Pending: {len(pending)}"
        )
        return pending

    def execute_migration(
        self,
        conn: sqlite3.Connection,
        version: int,
        migration_file: Path
    ) -> None:
        """
        Execute a single migration file and record its version

        Raises:
            MigrationError: if the SQL fails
        """
        logger.info(f"Executing migration v{version:02d}: {migration_file.name}")

        try:
            migration_sql = migration_file.read_text(encoding="utf-8")
            conn.executescript(migration_sql)

            description = _MIGRATION_PATTERN.match(migration_file.name).group(2)
            conn.execute(
                "INSERT OR IGNORE INTO schema_version (version, description) VALUES (?, ?)",
                (version, description.replace("_", " ")),
            )
            conn.commit()
            logger.info(f"Migration v{version:02d} completed successfully")

        except sqlite3.Error as e:
            conn.rollback()
            error_msg = f"Migration v{version:02d} failed: {e}"
            logger.error(error_msg)
            raise MigrationError(error_msg) from e

    def migrate(self) -> int:
        """
        Apply all pending migrations

        Returns:
            Number of migrations applied
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._connect()

        try:
            self._ensure_version_table(conn)
            pending_migrations = self.get_pending_migrations(conn)

            if not pending_migrations:
                return 0

            for version, migration_file in pending_migrations:
                self.execute_migration(conn, version, migration_file)

            logger.info(f"Successfully applied {len(pending_migrations)} migrations")
            return len(pending_migrations)

        finally:
            conn.close()

    def status(self) -> dict:
        """
        Migration status

        Returns:
            {
                "current_version": int,
                "latest_version": int,
                "pending_count": int,
                "applied_migrations": List[str],
                "pending_migrations": List[str]
            }
        """
        if not self.db_path.exists():
            return {
                "current_version": 0,
                "latest_version": 0,
                "pending_count": 0,
                "applied_migrations": [],
                "pending_migrations": [],
                "error": "Database not found"
            }

        conn = self._connect()

        try:
            self._ensure_version_table(conn)
            current_version = self.get_current_version(conn)
            all_migrations = self.get_available_migrations()
            pending_migrations = self.get_pending_migrations(conn)

            return {
                "current_version": current_version,
                "latest_version": all_migrations[-1][0] if all_migrations else 0,
                "pending_count": len(pending_migrations),
                "applied_migrations": [f"v{v:02d}" for v, _ in all_migrations if v <= current_version],
                "pending_migrations": [f"v{v:02d}" for v, _ in pending_migrations],
            }

        finally:
            conn.close()


def auto_migrate(db_path: Path, busy_timeout_ms: int = 5000) -> int:
    """
    Bring the lock database schema up to date

    Returns:
        Number of migrations applied

    Raises:
        MigrationError: migration failed
    """
    return Migrator(db_path, busy_timeout_ms=busy_timeout_ms).migrate()


def get_migration_status(db_path: Path) -> dict:
    return Migrator(db_path).status()
