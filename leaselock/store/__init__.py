"""Store module - SQLite schema management"""

from .migrator import MigrationError, Migrator, auto_migrate, get_migration_status

__all__ = [
    "MigrationError",
    "Migrator",
    "auto_migrate",
    "get_migration_status",
]
