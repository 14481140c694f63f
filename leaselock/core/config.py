"""
Centralized Configuration Management for leaselock

Provides pydantic-based configuration with:
- Environment variable loading (.env support)
- Type validation
- Default values

Usage:
    from leaselock.core.config import get_config

    config = get_config()
    print(config.default_timeout)
    print(config.resolved_db_path)
"""

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from leaselock.core.storage.paths import default_cleanup_marker_path, default_db_path


class LeaseLockConfig(BaseSettings):
    """
    Central configuration for leaselock

    All settings can be overridden via environment variables with LEASELOCK_ prefix.
    For example: LEASELOCK_DB_PATH, LEASELOCK_DEFAULT_TIMEOUT, etc.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="LEASELOCK_",
        case_sensitive=False,
        extra="ignore",
    )

    # ============================================
    # Storage Configuration
    # ============================================

    db_path: Optional[Path] = Field(
        default=None,
        description="Lock database file (default: ~/.leaselock/store/locks.sqlite)"
    )

    sqlite_busy_timeout: int = Field(
        default=5000,
        ge=0,
        description="SQLite busy timeout in milliseconds"
    )

    # ============================================
    # Lease Configuration
    # ============================================

    default_timeout: int = Field(
        default=300,
        ge=0,
        description="Default lease duration in seconds (default: 5 minutes)"
    )

    cleanup_interval: int = Field(
        default=3600,
        ge=0,
        description="Minimum seconds between two stale-lock sweeps (default: 1 hour)"
    )

    cleanup_marker_path: Optional[Path] = Field(
        default=None,
        description="File recording the last sweep time (default: <tempdir>/leaselock_cleanup_time_<db path digest>)"
    )

    wait_poll_interval: float = Field(
        default=1.0,
        gt=0,
        description="Seconds between acquisition attempts in wait_and_acquire"
    )

    # ============================================
    # Application Configuration
    # ============================================

    log_level: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL"
    )

    @property
    def resolved_db_path(self) -> Path:
        """Configured database path, falling back to the unified store path"""
        return self.db_path or default_db_path()

    @property
    def resolved_cleanup_marker_path(self) -> Path:
        return self.cleanup_marker_path or default_cleanup_marker_path(self.resolved_db_path)

    # ============================================
    # Validators
    # ============================================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(
                f"log_level must be one of: {', '.join(valid_levels)}"
            )
        return v.upper()


# Global config instance
_config: Optional[LeaseLockConfig] = None


def get_config(force_reload: bool = False) -> LeaseLockConfig:
    """
    Get the global configuration instance

    Args:
        force_reload: Force reload configuration from environment

    Returns:
        LeaseLockConfig instance

    Example:
        >>> config = get_config()
        >>> print(config.cleanup_interval)
    """
    global _config

    if _config is None or force_reload:
        _config = LeaseLockConfig()

    return _config
