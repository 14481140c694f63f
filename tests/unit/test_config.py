from pathlib import Path

import pytest
from pydantic import ValidationError

from leaselock.core import config as config_module
from leaselock.core.config import LeaseLockConfig, get_config
from leaselock.core.storage.paths import default_cleanup_marker_path, default_db_path


@pytest.fixture(autouse=True)
def reset_global_config(monkeypatch):
    monkeypatch.setattr(config_module, "_config", None)
    for name in (
        "LEASELOCK_DB_PATH",
        "LEASELOCK_DEFAULT_TIMEOUT",
        "LEASELOCK_CLEANUP_INTERVAL",
        "LEASELOCK_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    config = LeaseLockConfig(_env_file=None)
    assert config.default_timeout == 300
    assert config.cleanup_interval == 3600
    assert config.sqlite_busy_timeout == 5000
    assert config.wait_poll_interval == 1.0
    assert config.log_level == "INFO"
    assert config.resolved_db_path == default_db_path()
    assert config.resolved_cleanup_marker_path == default_cleanup_marker_path()


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("LEASELOCK_DB_PATH", str(tmp_path / "locks.sqlite"))
    monkeypatch.setenv("LEASELOCK_DEFAULT_TIMEOUT", "42")
    monkeypatch.setenv("LEASELOCK_LOG_LEVEL", "debug")

    config = get_config(force_reload=True)
    assert config.resolved_db_path == Path(tmp_path / "locks.sqlite")
    assert config.default_timeout == 42
    assert config.log_level == "DEBUG"


def test_get_config_is_cached(monkeypatch):
    first = get_config()
    monkeypatch.setenv("LEASELOCK_DEFAULT_TIMEOUT", "7")

    assert get_config() is first
    assert get_config(force_reload=True).default_timeout == 7


@pytest.mark.parametrize(
    "kwargs",
    [
        {"log_level": "chatty"},
        {"default_timeout": -1},
        {"wait_poll_interval": 0},
    ],
)
def test_invalid_values_rejected(kwargs):
    with pytest.raises(ValidationError):
        LeaseLockConfig(_env_file=None, **kwargs)
