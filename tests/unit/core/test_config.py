"""Unit tests for core config parsing."""

from __future__ import annotations

import pytest

from core.config import PatrolConfig, parse_driver, parse_file_mode
from core.errors import PatrolConfigError


def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "PATROL_STORAGE_PATH",
        "PATROL_STORAGE_DRIVER",
        "PATROL_STORAGE_FILE_MODE",
        "PATROL_STORAGE_VERSION",
        "PATROL_VERSIONING_ENABLED",
        "PATROL_DELEGATION_RETENTION_DAYS",
        "PATROL_DELEGATION_RETENTION",
        "PATROL_DELEGATION_MAX_DAYS",
    ):
        monkeypatch.delenv(name, raising=False)


def test_from_env_uses_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should fall back to documented defaults."""
    _clear_env(monkeypatch)

    config = PatrolConfig.from_env()

    assert (config.storage_path.name, config.driver, config.file_mode) == (
        ".patrol",
        "json",
        "multiple",
    )
    assert config.version is None and config.versioning_enabled
    assert config.retention_days == 90
    assert config.max_delegation_days == 90


def test_from_env_reads_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should honor every PATROL_* variable."""
    _clear_env(monkeypatch)
    monkeypatch.setenv("PATROL_STORAGE_PATH", "./.tmp-patrol")
    monkeypatch.setenv("PATROL_STORAGE_DRIVER", "YAML")
    monkeypatch.setenv("PATROL_STORAGE_FILE_MODE", "single")
    monkeypatch.setenv("PATROL_STORAGE_VERSION", "1.2.0")
    monkeypatch.setenv("PATROL_VERSIONING_ENABLED", "off")
    monkeypatch.setenv("PATROL_DELEGATION_RETENTION_DAYS", "7")
    monkeypatch.setenv("PATROL_DELEGATION_MAX_DAYS", "14")

    config = PatrolConfig.from_env()

    assert config.storage_path.name == ".tmp-patrol"
    assert config.storage_path.is_absolute()
    assert (config.driver, config.file_mode, config.version) == ("yaml", "single", "1.2.0")
    assert not config.versioning_enabled
    assert config.retention_days == 7
    assert config.max_delegation_days == 14


def test_from_env_treats_empty_version_as_unpinned(monkeypatch: pytest.MonkeyPatch) -> None:
    """An empty version variable should mean latest."""
    _clear_env(monkeypatch)
    monkeypatch.setenv("PATROL_STORAGE_VERSION", "")

    assert PatrolConfig.from_env().version is None


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("PATROL_STORAGE_DRIVER", "xml"),
        ("PATROL_STORAGE_FILE_MODE", "sharded"),
        ("PATROL_VERSIONING_ENABLED", "maybe"),
        ("PATROL_DELEGATION_RETENTION_DAYS", "ninety"),
        ("PATROL_DELEGATION_RETENTION_DAYS", "-1"),
        ("PATROL_DELEGATION_RETENTION", "soon"),
        ("PATROL_DELEGATION_MAX_DAYS", "-3"),
    ],
)
def test_from_env_raises_for_invalid_values(
    monkeypatch: pytest.MonkeyPatch,
    name: str,
    value: str,
) -> None:
    """Config should fail with a config error for malformed values."""
    _clear_env(monkeypatch)
    monkeypatch.setenv(name, value)

    with pytest.raises(PatrolConfigError):
        PatrolConfig.from_env()


def test_parse_helpers_normalize_case() -> None:
    """Driver and file mode parsing should ignore case and whitespace."""
    assert parse_driver(" TOML ") == "toml"
    assert parse_file_mode("Multiple") == "multiple"


def test_from_env_accepts_short_retention_name(monkeypatch: pytest.MonkeyPatch) -> None:
    """The short retention variable applies unless the long one is set."""
    _clear_env(monkeypatch)
    monkeypatch.setenv("PATROL_DELEGATION_RETENTION", "30")

    assert PatrolConfig.from_env().retention_days == 30

    monkeypatch.setenv("PATROL_DELEGATION_RETENTION_DAYS", "5")

    assert PatrolConfig.from_env().retention_days == 5


def test_from_env_zero_max_days_disables_limit(monkeypatch: pytest.MonkeyPatch) -> None:
    """A zero maximum lifetime should mean no limit."""
    _clear_env(monkeypatch)
    monkeypatch.setenv("PATROL_DELEGATION_MAX_DAYS", "0")

    assert PatrolConfig.from_env().max_delegation_days is None
