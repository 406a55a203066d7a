"""Runtime configuration model for Patrol.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import cast

from core.constants import (
    DEFAULT_FILE_MODE,
    DEFAULT_MAX_DELEGATION_DAYS,
    DEFAULT_RETENTION_DAYS,
    DEFAULT_STORAGE_DRIVER,
    DEFAULT_STORAGE_PATH,
)
from core.errors import PatrolConfigError
from core.types import (
    SUPPORTED_FILE_MODES,
    SUPPORTED_STORAGE_DRIVERS,
    FileMode,
    StorageDriver,
)

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")
_RETENTION_ENV_NAMES = ("PATROL_DELEGATION_RETENTION_DAYS", "PATROL_DELEGATION_RETENTION")


@dataclass(frozen=True)
class PatrolConfig:
    """Validated runtime configuration.

    Attributes:
        storage_path: Base directory holding entity-type folders.
        driver: File encoding used for policies and delegations.
        file_mode: Single file per entity type or one file per record.
        version: Optional pinned version; latest is used when omitted.
        versioning_enabled: Whether semver subdirectories are resolved.
        retention_days: Age after which revoked/expired delegations are purged.
        max_delegation_days: Longest allowed delegation lifetime, None for no limit.
    """

    storage_path: Path
    driver: StorageDriver
    file_mode: FileMode
    version: str | None
    versioning_enabled: bool
    retention_days: int
    max_delegation_days: int | None = DEFAULT_MAX_DELEGATION_DAYS

    @classmethod
    def from_env(cls) -> "PatrolConfig":
        """Build config from process environment variables.

        Returns:
            A validated config object.

        Raises:
            PatrolConfigError: If environment values are invalid.
        """
        storage_path_value = os.getenv("PATROL_STORAGE_PATH", str(DEFAULT_STORAGE_PATH))
        version = os.getenv("PATROL_STORAGE_VERSION") or None
        return cls(
            storage_path=Path(storage_path_value).expanduser().resolve(),
            driver=parse_driver(os.getenv("PATROL_STORAGE_DRIVER", DEFAULT_STORAGE_DRIVER)),
            file_mode=parse_file_mode(os.getenv("PATROL_STORAGE_FILE_MODE", DEFAULT_FILE_MODE)),
            version=version,
            versioning_enabled=_parse_bool(
                "PATROL_VERSIONING_ENABLED", os.getenv("PATROL_VERSIONING_ENABLED", "true")
            ),
            retention_days=_parse_retention_days(),
            max_delegation_days=_parse_max_delegation_days(
                os.getenv("PATROL_DELEGATION_MAX_DAYS", str(DEFAULT_MAX_DELEGATION_DAYS))
            ),
        )


def parse_driver(raw_value: str) -> StorageDriver:
    """Parse a storage driver name.

    Args:
        raw_value: Driver name such as ``json`` or ``yaml``.

    Returns:
        Matching storage driver.

    Raises:
        PatrolConfigError: If the driver is not supported.
    """
    normalized = raw_value.strip().lower()
    if normalized not in SUPPORTED_STORAGE_DRIVERS:
        supported = ", ".join(SUPPORTED_STORAGE_DRIVERS)
        raise PatrolConfigError(
            f"Invalid PATROL_STORAGE_DRIVER value '{raw_value}'. Use one of: {supported}."
        )
    return cast(StorageDriver, normalized)


def parse_file_mode(raw_value: str) -> FileMode:
    """Parse a file mode name.

    Args:
        raw_value: ``single`` or ``multiple``.

    Returns:
        Matching file mode.

    Raises:
        PatrolConfigError: If the mode is unknown.
    """
    normalized = raw_value.strip().lower()
    if normalized not in SUPPORTED_FILE_MODES:
        raise PatrolConfigError(
            f"Invalid PATROL_STORAGE_FILE_MODE value '{raw_value}'. Use 'single' or 'multiple'."
        )
    return cast(FileMode, normalized)


def _parse_bool(name: str, raw_value: str) -> bool:
    normalized = raw_value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise PatrolConfigError(
        f"Invalid {name} value '{raw_value}': expected one of "
        f"{', '.join(_TRUE_VALUES + _FALSE_VALUES)}."
    )


def _parse_retention_days() -> int:
    """Read the delegation retention from the first retention variable set.

    ``PATROL_DELEGATION_RETENTION_DAYS`` wins over the shorter
    ``PATROL_DELEGATION_RETENTION`` name.

    Returns:
        Parsed non-negative day count.

    Raises:
        PatrolConfigError: If value is not a non-negative integer.
    """
    for name in _RETENTION_ENV_NAMES:
        raw_value = os.getenv(name)
        if raw_value is not None:
            return _parse_day_count(name, raw_value)
    return DEFAULT_RETENTION_DAYS


def _parse_max_delegation_days(raw_value: str) -> int | None:
    """Parse the maximum delegation lifetime; ``0`` disables the limit."""
    max_days = _parse_day_count("PATROL_DELEGATION_MAX_DAYS", raw_value)
    return max_days or None


def _parse_day_count(name: str, raw_value: str) -> int:
    try:
        days = int(raw_value)
    except ValueError as error:
        raise PatrolConfigError(
            f"Invalid {name} value: expected integer, got '{raw_value}'. "
            f"Set {name} to a whole number of days."
        ) from error
    if days < 0:
        raise PatrolConfigError(f"Invalid {name} value {days}: days must be zero or more.")
    return days
