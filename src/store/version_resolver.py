"""Semantic-version directory resolution.

This module decides which version subdirectory of an entity type is
active and mints new version directories by bumping the latest one.
"""

from __future__ import annotations

from pathlib import Path

from semver import Version

from core.constants import ZERO_VERSION
from core.errors import InvalidSemverError, StorageVersionNotFoundError
from core.logging_config import get_logger
from core.types import SUPPORTED_VERSION_BUMPS, VersionBump

_LOGGER = get_logger(__name__)


class VersionResolver:
    """Resolve and create semver-named storage directories.

    A resolver is bound to one base path and one optional version pin.
    Entity types are passed per call so policy and delegation stores
    can share a resolver.
    """

    def __init__(
        self,
        base_path: Path,
        version: str | None = None,
        versioning_enabled: bool = True,
    ) -> None:
        """Initialize the resolver.

        Args:
            base_path: Root directory holding entity-type folders.
            version: Explicit version pin, or None for latest.
            versioning_enabled: Whether versions are resolved at all.
        """
        self._base_path = base_path
        self._version = version
        self._versioning_enabled = versioning_enabled

    @property
    def versioning_enabled(self) -> bool:
        return self._versioning_enabled

    def resolve_version(self, entity_type: str) -> str | None:
        """Resolve the active version for an entity type.

        Args:
            entity_type: Storage category such as ``policies``.

        Returns:
            Pinned or latest version, or None when versioning is off or
            no version directory exists yet.

        Raises:
            StorageVersionNotFoundError: If the pinned version is missing.
            InvalidSemverError: If a version directory name is malformed.
        """
        if not self._versioning_enabled:
            return None
        entity_dir = self._base_path / entity_type
        if self._version is not None:
            if not (entity_dir / self._version).is_dir():
                raise StorageVersionNotFoundError(entity_type, self._version)
            return self._version
        return detect_latest_version(entity_dir)

    def create_new_version(
        self,
        entity_type: str,
        bump: VersionBump = "patch",
    ) -> str | None:
        """Create the next version directory for an entity type.

        Args:
            entity_type: Storage category such as ``policies``.
            bump: Which semver component to increment.

        Returns:
            New version string, or None when versioning is disabled.

        Raises:
            ValueError: If the bump kind is unknown.
            InvalidSemverError: If an existing directory name is malformed.
        """
        if bump not in SUPPORTED_VERSION_BUMPS:
            raise ValueError(
                f"Unsupported version bump '{bump}'. Use one of: "
                f"{', '.join(SUPPORTED_VERSION_BUMPS)}."
            )
        if not self._versioning_enabled:
            return None
        entity_dir = self._base_path / entity_type
        current = detect_latest_version(entity_dir) or ZERO_VERSION
        new_version = str(bump_version(Version.parse(current), bump))
        (entity_dir / new_version).mkdir(parents=True, exist_ok=True)
        _LOGGER.info(
            "version_created",
            entity_type=entity_type,
            previous_version=current,
            version=new_version,
            bump=bump,
        )
        return new_version


def detect_latest_version(directory: Path) -> str | None:
    """Return the highest semver-named subdirectory.

    Args:
        directory: Entity-type directory to scan.

    Returns:
        Directory name of the highest version, or None if there is none.
        Names equal in precedence, such as ``1.0.0+a`` and ``1.0.0+b``,
        resolve to the lexically greatest name.

    Raises:
        InvalidSemverError: If any subdirectory name is not a semver.
    """
    if not directory.is_dir():
        return None
    candidates = [
        (_parse_directory_version(directory, entry.name), entry.name)
        for entry in directory.iterdir()
        if entry.is_dir()
    ]
    if not candidates:
        return None
    return max(candidates)[1]


def bump_version(version: Version, bump: VersionBump) -> Version:
    """Increment one semver component, resetting lower ones."""
    if bump == "major":
        return version.bump_major()
    if bump == "minor":
        return version.bump_minor()
    return version.bump_patch()


def _parse_directory_version(directory: Path, name: str) -> Version:
    try:
        return Version.parse(name)
    except ValueError as error:
        raise InvalidSemverError(directory, name) from error
