"""Patrol exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Each storage concern raises a specific error type for debuggability.
"""

from __future__ import annotations

from pathlib import Path


class PatrolError(Exception):
    """Base exception for all Patrol failures."""


class PatrolConfigError(PatrolError):
    """Raised for invalid runtime configuration."""


class PatrolStoreError(PatrolError):
    """Raised for file storage and versioning failures."""


class StorageVersionNotFoundError(PatrolStoreError):
    """Raised when an explicitly pinned version directory does not exist."""

    def __init__(self, entity_type: str, version: str) -> None:
        self.entity_type = entity_type
        self.version = version
        super().__init__(
            f"Storage version '{version}' not found for type '{entity_type}'. "
            "Create the version directory or unpin the version to use the latest."
        )


class InvalidSemverError(PatrolStoreError):
    """Raised when a version directory name is not a semantic version."""

    def __init__(self, directory: Path, name: str) -> None:
        self.directory = directory
        self.name = name
        super().__init__(
            f"Invalid version directory '{name}' in {directory}: expected a semantic "
            "version such as 1.2.3. Rename or remove the directory."
        )


class PatrolDecodeError(PatrolStoreError):
    """Raised when a codec cannot decode file content."""


class PatrolEncodeError(PatrolStoreError):
    """Raised when records cannot be encoded into the storage format."""


class PolicyFileFormatError(PatrolStoreError):
    """Raised by strict backends when a single storage file cannot be decoded."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        super().__init__(
            f"Invalid storage file format at {path}: {reason}. "
            "Fix the file contents or restore it from a previous version."
        )


class PatrolRecordError(PatrolStoreError):
    """Raised when a decoded row cannot be hydrated into a typed record."""


class DelegationValidationError(PatrolError):
    """Raised when a new delegation is refused by validation."""

    def __init__(self, delegator_id: str, delegate_id: str, reason: str) -> None:
        self.delegator_id = delegator_id
        self.delegate_id = delegate_id
        self.reason = reason
        super().__init__(
            f"Delegation from '{delegator_id}' to '{delegate_id}' rejected: {reason}."
        )
