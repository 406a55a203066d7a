"""Public SDK surface for Patrol storage.

This module provides a stable import path for library users.
It re-exports the storage manager, repositories and typed models.
"""

from __future__ import annotations

from core.config import PatrolConfig
from core.errors import (
    DelegationValidationError,
    InvalidSemverError,
    PatrolConfigError,
    PatrolEncodeError,
    PatrolError,
    PatrolRecordError,
    PolicyFileFormatError,
    StorageVersionNotFoundError,
)
from core.types import (
    Delegation,
    DelegationScope,
    Policy,
    PolicyRule,
    Resource,
    StorageLocation,
    Subject,
)
from store.codecs import get_codec
from store.delegation_manager import DelegationManager
from store.delegation_repository import FileDelegationRepository
from store.path_builder import PathBuilder
from store.policy_repository import FilePolicyRepository
from store.record_cache import RecordCache
from store.storage_factory import StorageFactory, StorageManager
from store.version_resolver import VersionResolver

__all__ = [
    "Delegation",
    "DelegationManager",
    "DelegationScope",
    "DelegationValidationError",
    "FileDelegationRepository",
    "FilePolicyRepository",
    "InvalidSemverError",
    "PathBuilder",
    "PatrolConfig",
    "PatrolConfigError",
    "PatrolEncodeError",
    "PatrolError",
    "PatrolRecordError",
    "Policy",
    "PolicyFileFormatError",
    "PolicyRule",
    "RecordCache",
    "Resource",
    "StorageFactory",
    "StorageLocation",
    "StorageManager",
    "StorageVersionNotFoundError",
    "Subject",
    "VersionResolver",
    "get_codec",
]
