"""Shared typed models.

This module defines immutable data models used by the store, engine,
SDK and CLI layers to keep interfaces explicit and stable.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Literal, Mapping

from core.constants import DEFAULT_PRIORITY, WILDCARD

Effect = Literal["Allow", "Deny"]
FileMode = Literal["single", "multiple"]
DelegationState = Literal["active", "expired", "revoked"]
StorageDriver = Literal["json", "yaml", "toml", "csv", "ini"]
VersionBump = Literal["patch", "minor", "major"]
EntityType = Literal["policies", "delegations"]

SUPPORTED_EFFECTS: tuple[Effect, ...] = ("Allow", "Deny")
SUPPORTED_FILE_MODES: tuple[FileMode, ...] = ("single", "multiple")
SUPPORTED_DELEGATION_STATES: tuple[DelegationState, ...] = ("active", "expired", "revoked")
SUPPORTED_STORAGE_DRIVERS: tuple[StorageDriver, ...] = ("json", "yaml", "toml", "csv", "ini")
SUPPORTED_VERSION_BUMPS: tuple[VersionBump, ...] = ("patch", "minor", "major")


@dataclass(frozen=True)
class Subject:
    """Principal a policy query is evaluated for."""

    id: str
    attributes: Mapping[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class Resource:
    """Target of a policy query.

    Attributes:
        id: Resource identifier compared against rule resources.
        type: Resource kind, informational.
        attributes: Extra resource attributes.
        domain: Query scope compared against rule domains.
    """

    id: str
    type: str = ""
    attributes: Mapping[str, object] = field(default_factory=dict)
    domain: str | None = None


@dataclass(frozen=True)
class PolicyRule:
    """One authorization rule.

    Attributes:
        subject: Subject id or ``*`` for any subject.
        resource: Resource id, ``*`` or None for any resource.
        action: Action name the rule governs.
        effect: ``Allow`` or ``Deny``.
        priority: Informational ordering hint for decision components.
        domain: Optional scope identifier.
    """

    subject: str
    resource: str | None
    action: str
    effect: Effect
    priority: int = DEFAULT_PRIORITY
    domain: str | None = None


@dataclass(frozen=True)
class Policy:
    """Ordered rule sequence in storage order."""

    rules: tuple[PolicyRule, ...] = ()
    name: str | None = None

    def add_rule(self, rule: PolicyRule) -> "Policy":
        """Return a new policy with the rule appended."""
        return replace(self, rules=self.rules + (rule,))

    def inherit_from(self, base_policy: "Policy") -> "Policy":
        """Return a new policy with the base rules placed first."""
        return replace(self, rules=base_policy.rules + self.rules)

    def sorted_by_priority(self) -> list[PolicyRule]:
        """Return rules by descending priority, ties kept in storage order."""
        return sorted(self.rules, key=lambda rule: rule.priority, reverse=True)


@dataclass(frozen=True)
class DelegationScope:
    """Resources and actions a delegation grants.

    Empty lists grant nothing. Patterns use shell-style wildcards.
    """

    resources: tuple[str, ...] = ()
    actions: tuple[str, ...] = ()
    domain: str | None = None

    def matches(self, resource: str, action: str) -> bool:
        """Return whether the scope covers a resource/action pair."""
        if not any(fnmatchcase(resource, pattern) for pattern in self.resources):
            return False
        if WILDCARD in self.actions:
            return True
        return any(fnmatchcase(action, pattern) for pattern in self.actions)


@dataclass(frozen=True)
class Delegation:
    """Grant of a delegator's permissions to a delegate.

    Attributes:
        id: Identifier, unique by convention only.
        delegator_id: Subject granting permissions.
        delegate_id: Subject receiving permissions.
        scope: Granted resources and actions.
        created_at: Creation timestamp (UTC).
        expires_at: Optional expiry timestamp (UTC).
        is_transitive: Whether the delegate may re-delegate.
        status: Stored lifecycle state.
        metadata: Opaque caller data.
        revoked_at: Set when the delegation is revoked.
    """

    id: str
    delegator_id: str
    delegate_id: str
    scope: DelegationScope
    created_at: datetime
    expires_at: datetime | None = None
    is_transitive: bool = False
    status: DelegationState = "active"
    metadata: Mapping[str, object] = field(default_factory=dict)
    revoked_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        """Return whether the expiry time has been reached."""
        return self.expires_at is not None and self.expires_at <= now

    def is_active(self, now: datetime) -> bool:
        """Return whether the delegation is currently in effect."""
        return self.status == "active" and not self.is_expired(now)

    def can_transit(self) -> bool:
        """Return whether the delegate may delegate further."""
        return self.is_transitive


@dataclass(frozen=True)
class StorageLocation:
    """Where one repository reads and writes its files.

    Attributes:
        base_path: Root directory holding entity-type folders.
        entity_type: ``policies`` or ``delegations``.
        file_mode: Single file or one file per record.
        version: Optional explicit version pin.
        versioning_enabled: Whether semver subdirectories are used.
    """

    base_path: Path
    entity_type: EntityType
    file_mode: FileMode
    version: str | None = None
    versioning_enabled: bool = True

    @property
    def entity_dir(self) -> Path:
        """Return the unversioned entity-type directory."""
        return self.base_path / self.entity_type
