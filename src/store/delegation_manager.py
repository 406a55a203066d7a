"""Validated delegation workflow over the file repositories.

``DelegationManager`` creates delegations only after checking them
against the delegator's stored policy rules, the existing delegation
graph and the maximum lifetime. It also turns a delegate's active
delegations into policy rules.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Mapping
from uuid import uuid4

from core.constants import DEFAULT_MAX_DELEGATION_DAYS
from core.errors import DelegationValidationError
from core.logging_config import get_logger
from core.types import Delegation, DelegationScope, PolicyRule, Subject
from engine import delegation_lifecycle, delegation_rules
from store.delegation_repository import FileDelegationRepository
from store.policy_repository import FilePolicyRepository

_LOGGER = get_logger(__name__)


class DelegationManager:
    """Create, query and revoke delegations with validation."""

    def __init__(
        self,
        delegations: FileDelegationRepository,
        policies: FilePolicyRepository,
        max_duration_days: int | None = DEFAULT_MAX_DELEGATION_DAYS,
        clock: Callable[[], datetime] = delegation_lifecycle.utc_now,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            delegations: Repository storing delegations.
            policies: Repository holding the delegators' own rules.
            max_duration_days: Longest allowed lifetime, None for no limit.
            clock: Source of the current UTC time.
            id_factory: Builds ids for new delegations; UUID4 by default.
        """
        self._delegations = delegations
        self._policies = policies
        self._max_duration_days = max_duration_days
        self._clock = clock
        self._id_factory = id_factory or _new_delegation_id

    @property
    def max_duration_days(self) -> int | None:
        return self._max_duration_days

    def delegate(
        self,
        delegator: Subject,
        delegate: Subject,
        scope: DelegationScope,
        expires_at: datetime | None = None,
        transitive: bool = False,
        metadata: Mapping[str, object] | None = None,
    ) -> Delegation:
        """Validate and store a new active delegation.

        Args:
            delegator: Subject granting permissions.
            delegate: Subject receiving permissions.
            scope: Resources and actions granted.
            expires_at: Optional expiry (UTC).
            transitive: Whether the delegate may delegate further.
            metadata: Opaque caller data.

        Returns:
            The stored delegation.

        Raises:
            DelegationValidationError: If a validation check fails.
        """
        delegation = Delegation(
            id=self._id_factory(),
            delegator_id=delegator.id,
            delegate_id=delegate.id,
            scope=scope,
            created_at=self._clock(),
            expires_at=expires_at,
            is_transitive=transitive,
            metadata=dict(metadata or {}),
        )
        self.validate(delegation)
        self._delegations.create(delegation)
        return delegation

    def validate(self, delegation: Delegation) -> None:
        """Check a delegation before it is stored.

        Raises:
            DelegationValidationError: With the first failed check as reason.
        """
        now = self._clock()
        reason: str | None = None
        if not self._delegator_holds(delegation.delegator_id, delegation.scope):
            reason = "delegator lacks permissions in the delegated scope"
        elif delegation_rules.detect_cycle(
            self._delegations.all(),
            delegation.delegator_id,
            delegation.delegate_id,
            now,
        ):
            reason = "delegation would create a cycle"
        elif not delegation_rules.validate_expiration(
            delegation.expires_at,
            now,
            self._max_duration_days,
        ):
            reason = "expiry must be in the future and within the maximum duration"
        if reason is not None:
            _LOGGER.warning(
                "delegation_rejected",
                delegator_id=delegation.delegator_id,
                delegate_id=delegation.delegate_id,
                reason=reason,
            )
            raise DelegationValidationError(delegation.delegator_id, delegation.delegate_id, reason)

    def can_delegate(self, delegator: Subject, scope: DelegationScope) -> bool:
        """Return whether a subject's own rules cover a scope."""
        return self._delegator_holds(delegator.id, scope)

    def revoke(self, delegation_id: str) -> None:
        """Revoke a delegation by id; unknown ids are a no-op."""
        self._delegations.revoke(delegation_id)

    def find_active_delegations(self, delegate: Subject) -> list[Delegation]:
        """Return the delegate's currently active delegations."""
        return self._delegations.find_active_for_delegate(delegate.id)

    def is_granted(self, delegate: Subject, resource: str, action: str) -> bool:
        """Return whether an active delegation covers a resource and action."""
        active = self.find_active_delegations(delegate)
        return bool(delegation_rules.granting_delegations(active, resource, action))

    def to_policy_rules(self, delegate: Subject) -> list[PolicyRule]:
        """Return the delegate's active delegations as ``Allow`` rules."""
        return delegation_rules.to_policy_rules(self.find_active_delegations(delegate), delegate.id)

    def _delegator_holds(self, delegator_id: str, scope: DelegationScope) -> bool:
        rules = self._policies.all_policies().rules
        return delegation_rules.validate_delegator_permissions(rules, delegator_id, scope)


def _new_delegation_id() -> str:
    return str(uuid4())
