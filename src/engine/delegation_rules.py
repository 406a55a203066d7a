"""Delegation validation and conversion into policy rules.

These functions decide whether a new delegation may be created and
express active delegations as ``Allow`` rules. They take loaded
records and never touch storage.
"""

from __future__ import annotations

from collections import deque
from datetime import datetime, timedelta
from typing import Iterable, Sequence

from core.constants import DELEGATED_RULE_PRIORITY, WILDCARD
from core.types import Delegation, DelegationScope, PolicyRule
from engine import policy_matcher


def validate_delegator_permissions(
    rules: Sequence[PolicyRule],
    delegator_id: str,
    scope: DelegationScope,
) -> bool:
    """Return whether a delegator's own rules allow everything in a scope.

    Every resource and action pair is decided against the delegator's
    matching rules with deny-overrides. Pairs where either side is the
    bare ``*`` wildcard are not checked.

    Args:
        rules: Stored policy rules.
        delegator_id: Subject handing on permissions.
        scope: Resources and actions being delegated.

    Returns:
        False if any checked pair resolves to ``Deny``.
    """
    for resource in scope.resources:
        if resource == WILDCARD:
            continue
        matched = policy_matcher.match(rules, delegator_id, resource, scope.domain)
        for action in scope.actions:
            if action == WILDCARD:
                continue
            if policy_matcher.resolve_effect(matched, action) == "Deny":
                return False
    return True


def detect_cycle(
    delegations: Iterable[Delegation],
    delegator_id: str,
    delegate_id: str,
    now: datetime,
) -> bool:
    """Return whether a new grant would close a loop of delegations.

    The walk starts at the new delegate and follows active, transitive
    delegations from each subject to the subjects it delegated to. A
    walk that reaches the new delegator means permissions could flow
    back to it. Delegating to oneself is always a cycle.

    Args:
        delegations: Stored delegations.
        delegator_id: Subject granting the new delegation.
        delegate_id: Subject receiving the new delegation.
        now: Reference time for the active check.

    Returns:
        True when the new delegation would create a cycle.
    """
    downstream: dict[str, list[str]] = {}
    for delegation in delegations:
        if delegation.is_active(now) and delegation.can_transit():
            downstream.setdefault(delegation.delegator_id, []).append(delegation.delegate_id)
    visited: set[str] = set()
    queue = deque([delegate_id])
    while queue:
        current = queue.popleft()
        if current == delegator_id:
            return True
        if current in visited:
            continue
        visited.add(current)
        queue.extend(downstream.get(current, ()))
    return False


def validate_expiration(
    expires_at: datetime | None,
    now: datetime,
    max_duration_days: int | None = None,
) -> bool:
    """Return whether an expiry is acceptable for a new delegation.

    No expiry is always accepted. Otherwise it must lie after ``now``
    and, when a maximum is set, no more than that many days ahead.
    """
    if expires_at is None:
        return True
    if expires_at <= now:
        return False
    if max_duration_days is not None:
        return expires_at <= now + timedelta(days=max_duration_days)
    return True


def granting_delegations(
    delegations: Iterable[Delegation],
    resource: str,
    action: str,
) -> list[Delegation]:
    """Return delegations whose scope covers a resource and action."""
    return [
        delegation for delegation in delegations if delegation.scope.matches(resource, action)
    ]


def to_policy_rules(delegations: Iterable[Delegation], delegate_id: str) -> list[PolicyRule]:
    """Expand delegations into ``Allow`` rules for their delegate.

    Each resource and action pair of each scope becomes one rule with
    the delegated-rule priority and the scope's domain.
    """
    rules: list[PolicyRule] = []
    for delegation in delegations:
        scope = delegation.scope
        for resource in scope.resources:
            for action in scope.actions:
                rules.append(
                    PolicyRule(
                        subject=delegate_id,
                        resource=resource,
                        action=action,
                        effect="Allow",
                        priority=DELEGATED_RULE_PRIORITY,
                        domain=scope.domain,
                    )
                )
    return rules
