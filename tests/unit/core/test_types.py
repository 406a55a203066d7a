"""Unit tests for typed domain models."""

from __future__ import annotations

from datetime import timedelta

from core.types import Delegation, DelegationScope, Policy, PolicyRule


def _rule(action: str, priority: int = 1) -> PolicyRule:
    return PolicyRule(
        subject="alice",
        resource="doc",
        action=action,
        effect="Allow",
        priority=priority,
    )


def test_policy_helpers_return_new_values() -> None:
    """Policy helpers should not mutate the original policy."""
    base = Policy(rules=(_rule("read"),))
    child = Policy(rules=(_rule("write"),))

    combined = child.inherit_from(base).add_rule(_rule("delete"))

    assert [rule.action for rule in combined.rules] == ["read", "write", "delete"]
    assert len(child.rules) == 1


def test_sorted_by_priority_is_stable() -> None:
    """Equal priorities should keep storage order."""
    policy = Policy(rules=(_rule("a", 1), _rule("b", 5), _rule("c", 1), _rule("d", 5)))

    ordered = [rule.action for rule in policy.sorted_by_priority()]

    assert ordered == ["b", "d", "a", "c"]
    assert [rule.action for rule in policy.rules] == ["a", "b", "c", "d"]


def test_scope_matches_wildcard_patterns() -> None:
    """Scope patterns should use shell-style wildcards."""
    scope = DelegationScope(resources=("reports/*",), actions=("read",))

    assert scope.matches("reports/q1", "read")
    assert not scope.matches("reports/q1", "write")
    assert not scope.matches("invoices/q1", "read")


def test_scope_star_action_and_empty_lists() -> None:
    """A star action grants any action and empty lists grant nothing."""
    assert DelegationScope(resources=("*",), actions=("*",)).matches("doc", "purge")
    assert not DelegationScope(resources=(), actions=("*",)).matches("doc", "read")


def test_delegation_active_predicate(fixed_now) -> None:
    """Expiry at exactly now should count as expired."""
    delegation = Delegation(
        id="d1",
        delegator_id="alice",
        delegate_id="bob",
        scope=DelegationScope(resources=("*",), actions=("*",)),
        created_at=fixed_now - timedelta(days=1),
        expires_at=fixed_now,
        is_transitive=True,
    )

    assert delegation.is_expired(fixed_now)
    assert not delegation.is_active(fixed_now)
    assert delegation.is_active(fixed_now - timedelta(seconds=1))
    assert delegation.can_transit()
