"""Unit tests for policy rule matching."""

from __future__ import annotations

from dataclasses import replace

from core.types import PolicyRule
from engine.policy_matcher import match, match_batch, resolve_effect, rule_matches, to_policy


def _rule(
    subject: str,
    resource: str | None,
    effect: str = "Allow",
    priority: int = 1,
    domain: str | None = None,
) -> PolicyRule:
    return PolicyRule(
        subject=subject,
        resource=resource,
        action="read",
        effect=effect,  # type: ignore[arg-type]
        priority=priority,
        domain=domain,
    )


def test_rule_matches_subject_resource_and_domain() -> None:
    """Each dimension should match literally or through its wildcard."""
    assert rule_matches(_rule("*", "*"), "alice", "doc", None)
    assert rule_matches(_rule("alice", None), "alice", "doc", "eu")
    assert rule_matches(_rule("alice", "doc", domain="eu"), "alice", "doc", "eu")
    assert not rule_matches(_rule("alice", "doc", domain="eu"), "alice", "doc", None)
    assert not rule_matches(_rule("alice", "doc", domain="eu"), "alice", "doc", "us")
    assert not rule_matches(_rule("bob", "doc"), "alice", "doc", None)
    assert not rule_matches(_rule("alice", "report"), "alice", "doc", None)


def test_match_keeps_storage_order() -> None:
    """Matches should not be reordered by priority or effect."""
    rules = [
        _rule("alice", "doc", "Allow", priority=1),
        _rule("*", "doc", "Deny", priority=10),
        _rule("alice", "doc", "Allow", priority=5),
    ]

    matched = match(rules, "alice", "doc")

    assert [rule.priority for rule in matched] == [1, 10, 5]


def test_match_batch_covers_every_resource() -> None:
    """Batch matching should key every requested resource."""
    rules = [_rule("alice", "doc"), _rule("alice", "report", domain="eu")]

    result = match_batch(rules, "alice", [("doc", None), ("report", None), ("report-eu", "eu")])

    assert {key: len(value) for key, value in result.items()} == {
        "doc": 1,
        "report": 0,
        "report-eu": 0,
    }


def test_to_policy_wraps_rules() -> None:
    """Matched rules should become an immutable policy."""
    policy = to_policy([_rule("alice", "doc")])

    assert isinstance(policy.rules, tuple) and len(policy.rules) == 1


def test_resolve_effect_denies_by_default_and_on_any_deny() -> None:
    """A matching deny wins and no matching rule means deny."""
    allow = _rule("alice", "doc")
    deny = _rule("alice", "doc", effect="Deny")
    write_any = replace(_rule("alice", "doc"), action="*")

    assert resolve_effect([allow], "read") == "Allow"
    assert resolve_effect([allow, deny], "read") == "Deny"
    assert resolve_effect([allow], "write") == "Deny"
    assert resolve_effect([write_any], "write") == "Allow"
    assert resolve_effect([], "read") == "Deny"
