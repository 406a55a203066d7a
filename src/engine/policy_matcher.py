"""Wildcard and domain-aware policy rule matching.

Matching is a pure filter: results keep storage order and are never
sorted by priority or effect. ``resolve_effect`` turns matched rules
into a single deny-overrides decision for one action.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from core.constants import WILDCARD
from core.types import Effect, Policy, PolicyRule


def rule_matches(rule: PolicyRule, subject: str, resource: str, domain: str | None) -> bool:
    """Return whether one rule applies to a query.

    Args:
        rule: Candidate rule.
        subject: Query subject id; never treated as a wildcard.
        resource: Query resource id.
        domain: Query domain, or None for an unscoped query.

    Returns:
        True when subject, resource and domain all match.
    """
    subject_match = rule.subject in (subject, WILDCARD)
    resource_match = rule.resource is None or rule.resource in (resource, WILDCARD)
    domain_match = rule.domain is None or rule.domain == domain
    return subject_match and resource_match and domain_match


def match(
    rules: Iterable[PolicyRule],
    subject: str,
    resource: str,
    domain: str | None = None,
) -> list[PolicyRule]:
    """Return the rules applying to a query, in storage order."""
    return [rule for rule in rules if rule_matches(rule, subject, resource, domain)]


def match_batch(
    rules: Sequence[PolicyRule],
    subject: str,
    resources: Iterable[tuple[str, str | None]],
) -> dict[str, list[PolicyRule]]:
    """Match rules independently for several resources.

    Args:
        rules: Loaded rules in storage order.
        subject: Query subject id.
        resources: ``(resource_id, domain)`` pairs.

    Returns:
        Mapping with an entry, possibly empty, for every requested resource.
    """
    return {
        resource_id: match(rules, subject, resource_id, domain)
        for resource_id, domain in resources
    }


def to_policy(rules: Sequence[PolicyRule]) -> Policy:
    """Wrap matched rules in a policy value."""
    return Policy(rules=tuple(rules))


def action_matches(rule: PolicyRule, action: str) -> bool:
    """Return whether a rule governs an action, ``*`` meaning any."""
    return rule.action in (action, WILDCARD)


def resolve_effect(rules: Iterable[PolicyRule], action: str) -> Effect:
    """Decide an action against already matched rules.

    Any matching ``Deny`` wins. Without a matching rule the answer is
    ``Deny``.

    Args:
        rules: Rules matched for one subject and resource.
        action: Action being decided.

    Returns:
        ``Allow`` or ``Deny``.
    """
    applicable = [rule for rule in rules if action_matches(rule, action)]
    if not applicable or any(rule.effect == "Deny" for rule in applicable):
        return "Deny"
    return "Allow"
