"""Delegation state transitions and retention rules.

Stored states are ``active``, ``expired`` and ``revoked``. Revocation
is the only explicit transition. Expiry is derived at query time from
``expires_at`` and never rewrites the stored state. Cleanup removes
revoked or expired records once they are older than the retention
window and keeps any record lacking the timestamp its rule needs.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Iterable

from core.types import Delegation


def utc_now() -> datetime:
    """Return the current time in UTC."""
    return datetime.now(timezone.utc)


def is_currently_active(delegation: Delegation, now: datetime) -> bool:
    """Return whether a delegation is in effect at ``now``.

    Expiry equal to ``now`` counts as expired.
    """
    return delegation.is_active(now)


def active_for_delegate(
    delegations: Iterable[Delegation],
    delegate_id: str,
    now: datetime,
) -> list[Delegation]:
    """Return a delegate's currently active delegations in storage order."""
    return [
        delegation
        for delegation in delegations
        if delegation.delegate_id == delegate_id and is_currently_active(delegation, now)
    ]


def revoke(delegation: Delegation, now: datetime) -> Delegation:
    """Return the revoked form of a delegation."""
    return replace(delegation, status="revoked", revoked_at=now)


def is_past_retention(delegation: Delegation, now: datetime, retention_days: int) -> bool:
    """Return whether cleanup may physically delete a delegation.

    Args:
        delegation: Stored delegation.
        now: Reference time.
        retention_days: Minimum age in days before deletion.

    Returns:
        True for expired records whose expiry, or revoked records whose
        revocation, lies more than ``retention_days`` before ``now``.
    """
    retention = timedelta(days=retention_days)
    if delegation.status == "expired" and delegation.expires_at is not None:
        return now - delegation.expires_at > retention
    if delegation.status == "revoked" and delegation.revoked_at is not None:
        return now - delegation.revoked_at > retention
    return False


def retention_flags(
    delegations: Iterable[Delegation],
    now: datetime,
    retention_days: int,
) -> list[bool]:
    """Return one flag per delegation, True when it survives cleanup."""
    return [
        not is_past_retention(delegation, now, retention_days) for delegation in delegations
    ]
