"""Patrol CLI entry points.
This module exposes storage inspection and maintenance commands.
It maps argparse commands onto repository calls.
"""

from __future__ import annotations

import argparse
from dataclasses import replace
from datetime import timedelta
from pathlib import Path
import sys
from typing import Any, Sequence

from core.config import PatrolConfig, parse_driver, parse_file_mode
from core.constants import ENTITY_TYPES
from core.errors import PatrolError
from core.types import (
    SUPPORTED_FILE_MODES,
    SUPPORTED_STORAGE_DRIVERS,
    SUPPORTED_VERSION_BUMPS,
    Delegation,
    DelegationScope,
    PolicyRule,
    Resource,
    Subject,
)
from engine.delegation_lifecycle import utc_now
from store.rows import format_timestamp
from store.storage_factory import StorageManager


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(prog="patrol", description="Patrol storage CLI")
    parser.add_argument("--storage-path", help="Override PATROL_STORAGE_PATH for this command")
    parser.add_argument(
        "--driver",
        choices=SUPPORTED_STORAGE_DRIVERS,
        help="Override PATROL_STORAGE_DRIVER",
    )
    parser.add_argument(
        "--file-mode",
        choices=SUPPORTED_FILE_MODES,
        help="Override PATROL_STORAGE_FILE_MODE",
    )
    parser.add_argument(
        "--version",
        dest="storage_version",
        help="Pin a storage version instead of the latest",
    )
    parser.add_argument(
        "--no-versioning",
        action="store_true",
        help="Ignore semver subdirectories",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_policies_command(subparsers)
    _add_version_create_command(subparsers)
    _add_delegate_command(subparsers)
    _add_delegation_list_command(subparsers)
    _add_delegation_revoke_command(subparsers)
    _add_delegation_cleanup_command(subparsers)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the Patrol CLI.

    Args:
        argv: Optional argument vector.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        manager = _build_manager(args)
        if args.command == "policies":
            return _run_policies_command(manager, args)
        if args.command == "version-create":
            return _run_version_create_command(manager, args)
        if args.command == "delegate":
            return _run_delegate_command(manager, args)
        if args.command == "delegation-list":
            return _run_delegation_list_command(manager, args)
        if args.command == "delegation-revoke":
            return _run_delegation_revoke_command(manager, args)
        if args.command == "delegation-cleanup":
            return _run_delegation_cleanup_command(manager)
    except PatrolError as error:
        print(f"error={error}", file=sys.stderr)
        return 1
    parser.error(f"Unsupported command: {args.command}")
    return 2


def _build_manager(args: argparse.Namespace) -> StorageManager:
    """Build a storage manager from env config plus CLI overrides.

    Args:
        args: Parsed CLI args.

    Returns:
        Configured storage manager.

    Raises:
        PatrolConfigError: If environment values are invalid.
    """
    config = PatrolConfig.from_env()
    if args.storage_path:
        config = replace(config, storage_path=Path(args.storage_path).expanduser().resolve())
    if args.driver:
        config = replace(config, driver=parse_driver(args.driver))
    if args.file_mode:
        config = replace(config, file_mode=parse_file_mode(args.file_mode))
    if args.storage_version:
        config = replace(config, version=args.storage_version)
    if args.no_versioning:
        config = replace(config, versioning_enabled=False)
    return StorageManager(config)


def _run_policies_command(manager: StorageManager, args: argparse.Namespace) -> int:
    """Handle policies command.

    Args:
        manager: Storage manager.
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    policy = manager.policy().get_policies_for(
        Subject(id=args.subject),
        Resource(id=args.resource, domain=args.domain),
    )
    for rule in policy.rules:
        print(_format_rule(rule))
    return 0


def _run_version_create_command(manager: StorageManager, args: argparse.Namespace) -> int:
    """Handle version-create command."""
    if args.entity_type == "policies":
        version = manager.policy().create_new_version(args.bump)
    else:
        version = manager.delegation().create_new_version(args.bump)
    print(version or "-")
    return 0


def _run_delegate_command(manager: StorageManager, args: argparse.Namespace) -> int:
    """Handle delegate command.

    Args:
        manager: Storage manager.
        args: Parsed CLI args.

    Returns:
        Exit code.

    Raises:
        DelegationValidationError: If the delegation fails validation.
    """
    expires_at = None
    if args.expires_in_days is not None:
        expires_at = utc_now() + timedelta(days=args.expires_in_days)
    delegation = manager.delegation_manager().delegate(
        Subject(id=args.delegator),
        Subject(id=args.delegate),
        DelegationScope(
            resources=tuple(args.resource),
            actions=tuple(args.action),
            domain=args.domain,
        ),
        expires_at=expires_at,
        transitive=args.transitive,
    )
    print(f"created={delegation.id}")
    return 0


def _run_delegation_list_command(manager: StorageManager, args: argparse.Namespace) -> int:
    """Handle delegation-list command."""
    for delegation in manager.delegation().find_active_for_delegate(args.delegate):
        print(_format_delegation(delegation))
    return 0


def _run_delegation_revoke_command(manager: StorageManager, args: argparse.Namespace) -> int:
    """Handle delegation-revoke command.

    Returns:
        Exit code; 1 when no delegation has the id.
    """
    repository = manager.delegation()
    if repository.find_by_id(args.delegation_id) is None:
        print(f"error=delegation '{args.delegation_id}' not found", file=sys.stderr)
        return 1
    repository.revoke(args.delegation_id)
    print(f"revoked={args.delegation_id}")
    return 0


def _run_delegation_cleanup_command(manager: StorageManager) -> int:
    removed = manager.delegation().cleanup()
    print(f"removed={removed}")
    return 0


def _format_rule(rule: PolicyRule) -> str:
    return (
        f"{rule.subject}\t"
        f"{rule.resource or '-'}\t"
        f"{rule.action}\t"
        f"{rule.effect}\t"
        f"{rule.priority}\t"
        f"{rule.domain or '-'}"
    )


def _format_delegation(delegation: Delegation) -> str:
    expires_at = format_timestamp(delegation.expires_at) if delegation.expires_at else "-"
    return (
        f"{delegation.id}\t"
        f"{delegation.delegator_id}\t"
        f"{','.join(delegation.scope.resources) or '-'}\t"
        f"{','.join(delegation.scope.actions) or '-'}\t"
        f"{expires_at}"
    )


def _add_policies_command(subparsers: Any) -> None:
    """Register policies subcommand."""
    parser = subparsers.add_parser("policies", help="Print rules matching a subject and resource")
    parser.add_argument("subject", help="Subject id")
    parser.add_argument("resource", help="Resource id")
    parser.add_argument("--domain", help="Optional domain scope")


def _add_version_create_command(subparsers: Any) -> None:
    """Register version-create subcommand."""
    parser = subparsers.add_parser("version-create", help="Create the next version directory")
    parser.add_argument("entity_type", choices=ENTITY_TYPES, help="Entity type to version")
    parser.add_argument(
        "--bump",
        default="patch",
        choices=SUPPORTED_VERSION_BUMPS,
        help="Semver component to increment",
    )


def _add_delegate_command(subparsers: Any) -> None:
    """Register delegate subcommand."""
    parser = subparsers.add_parser("delegate", help="Create a validated delegation")
    parser.add_argument("delegator", help="Delegator subject id")
    parser.add_argument("delegate", help="Delegate subject id")
    parser.add_argument(
        "--resource",
        action="append",
        required=True,
        help="Delegated resource pattern; repeat for several",
    )
    parser.add_argument(
        "--action",
        action="append",
        required=True,
        help="Delegated action; repeat for several",
    )
    parser.add_argument("--domain", help="Optional domain scope")
    parser.add_argument("--expires-in-days", type=int, help="Expire after this many days")
    parser.add_argument(
        "--transitive",
        action="store_true",
        help="Allow the delegate to delegate further",
    )


def _add_delegation_list_command(subparsers: Any) -> None:
    """Register delegation-list subcommand."""
    parser = subparsers.add_parser("delegation-list", help="Print a delegate's active delegations")
    parser.add_argument("delegate", help="Delegate subject id")


def _add_delegation_revoke_command(subparsers: Any) -> None:
    """Register delegation-revoke subcommand."""
    parser = subparsers.add_parser("delegation-revoke", help="Revoke a delegation by id")
    parser.add_argument("delegation_id", help="Delegation id")


def _add_delegation_cleanup_command(subparsers: Any) -> None:
    """Register delegation-cleanup subcommand."""
    subparsers.add_parser(
        "delegation-cleanup",
        help="Delete revoked and expired delegations past retention",
    )
