"""Typed conversion between codec row mappings and domain records.

Rows decoded by a codec are untyped mappings. This module validates
them at the storage boundary and hydrates frozen ``PolicyRule`` and
``Delegation`` records, and dehydrates records back into mappings
shaped for flat (CSV, INI) or structured (JSON, YAML, TOML) codecs.
Optional fields that are absent or empty strings both mean "unset".
"""

from __future__ import annotations

from datetime import datetime, timezone
import json
from typing import Any, Mapping, cast

from core.constants import DEFAULT_PRIORITY, FLAT_LIST_SEPARATOR
from core.errors import PatrolEncodeError, PatrolRecordError
from core.logging_config import get_logger
from core.types import (
    SUPPORTED_DELEGATION_STATES,
    SUPPORTED_EFFECTS,
    Delegation,
    DelegationScope,
    DelegationState,
    Effect,
    PolicyRule,
)

_LOGGER = get_logger(__name__)

_TRUE_STRINGS = ("1", "true", "yes", "on")
_FALSE_STRINGS = ("", "0", "false", "no", "off")


def policy_rule_from_mapping(row: Mapping[str, Any]) -> PolicyRule:
    """Hydrate a policy rule from a decoded row.

    Args:
        row: Mapping with ``subject``, ``action``, ``effect`` and the
            optional ``resource``, ``priority`` and ``domain`` fields.

    Returns:
        Typed policy rule.

    Raises:
        PatrolRecordError: If a required field is missing or malformed.
    """
    return PolicyRule(
        subject=_required_str(row, "subject"),
        resource=_optional_str(row, "resource"),
        action=_required_str(row, "action"),
        effect=_parse_effect(row.get("effect")),
        priority=_parse_priority(row.get("priority")),
        domain=_optional_str(row, "domain"),
    )


def policy_rule_to_mapping(rule: PolicyRule) -> dict[str, Any]:
    """Dehydrate a policy rule; unset optional fields are omitted."""
    row: dict[str, Any] = {"subject": rule.subject}
    if rule.resource is not None:
        row["resource"] = rule.resource
    row["action"] = rule.action
    row["effect"] = rule.effect
    row["priority"] = rule.priority
    if rule.domain is not None:
        row["domain"] = rule.domain
    return row


def delegation_from_mapping(row: Mapping[str, Any]) -> Delegation:
    """Hydrate a delegation from a decoded row.

    Both the flat row layout (``resources``/``actions``/``domain`` at the
    top level) and a nested ``scope`` mapping are accepted.

    Args:
        row: Decoded row mapping.

    Returns:
        Typed delegation.

    Raises:
        PatrolRecordError: If a required field is missing or malformed.
    """
    scope_source: Mapping[str, Any] = row
    nested_scope = row.get("scope")
    if isinstance(nested_scope, Mapping):
        scope_source = nested_scope
    created_at = _parse_timestamp(row.get("created_at"), "created_at")
    if created_at is None:
        raise PatrolRecordError("Delegation row is missing required field 'created_at'.")
    return Delegation(
        id=_required_str(row, "id"),
        delegator_id=_required_str(row, "delegator_id"),
        delegate_id=_required_str(row, "delegate_id"),
        scope=DelegationScope(
            resources=_parse_list(scope_source.get("resources")),
            actions=_parse_list(scope_source.get("actions")),
            domain=_optional_str(scope_source, "domain"),
        ),
        created_at=created_at,
        expires_at=_parse_timestamp(row.get("expires_at"), "expires_at"),
        is_transitive=_parse_bool(row.get("is_transitive")),
        status=_parse_state(row.get("state")),
        metadata=_parse_metadata(row.get("metadata"), row.get("id")),
        revoked_at=_parse_timestamp(row.get("revoked_at"), "revoked_at"),
    )


def delegation_to_mapping(delegation: Delegation, flat: bool) -> dict[str, Any]:
    """Dehydrate a delegation into the row field layout.

    Args:
        delegation: Delegation to serialize.
        flat: Join lists with ``|`` and JSON-encode metadata when True.

    Returns:
        Row mapping with unset optional fields as None.

    Raises:
        PatrolEncodeError: If flat metadata is not JSON serializable.
    """
    scope = delegation.scope
    metadata = dict(delegation.metadata)
    transitive = delegation.is_transitive
    return {
        "id": delegation.id,
        "delegator_id": delegation.delegator_id,
        "delegate_id": delegation.delegate_id,
        "resources": FLAT_LIST_SEPARATOR.join(scope.resources) if flat else list(scope.resources),
        "actions": FLAT_LIST_SEPARATOR.join(scope.actions) if flat else list(scope.actions),
        "domain": scope.domain,
        "created_at": format_timestamp(delegation.created_at),
        "expires_at": _format_optional_timestamp(delegation.expires_at),
        "is_transitive": _format_flag(transitive) if flat else transitive,
        "state": delegation.status,
        "metadata": _format_metadata(metadata) if flat else metadata,
        "revoked_at": _format_optional_timestamp(delegation.revoked_at),
    }


def format_timestamp(value: datetime) -> str:
    """Render a timestamp as ISO-8601 in UTC."""
    return _as_utc(value).isoformat()


def _format_flag(value: bool) -> str:
    return "1" if value else "0"


def _format_metadata(metadata: Mapping[str, object]) -> str:
    try:
        return json.dumps(metadata, sort_keys=True)
    except (TypeError, ValueError) as error:
        raise PatrolEncodeError(f"Delegation metadata is not JSON serializable: {error}") from error


def _format_optional_timestamp(value: datetime | None) -> str | None:
    return None if value is None else format_timestamp(value)


def _required_str(row: Mapping[str, Any], key: str) -> str:
    value = _optional_str(row, key)
    if value is None:
        raise PatrolRecordError(f"Row is missing required field '{key}'.")
    return value


def _optional_str(row: Mapping[str, Any], key: str) -> str | None:
    value = row.get(key)
    if value is None or value == "":
        return None
    return str(value)


def _parse_effect(value: object) -> Effect:
    normalized = str(value).strip().capitalize() if value is not None else ""
    if normalized not in SUPPORTED_EFFECTS:
        raise PatrolRecordError(
            f"Invalid effect '{value}': expected one of {', '.join(SUPPORTED_EFFECTS)}."
        )
    return cast(Effect, normalized)


def _parse_priority(value: object) -> int:
    if value is None or value == "":
        return DEFAULT_PRIORITY
    if isinstance(value, bool):
        raise PatrolRecordError(f"Invalid priority {value!r}: expected integer.")
    try:
        return int(str(value))
    except ValueError as error:
        raise PatrolRecordError(f"Invalid priority {value!r}: expected integer.") from error


def _parse_state(value: object) -> DelegationState:
    normalized = str(value).strip().lower() if value is not None else ""
    if normalized not in SUPPORTED_DELEGATION_STATES:
        raise PatrolRecordError(
            f"Invalid delegation state '{value}': expected one of "
            f"{', '.join(SUPPORTED_DELEGATION_STATES)}."
        )
    return cast(DelegationState, normalized)


def _parse_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    normalized = str(value).strip().lower()
    if normalized in _TRUE_STRINGS:
        return True
    if normalized in _FALSE_STRINGS:
        return False
    raise PatrolRecordError(f"Invalid boolean value {value!r}.")


def _parse_list(value: object) -> tuple[str, ...]:
    if value is None or value == "":
        return ()
    if isinstance(value, str):
        return tuple(value.split(FLAT_LIST_SEPARATOR))
    if isinstance(value, (list, tuple)):
        return tuple(str(item) for item in value)
    raise PatrolRecordError(f"Invalid list value {value!r}: expected list or '|'-joined string.")


def _parse_metadata(value: object, record_id: object) -> dict[str, object]:
    if value is None or value == "":
        return {}
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as error:
            _LOGGER.warning("record_metadata_dropped", record_id=record_id, reason=error.msg)
            return {}
    if isinstance(value, Mapping):
        return {str(key): item for key, item in value.items()}
    _LOGGER.warning(
        "record_metadata_dropped",
        record_id=record_id,
        reason=f"expected object, got {type(value).__name__}",
    )
    return {}


def _parse_timestamp(value: object, field_name: str) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return _as_utc(value)
    try:
        return _as_utc(datetime.fromisoformat(str(value)))
    except ValueError as error:
        raise PatrolRecordError(
            f"Invalid timestamp for '{field_name}': {value!r}. Use ISO-8601 format."
        ) from error


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
