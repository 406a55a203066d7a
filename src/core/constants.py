"""Core constants used across Patrol modules.

This module centralizes storage layout names and defaults.
Keeping values here avoids magic literals in business logic.
"""

from __future__ import annotations

from pathlib import Path

DEFAULT_STORAGE_PATH = Path(".patrol")
POLICIES_ENTITY = "policies"
DELEGATIONS_ENTITY = "delegations"
ENTITY_TYPES = (POLICIES_ENTITY, DELEGATIONS_ENTITY)
LATEST_VERSION_LABEL = "latest"
ZERO_VERSION = "0.0.0"
WILDCARD = "*"
DEFAULT_PRIORITY = 1
DEFAULT_RETENTION_DAYS = 90
DEFAULT_STORAGE_DRIVER = "json"
DEFAULT_FILE_MODE = "multiple"
POLICY_FILE_PREFIX = "policy_"
FLAT_LIST_SEPARATOR = "|"
TOML_RECORDS_KEY = "records"
INI_SECTION_PREFIX = "record_"
FILE_ENCODING = "utf-8"
DEFAULT_MAX_DELEGATION_DAYS = 90
DELEGATED_RULE_PRIORITY = 50
