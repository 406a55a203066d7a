"""File-backed policy repository.

This module persists policy rules through a codec and answers
"which rules apply to this subject, resource and domain" queries.
"""

from __future__ import annotations

from typing import Sequence, cast

from core.constants import POLICIES_ENTITY, POLICY_FILE_PREFIX
from core.logging_config import get_logger
from core.types import Policy, PolicyRule, Resource, StorageLocation, Subject, VersionBump
from engine import policy_matcher
from store.codecs import Codec
from store.file_storage import FileStorage
from store.record_cache import CachedRecords, RecordCache
from store.rows import policy_rule_from_mapping, policy_rule_to_mapping

_LOGGER = get_logger(__name__)


class FilePolicyRepository:
    """Policy repository over one codec and storage location.

    Single mode stores every rule in ``policies.{ext}``. Multiple mode
    stores one rule per ``policy_{index}.{ext}`` file and reads every
    file with the codec's extension.
    """

    def __init__(
        self,
        location: StorageLocation,
        codec: Codec,
        cache: RecordCache | None = None,
        strict: bool | None = None,
    ) -> None:
        """Initialize the repository.

        Args:
            location: Storage location; ``entity_type`` must be ``policies``.
            codec: File format codec.
            cache: Optional shared record cache.
            strict: Override the codec's single-file failure policy.
        """
        if location.entity_type != POLICIES_ENTITY:
            raise ValueError(
                f"Policy repository requires entity type '{POLICIES_ENTITY}', "
                f"got '{location.entity_type}'."
            )
        if cache is None:
            cache = RecordCache()
        self._storage = FileStorage(location, codec, cache, strict)

    @property
    def storage(self) -> FileStorage:
        return self._storage

    def get_policies_for(self, subject: Subject, resource: Resource) -> Policy:
        """Return rules matching a subject and resource, in storage order.

        Args:
            subject: Query subject.
            resource: Query resource; its ``domain`` scopes the match.

        Returns:
            Policy holding the matching rules.
        """
        rules = policy_matcher.match(self._rules(), subject.id, resource.id, resource.domain)
        return policy_matcher.to_policy(rules)

    def get_policies_for_batch(
        self,
        subject: Subject,
        resources: Sequence[Resource],
    ) -> dict[str, Policy]:
        """Return matching rules for several resources keyed by resource id."""
        matches = policy_matcher.match_batch(
            self._rules(),
            subject.id,
            [(resource.id, resource.domain) for resource in resources],
        )
        return {
            resource_id: policy_matcher.to_policy(rules) for resource_id, rules in matches.items()
        }

    def all_policies(self) -> Policy:
        """Return every stored rule in storage order."""
        return Policy(rules=self._rules())

    def save(self, policy: Policy) -> None:
        """Persist a policy, replacing the stored rule set.

        Raises:
            OSError: If files cannot be written.
        """
        rows = [policy_rule_to_mapping(rule) for rule in policy.rules]
        if self._storage.location.file_mode == "single":
            path = self._storage.write_single_file(rows)
            _LOGGER.info("policies_saved", path=str(path), rule_count=len(rows))
        else:
            for index, row in enumerate(rows):
                self._storage.write_record_file(f"{POLICY_FILE_PREFIX}{index}", [row])
            self._remove_stale_rule_files(len(rows))
            _LOGGER.info(
                "policies_saved",
                directory=str(self._storage.paths.build_directory(POLICIES_ENTITY)),
                rule_count=len(rows),
            )
        self._storage.reload(policy_rule_from_mapping)

    def save_many(self, policies: Sequence[Policy]) -> None:
        """Persist several policies as one combined rule set."""
        if not policies:
            return
        rules: tuple[PolicyRule, ...] = ()
        for policy in policies:
            rules += policy.rules
        self.save(Policy(rules=rules))

    def resolve_version(self) -> str | None:
        """Return the active policies version."""
        return self._storage.resolve_version()

    def create_new_version(self, bump: VersionBump = "patch") -> str | None:
        """Create the next policies version directory."""
        return self._storage.create_new_version(bump)

    def _rules(self) -> tuple[PolicyRule, ...]:
        loaded: CachedRecords = self._storage.load(policy_rule_from_mapping)
        return cast(tuple[PolicyRule, ...], loaded.records)

    def _remove_stale_rule_files(self, rule_count: int) -> None:
        for path in self._storage.list_record_files():
            suffix = path.stem.removeprefix(POLICY_FILE_PREFIX)
            if path.stem.startswith(POLICY_FILE_PREFIX) and suffix.isdigit():
                if int(suffix) >= rule_count:
                    path.unlink()
