"""File-backed delegation repository.

This module persists delegation grants through a codec and applies
the lifecycle rules from ``engine.delegation_lifecycle``: explicit
revocation, query-time expiry and retention-based cleanup.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Mapping, Sequence, cast

from core.constants import DEFAULT_RETENTION_DAYS, DELEGATIONS_ENTITY
from core.logging_config import get_logger
from core.types import Delegation, StorageLocation, VersionBump
from engine import delegation_lifecycle
from store.codecs import Codec
from store.file_storage import FileStorage, merge_rejected_rows, shift_rejected_rows
from store.record_cache import CachedRecords, RecordCache, RejectedRow
from store.rows import delegation_from_mapping, delegation_to_mapping

_LOGGER = get_logger(__name__)


class FileDelegationRepository:
    """Delegation repository over one codec and storage location.

    Single mode keeps every delegation in ``delegations.{ext}``; multiple
    mode keeps each in ``{delegation-id}.{ext}``. Ids are not checked for
    uniqueness on create, and lookups by id return the first match.
    Single-file writes refuse to replace a file that failed to decode.
    """

    def __init__(
        self,
        location: StorageLocation,
        codec: Codec,
        cache: RecordCache | None = None,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        clock: Callable[[], datetime] = delegation_lifecycle.utc_now,
        strict: bool | None = None,
    ) -> None:
        """Initialize the repository.

        Args:
            location: Storage location; ``entity_type`` must be ``delegations``.
            codec: File format codec.
            cache: Optional shared record cache.
            retention_days: Days revoked/expired records survive cleanup.
            clock: Source of the current UTC time.
            strict: Override the codec's single-file failure policy.
        """
        if location.entity_type != DELEGATIONS_ENTITY:
            raise ValueError(
                f"Delegation repository requires entity type '{DELEGATIONS_ENTITY}', "
                f"got '{location.entity_type}'."
            )
        if retention_days < 0:
            raise ValueError(f"retention_days must be zero or more, got {retention_days}.")
        if cache is None:
            cache = RecordCache()
        self._storage = FileStorage(location, codec, cache, strict)
        self._retention_days = retention_days
        self._clock = clock

    @property
    def storage(self) -> FileStorage:
        return self._storage

    @property
    def retention_days(self) -> int:
        return self._retention_days

    def create(self, delegation: Delegation) -> None:
        """Store a new delegation.

        Raises:
            PolicyFileFormatError: If the single file exists but cannot be decoded.
            PatrolEncodeError: If the delegation cannot be encoded.
            OSError: If files cannot be written.
        """
        if self._is_single_file():
            loaded = self._storage.load(delegation_from_mapping)
            self._write_single(loaded, [*_records(loaded), delegation], loaded.rejected_rows)
        else:
            self._write_record(delegation)
        self._refresh()
        _LOGGER.info(
            "delegation_created",
            delegation_id=delegation.id,
            delegator_id=delegation.delegator_id,
            delegate_id=delegation.delegate_id,
        )

    def find_by_id(self, delegation_id: str) -> Delegation | None:
        """Return the first delegation with an id, or None."""
        for delegation in self.all():
            if delegation.id == delegation_id:
                return delegation
        return None

    def find_active_for_delegate(self, delegate_id: str) -> list[Delegation]:
        """Return a delegate's currently active delegations in storage order."""
        return delegation_lifecycle.active_for_delegate(self.all(), delegate_id, self._clock())

    def all(self) -> list[Delegation]:
        """Return every stored delegation in storage order."""
        return _records(self._storage.load(delegation_from_mapping))

    def revoke(self, delegation_id: str) -> None:
        """Mark the first delegation with an id as revoked.

        Unknown ids are a no-op; call ``find_by_id`` first to confirm.

        Raises:
            OSError: If files cannot be written.
        """
        loaded = self._storage.load(delegation_from_mapping)
        delegations = _records(loaded)
        for index, delegation in enumerate(delegations):
            if delegation.id == delegation_id:
                break
        else:
            _LOGGER.warning("delegation_revoke_missing", delegation_id=delegation_id)
            return
        revoked = delegation_lifecycle.revoke(delegations[index], self._clock())
        delegations[index] = revoked
        if self._is_single_file():
            self._write_single(loaded, delegations, loaded.rejected_rows)
        else:
            self._write_record(revoked)
        self._refresh()
        _LOGGER.info("delegation_revoked", delegation_id=delegation_id)

    def cleanup(self) -> int:
        """Delete revoked and expired delegations older than retention.

        Returns:
            Number of delegations removed.

        Raises:
            OSError: If files cannot be written or removed.
        """
        loaded = self._storage.load(delegation_from_mapping)
        delegations = _records(loaded)
        kept_flags = delegation_lifecycle.retention_flags(
            delegations,
            self._clock(),
            self._retention_days,
        )
        kept = [item for item, keep in zip(delegations, kept_flags) if keep]
        removed = [item for item, keep in zip(delegations, kept_flags) if not keep]
        if not removed:
            return 0
        if self._is_single_file():
            self._write_single(loaded, kept, shift_rejected_rows(loaded.rejected_rows, kept_flags))
        else:
            removed_ids = {delegation.id for delegation in removed}
            kept_ids = {delegation.id for delegation in kept}
            for delegation_id in removed_ids - kept_ids:
                self._storage.remove_record_file(delegation_id)
            # duplicate ids share one file; keep the surviving record in it
            for delegation in kept:
                if delegation.id in removed_ids:
                    self._write_record(delegation)
        self._refresh()
        _LOGGER.info(
            "delegations_cleaned",
            removed_count=len(removed),
            retention_days=self._retention_days,
        )
        return len(removed)

    def resolve_version(self) -> str | None:
        """Return the active delegations version."""
        return self._storage.resolve_version()

    def create_new_version(self, bump: VersionBump = "patch") -> str | None:
        """Create the next delegations version directory."""
        return self._storage.create_new_version(bump)

    def _is_single_file(self) -> bool:
        return self._storage.location.file_mode == "single"

    def _refresh(self) -> None:
        self._storage.reload(delegation_from_mapping)

    def _to_row(self, delegation: Delegation) -> dict[str, Any]:
        return delegation_to_mapping(delegation, flat=self._storage.codec.flat)

    def _write_single(
        self,
        loaded: CachedRecords,
        delegations: Sequence[Delegation],
        rejected_rows: Sequence[RejectedRow],
    ) -> None:
        self._storage.ensure_rewritable(loaded)
        rows: list[Mapping[str, Any]] = [self._to_row(item) for item in delegations]
        self._storage.write_single_file(merge_rejected_rows(rows, rejected_rows))

    def _write_record(self, delegation: Delegation) -> None:
        self._storage.write_record_file(delegation.id, [self._to_row(delegation)])


def _records(loaded: CachedRecords) -> list[Delegation]:
    return list(cast(tuple[Delegation, ...], loaded.records))
