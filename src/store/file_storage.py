"""Shared file storage for versioned, single- or multi-file record sets.

This module owns path resolution, cache lookups, decoding with the
per-backend failure policy, and whole-file writes. Entity-specific
repositories build on it and supply hydration functions.
"""

from __future__ import annotations

from pathlib import Path
import re
from typing import Any, Callable, Mapping, Sequence, TypeVar

from core.errors import PatrolDecodeError, PatrolRecordError, PolicyFileFormatError
from core.logging_config import get_logger
from core.types import StorageLocation, VersionBump
from store.codecs import Codec, RowMapping
from store.path_builder import PathBuilder
from store.record_cache import CachedRecords, CacheKey, RecordCache, RejectedRow
from store.version_resolver import VersionResolver

_LOGGER = get_logger(__name__)

RecordT = TypeVar("RecordT")


class FileStorage:
    """File access for one entity type at one storage location.

    Missing files and directories read as empty. In multiple mode a
    file that fails to decode is skipped. In single mode a decode
    failure yields an empty set, unless the backend is strict, in which
    case ``PolicyFileFormatError`` is raised. A lenient read remembers the
    failure so that merging writes refuse to overwrite the file.
    """

    def __init__(
        self,
        location: StorageLocation,
        codec: Codec,
        cache: RecordCache,
        strict: bool | None = None,
    ) -> None:
        """Initialize storage for a location.

        Args:
            location: Base path, entity type, file mode and version settings.
            codec: File format codec.
            cache: Shared record cache.
            strict: Override the codec's single-file failure policy.
        """
        self._location = location
        self._codec = codec
        self._cache = cache
        self._strict = codec.strict if strict is None else strict
        self._resolver = VersionResolver(
            location.base_path,
            version=location.version,
            versioning_enabled=location.versioning_enabled,
        )
        self._paths = PathBuilder(location.base_path, location.file_mode, self._resolver)

    @property
    def location(self) -> StorageLocation:
        return self._location

    @property
    def codec(self) -> Codec:
        return self._codec

    @property
    def paths(self) -> PathBuilder:
        return self._paths

    def resolve_version(self) -> str | None:
        """Return the active version for this entity type."""
        return self._resolver.resolve_version(self._location.entity_type)

    def create_new_version(self, bump: VersionBump = "patch") -> str | None:
        """Create the next version directory for this entity type."""
        return self._resolver.create_new_version(self._location.entity_type, bump)

    def cache_key(self) -> CacheKey:
        """Return the cache key for the currently resolved location."""
        return CacheKey.build(
            self._location.entity_type,
            self.resolve_version(),
            self._location.file_mode,
        )

    def load(self, hydrate: Callable[[Mapping[str, Any]], RecordT]) -> CachedRecords:
        """Return cached records, decoding files on a miss.

        Args:
            hydrate: Converts one decoded row into a typed record.

        Returns:
            Records in storage order plus rows that failed hydration.

        Raises:
            PolicyFileFormatError: If a strict single file cannot be decoded.
            StorageVersionNotFoundError: If the pinned version is missing.
            InvalidSemverError: If a version directory name is malformed.
        """
        key = self.cache_key()
        cached = self._cache.get(key)
        if cached is not None:
            _LOGGER.debug("record_cache_hit", cache_key=str(key))
            return cached
        return self._load_into_cache(key, hydrate)

    def reload(self, hydrate: Callable[[Mapping[str, Any]], RecordT]) -> CachedRecords:
        """Decode files again and replace the cache entry."""
        return self._load_into_cache(self.cache_key(), hydrate)

    def single_file_path(self) -> Path:
        """Return the path of the entity type's single file."""
        entity_type = self._location.entity_type
        return self._paths.build_path(entity_type, entity_type, self._codec.extension)

    def ensure_rewritable(self, loaded: CachedRecords) -> None:
        """Refuse to rewrite a single file whose content could not be read.

        Raises:
            PolicyFileFormatError: If the loaded entry recorded a decode failure.
        """
        if loaded.decode_error is not None:
            raise PolicyFileFormatError(self.single_file_path(), loaded.decode_error)

    def write_single_file(self, rows: Sequence[Mapping[str, Any]]) -> Path:
        """Overwrite the entity type's single file with rows."""
        path = self.single_file_path()
        _write_file(path, self._codec.encode(rows))
        return path

    def write_record_file(self, record_id: str, rows: Sequence[Mapping[str, Any]]) -> Path:
        """Overwrite one record's file in multiple mode."""
        path = self.record_path(record_id)
        _write_file(path, self._codec.encode(rows))
        return path

    def remove_record_file(self, record_id: str) -> bool:
        """Delete one record's file; return whether it existed."""
        path = self.record_path(record_id)
        if not path.is_file():
            return False
        path.unlink()
        return True

    def record_path(self, record_id: str) -> Path:
        """Return the path of one record's file."""
        return self._paths.build_path(
            self._location.entity_type,
            record_id,
            self._codec.extension,
        )

    def list_record_files(self) -> list[Path]:
        """Return record files at the resolved location in natural name order."""
        directory = self._paths.build_directory(self._location.entity_type)
        if not directory.is_dir():
            return []
        files = [
            path
            for path in directory.glob(f"*.{self._codec.extension}")
            if path.is_file()
        ]
        return sorted(files, key=lambda path: _natural_key(path.name))

    def _load_into_cache(
        self,
        key: CacheKey,
        hydrate: Callable[[Mapping[str, Any]], RecordT],
    ) -> CachedRecords:
        records: list[RecordT] = []
        rejected: list[RejectedRow] = []
        rows, decode_error = self._decode_rows()
        for row in rows:
            try:
                records.append(hydrate(row))
            except PatrolRecordError as error:
                _LOGGER.warning(
                    "record_row_skipped",
                    entity_type=self._location.entity_type,
                    reason=str(error),
                )
                rejected.append(RejectedRow(position=len(records), row=row))
        entry = CachedRecords(
            records=tuple(records),
            rejected_rows=tuple(rejected),
            decode_error=decode_error,
        )
        self._cache.put(key, entry)
        return entry

    def _decode_rows(self) -> tuple[list[RowMapping], str | None]:
        if self._location.file_mode == "single":
            return self._read_single_file()
        return self._read_multiple_files(), None

    def _read_single_file(self) -> tuple[list[RowMapping], str | None]:
        path = self.single_file_path()
        if not path.is_file():
            return [], None
        try:
            return self._codec.decode(path.read_bytes()), None
        except PatrolDecodeError as error:
            if self._strict:
                raise PolicyFileFormatError(path, str(error)) from error
            _LOGGER.warning("record_file_skipped", path=str(path), reason=str(error))
            return [], str(error)

    def _read_multiple_files(self) -> list[RowMapping]:
        rows: list[RowMapping] = []
        for path in self.list_record_files():
            try:
                rows.extend(self._codec.decode(path.read_bytes()))
            except PatrolDecodeError as error:
                _LOGGER.warning("record_file_skipped", path=str(path), reason=str(error))
        return rows


def merge_rejected_rows(
    rows: Sequence[Mapping[str, Any]],
    rejected: Sequence[RejectedRow],
) -> list[Mapping[str, Any]]:
    """Interleave rejected rows back among dehydrated record rows.

    Args:
        rows: Record rows in storage order.
        rejected: Rejected rows with their positions among the records.

    Returns:
        Rows with each rejected row placed before the record at its
        position; positions past the end are appended.
    """
    pending = sorted(rejected, key=lambda item: item.position)
    merged: list[Mapping[str, Any]] = []
    next_rejected = 0
    for index, row in enumerate(rows):
        while next_rejected < len(pending) and pending[next_rejected].position <= index:
            merged.append(pending[next_rejected].row)
            next_rejected += 1
        merged.append(row)
    merged.extend(item.row for item in pending[next_rejected:])
    return merged


def shift_rejected_rows(
    rejected: Sequence[RejectedRow],
    kept_flags: Sequence[bool],
) -> list[RejectedRow]:
    """Recompute rejected row positions after some records are removed.

    Args:
        rejected: Rejected rows positioned against the original records.
        kept_flags: One flag per original record, True when it survives.

    Returns:
        Rejected rows positioned against the surviving records.
    """
    return [
        RejectedRow(position=sum(kept_flags[: item.position]), row=item.row)
        for item in rejected
    ]


def _write_file(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)


def _natural_key(name: str) -> list[Any]:
    return [int(part) if part.isdigit() else part for part in re.split(r"(\d+)", name)]
