"""In-memory cache of decoded storage records.

Entries are keyed by entity type, resolved version (or ``latest``) and
file mode. There is no eviction, TTL or invalidation on file changes:
a hit stays authoritative for the lifetime of the cache object, so
repositories refresh their entry after every write.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from core.constants import LATEST_VERSION_LABEL
from core.types import FileMode


@dataclass(frozen=True)
class CacheKey:
    """Cache key triple."""

    entity_type: str
    version: str
    file_mode: FileMode

    @classmethod
    def build(cls, entity_type: str, version: str | None, file_mode: FileMode) -> "CacheKey":
        """Build a key, labelling an unresolved version as ``latest``."""
        return cls(entity_type, version or LATEST_VERSION_LABEL, file_mode)

    def __str__(self) -> str:
        return f"{self.entity_type}:{self.version}:{self.file_mode}"


@dataclass(frozen=True)
class RejectedRow:
    """A row that failed hydration.

    Attributes:
        position: Number of hydrated records stored before the row.
        row: The decoded row, verbatim.
    """

    position: int
    row: Mapping[str, Any]


@dataclass(frozen=True)
class CachedRecords:
    """Decoded content of one storage location.

    Attributes:
        records: Hydrated records in storage order.
        rejected_rows: Rows that failed hydration, kept so that single-file
            rewrites put them back where they were.
        decode_error: Set when an existing single file could not be decoded.
    """

    records: tuple[Any, ...] = ()
    rejected_rows: tuple[RejectedRow, ...] = ()
    decode_error: str | None = None


class RecordCache:
    """Process-lifetime record cache.

    Not thread-safe; callers sharing one instance across threads must
    synchronize access themselves.
    """

    def __init__(self) -> None:
        self._entries: dict[CacheKey, CachedRecords] = {}

    def get(self, key: CacheKey) -> CachedRecords | None:
        """Return the cached entry, or None on a miss."""
        return self._entries.get(key)

    def put(self, key: CacheKey, entry: CachedRecords) -> None:
        """Store an entry, replacing any previous one for the key."""
        self._entries[key] = entry

    def clear(self) -> None:
        """Drop every entry."""
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
