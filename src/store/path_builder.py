"""Storage path construction.

This module maps entity types and record identifiers onto file paths,
inserting the resolved version directory when one exists.
"""

from __future__ import annotations

from pathlib import Path

from core.types import FileMode
from store.version_resolver import VersionResolver


class PathBuilder:
    """Build file and directory paths for one base path and file mode."""

    def __init__(self, base_path: Path, file_mode: FileMode, resolver: VersionResolver) -> None:
        self._base_path = base_path
        self._file_mode = file_mode
        self._resolver = resolver

    def build_directory(self, entity_type: str) -> Path:
        """Return the directory holding an entity type's files.

        An empty versioned store falls back to the unversioned layout
        until the first version directory is created.
        """
        directory = self._base_path / entity_type
        version = self._resolver.resolve_version(entity_type)
        if version is not None:
            directory = directory / version
        return directory

    def build_path(self, entity_type: str, record_id: str, extension: str) -> Path:
        """Return the file path for a record.

        Args:
            entity_type: Storage category such as ``policies``.
            record_id: Record identifier, used as file name in multiple mode.
            extension: File extension without a leading dot.

        Returns:
            ``{entity_type}.{ext}`` in single mode, ``{record_id}.{ext}``
            in multiple mode, under the resolved directory.
        """
        file_stem = entity_type if self._file_mode == "single" else record_id
        return self.build_directory(entity_type) / f"{file_stem}.{extension}"
