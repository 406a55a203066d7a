"""Repository construction from runtime configuration.

``StorageFactory`` builds repositories for a driver and config.
``StorageManager`` is an immutable builder over a config. It derives
managers with another driver, version pin or file mode and builds the
repositories and the delegation manager.
"""

from __future__ import annotations

from dataclasses import replace

from core.config import PatrolConfig, parse_driver, parse_file_mode
from core.constants import DELEGATIONS_ENTITY, POLICIES_ENTITY
from core.types import EntityType, StorageDriver, StorageLocation
from store.codecs import get_codec
from store.delegation_manager import DelegationManager
from store.delegation_repository import FileDelegationRepository
from store.policy_repository import FilePolicyRepository
from store.record_cache import RecordCache


class StorageFactory:
    """Create file repositories for a storage driver."""

    def create_policy_repository(
        self,
        driver: StorageDriver,
        config: PatrolConfig,
        cache: RecordCache | None = None,
    ) -> FilePolicyRepository:
        """Build a policy repository.

        Raises:
            PatrolConfigError: If the driver has no codec.
        """
        return FilePolicyRepository(
            location=_location(config, POLICIES_ENTITY),
            codec=get_codec(driver),
            cache=cache,
        )

    def create_delegation_repository(
        self,
        driver: StorageDriver,
        config: PatrolConfig,
        cache: RecordCache | None = None,
    ) -> FileDelegationRepository:
        """Build a delegation repository.

        Raises:
            PatrolConfigError: If the driver has no codec.
        """
        return FileDelegationRepository(
            location=_location(config, DELEGATIONS_ENTITY),
            codec=get_codec(driver),
            cache=cache,
            retention_days=config.retention_days,
        )


class StorageManager:
    """Immutable repository builder.

    Managers derived through ``version`` or ``file_mode`` share one
    record cache, since both values are part of the cache key.
    """

    def __init__(
        self,
        config: PatrolConfig | None = None,
        factory: StorageFactory | None = None,
        cache: RecordCache | None = None,
    ) -> None:
        self._config = config or PatrolConfig.from_env()
        self._factory = factory or StorageFactory()
        self._cache = cache if cache is not None else RecordCache()

    @property
    def config(self) -> PatrolConfig:
        return self._config

    def driver(self, driver: str) -> "StorageManager":
        """Return a manager using another storage driver.

        Cache keys carry no driver, so the derived manager gets its own cache.
        """
        config = replace(self._config, driver=parse_driver(driver))
        return StorageManager(config=config, factory=self._factory)

    def version(self, version: str | None) -> "StorageManager":
        """Return a manager pinned to a version, or unpinned with None."""
        return self._derive(replace(self._config, version=version))

    def file_mode(self, file_mode: str) -> "StorageManager":
        """Return a manager using another file mode."""
        return self._derive(replace(self._config, file_mode=parse_file_mode(file_mode)))

    def policy(self) -> FilePolicyRepository:
        """Build the policy repository for the current settings."""
        return self._factory.create_policy_repository(
            self._config.driver,
            self._config,
            cache=self._cache,
        )

    def delegation(self) -> FileDelegationRepository:
        """Build the delegation repository for the current settings."""
        return self._factory.create_delegation_repository(
            self._config.driver,
            self._config,
            cache=self._cache,
        )

    def delegation_manager(self) -> DelegationManager:
        """Build a validating delegation manager over both repositories."""
        return DelegationManager(
            delegations=self.delegation(),
            policies=self.policy(),
            max_duration_days=self._config.max_delegation_days,
        )

    def _derive(self, config: PatrolConfig) -> "StorageManager":
        return StorageManager(config=config, factory=self._factory, cache=self._cache)


def _location(config: PatrolConfig, entity_type: EntityType) -> StorageLocation:
    return StorageLocation(
        base_path=config.storage_path,
        entity_type=entity_type,
        file_mode=config.file_mode,
        version=config.version,
        versioning_enabled=config.versioning_enabled,
    )
