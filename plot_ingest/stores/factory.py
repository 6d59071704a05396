"""Feature store factory: selects the persistence adapter by name.

The store name comes from ``FEATURE_STORE`` via
``IngestConfig.feature_store``. Adapters are registered as lazy-import
thunks so psycopg2 is only loaded when the PostGIS store is selected.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from plot_ingest.core.constants import MEMORY_STORE, POSTGIS_STORE
from plot_ingest.stores.base import FeatureStore, StoreError

if TYPE_CHECKING:
    from collections.abc import Callable

    from plot_ingest.core.config import IngestConfig

logger = logging.getLogger("plot_ingest.stores.factory")

_STORE_REGISTRY: dict[str, Callable[[IngestConfig], FeatureStore]] = {}


def _register_builtin_stores() -> None:
    def _memory(config: IngestConfig) -> FeatureStore:  # noqa: ARG001
        from plot_ingest.stores.memory import InMemoryFeatureStore

        return InMemoryFeatureStore()

    def _postgis(config: IngestConfig) -> FeatureStore:
        from plot_ingest.stores.postgis import PostgisFeatureStore

        return PostgisFeatureStore(config.database_url)

    _STORE_REGISTRY[MEMORY_STORE] = _memory
    _STORE_REGISTRY[POSTGIS_STORE] = _postgis


def _ensure_registry() -> None:
    if not _STORE_REGISTRY:
        _register_builtin_stores()


def register_store(name: str, builder: Callable[[IngestConfig], FeatureStore]) -> None:
    """Register a custom store adapter built from the config.

    Raises:
        ValueError: If the name is empty.
    """
    if not name:
        msg = "Store name must be non-empty"
        raise ValueError(msg)
    _ensure_registry()
    _STORE_REGISTRY[name] = builder
    logger.debug("Registered feature store: %s", name)


def get_feature_store(config: IngestConfig) -> FeatureStore:
    """Create the store named by ``config.feature_store``.

    Raises:
        StoreError: If the named store is not registered.
    """
    _ensure_registry()
    builder = _STORE_REGISTRY.get(config.feature_store)
    if builder is None:
        available = ", ".join(sorted(_STORE_REGISTRY))
        msg = f"Unknown feature store: {config.feature_store!r}. Available: {available}"
        raise StoreError(config.feature_store, msg)
    logger.info("Creating feature store: %s", config.feature_store)
    return builder(config)


def list_stores() -> list[str]:
    """Return the names of all registered stores."""
    _ensure_registry()
    return sorted(_STORE_REGISTRY)
