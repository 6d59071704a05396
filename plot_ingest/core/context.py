"""Explicitly injected collaborators for a pipeline run.

``IngestContext`` replaces module-level shared clients: the HTTP entry
point builds one per worker and passes it into ``run_import``; tests
build their own with an in-memory store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from plot_ingest.core.config import IngestConfig
from plot_ingest.geometry.service import GeometryService, ShapelyGeometryService

if TYPE_CHECKING:
    from plot_ingest.stores.base import FeatureStore


@dataclass(frozen=True, slots=True)
class IngestContext:
    """Configuration plus the feature-store and geometry-math collaborators.

    Attributes:
        config: Validated ingestion configuration.
        feature_store: Persistence adapter for imports and plots.
        geometry: Geometry math service (reprojection, area, validity).
    """

    config: IngestConfig
    feature_store: FeatureStore
    geometry: GeometryService = field(default_factory=ShapelyGeometryService)

    @classmethod
    def from_config(cls, config: IngestConfig) -> IngestContext:
        """Build a context with the store named by *config*."""
        from plot_ingest.stores.factory import get_feature_store

        return cls(config=config, feature_store=get_feature_store(config))

    @classmethod
    def from_env(cls) -> IngestContext:
        """Load configuration from the environment and build a context."""
        return cls.from_config(IngestConfig.from_env())
