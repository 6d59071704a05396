"""Pipeline configuration loaded from environment variables.

All configuration values have sensible defaults. Azure Functions app
settings (or ``local.settings.json`` for local dev) are the source of
truth.

Fail-fast validation:
    ``from_env()`` raises ``ConfigValidationError`` if any numeric
    value is out of its valid range or a named strategy is unknown.
    This catches bad configuration at startup rather than mid-import.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from plot_ingest.core.constants import (
    BYTES_PER_MB,
    DEFAULT_CRS,
    DEFAULT_PROCESSING_TIMEOUT_S,
    MAX_PLOT_AREA_SQM,
    MAX_UNCOMPRESSED_BYTES,
    MAX_UPLOAD_BYTES,
    MEMORY_STORE,
    MIN_PLOT_AREA_SQM,
    POSTGIS_STORE,
    PYSHP_DECODER,
)
from plot_ingest.core.exceptions import PipelineError


class ConfigValidationError(PipelineError):
    """Raised when configuration values are out of valid range.

    Attributes:
        key: The configuration key that failed validation.
        value: The invalid value.
        message: Human-readable description of the valid range.
    """

    default_stage = "config"
    default_code = "CONFIG_VALIDATION_FAILED"

    def __init__(self, key: str, value: object, message: str) -> None:
        self.key = key
        self.value = value
        super().__init__(f"Invalid configuration {key}={value!r}: {message}")


@dataclass(frozen=True, slots=True)
class IngestConfig:
    """Immutable ingestion configuration.

    Loaded once at worker startup and carried inside ``IngestContext``.

    Attributes:
        max_upload_bytes: Largest compressed package accepted.
        max_uncompressed_bytes: Largest total uncompressed member size.
        min_area_sqm: Plots below this area are rejected (``AreaTooSmall``).
        max_area_sqm: Plots above this area are rejected (``AreaTooLarge``).
        decoder: Feature decoder strategy (``pyshp`` or ``fiona``).
        feature_store: Feature store adapter (``memory`` or ``postgis``).
        database_url: libpq connection string for the PostGIS store.
        processing_timeout_s: Deadline for reading and decoding; ``0`` disables it.
        default_crs: CRS assumed when the package ships no ``.prj``.
    """

    max_upload_bytes: int = MAX_UPLOAD_BYTES
    max_uncompressed_bytes: int = MAX_UNCOMPRESSED_BYTES
    min_area_sqm: float = MIN_PLOT_AREA_SQM
    max_area_sqm: float = MAX_PLOT_AREA_SQM
    decoder: str = PYSHP_DECODER
    feature_store: str = MEMORY_STORE
    database_url: str = ""
    processing_timeout_s: float = DEFAULT_PROCESSING_TIMEOUT_S
    default_crs: str = DEFAULT_CRS

    @classmethod
    def from_env(cls) -> IngestConfig:
        """Load and validate configuration from environment variables.

        Raises:
            ConfigValidationError: If a numeric value is out of range,
                a strategy name is unknown, or a required value is empty.
            ValueError: If a numeric environment variable cannot be
                parsed (e.g. ``MAX_UPLOAD_MB=abc``).
        """
        config = cls(
            max_upload_bytes=int(float(os.getenv("MAX_UPLOAD_MB", "50")) * BYTES_PER_MB),
            max_uncompressed_bytes=int(
                float(os.getenv("MAX_UNCOMPRESSED_MB", "500")) * BYTES_PER_MB
            ),
            min_area_sqm=float(os.getenv("MIN_PLOT_AREA_SQM", str(MIN_PLOT_AREA_SQM))),
            max_area_sqm=float(os.getenv("MAX_PLOT_AREA_SQM", str(MAX_PLOT_AREA_SQM))),
            decoder=os.getenv("FEATURE_DECODER", PYSHP_DECODER),
            feature_store=os.getenv("FEATURE_STORE", MEMORY_STORE),
            database_url=os.getenv("DATABASE_URL", ""),
            processing_timeout_s=float(
                os.getenv("PROCESSING_TIMEOUT_S", str(DEFAULT_PROCESSING_TIMEOUT_S))
            ),
            default_crs=os.getenv("DEFAULT_SOURCE_CRS", DEFAULT_CRS),
        )
        validate_config(config)
        return config


def validate_config(config: IngestConfig) -> None:
    """Validate configuration ranges.  Raises ``ConfigValidationError``."""
    if config.max_upload_bytes <= 0:
        raise ConfigValidationError(
            "MAX_UPLOAD_MB",
            config.max_upload_bytes / BYTES_PER_MB,
            "must be > 0 (megabytes)",
        )

    if config.max_uncompressed_bytes < config.max_upload_bytes:
        raise ConfigValidationError(
            "MAX_UNCOMPRESSED_MB",
            config.max_uncompressed_bytes / BYTES_PER_MB,
            "must be >= MAX_UPLOAD_MB",
        )

    if config.min_area_sqm < 0:
        raise ConfigValidationError(
            "MIN_PLOT_AREA_SQM",
            config.min_area_sqm,
            "must be >= 0 (square metres)",
        )

    if config.max_area_sqm <= config.min_area_sqm:
        raise ConfigValidationError(
            "MAX_PLOT_AREA_SQM",
            config.max_area_sqm,
            f"must be > MIN_PLOT_AREA_SQM ({config.min_area_sqm})",
        )

    if config.processing_timeout_s < 0:
        raise ConfigValidationError(
            "PROCESSING_TIMEOUT_S",
            config.processing_timeout_s,
            "must be >= 0 (seconds, 0 disables the deadline)",
        )

    # Registries live above core in the import graph
    from plot_ingest.activities.decode_features import list_decoders
    from plot_ingest.stores.factory import list_stores

    decoders = list_decoders()
    if config.decoder not in decoders:
        raise ConfigValidationError(
            "FEATURE_DECODER",
            config.decoder,
            f"must be one of {', '.join(decoders)}",
        )

    stores = list_stores()
    if config.feature_store not in stores:
        raise ConfigValidationError(
            "FEATURE_STORE",
            config.feature_store,
            f"must be one of {', '.join(stores)}",
        )

    if config.feature_store == POSTGIS_STORE and not config.database_url:
        raise ConfigValidationError(
            "DATABASE_URL",
            config.database_url,
            "must not be empty when FEATURE_STORE=postgis",
        )

    if not config.default_crs:
        raise ConfigValidationError(
            "DEFAULT_SOURCE_CRS",
            config.default_crs,
            "must not be empty",
        )
