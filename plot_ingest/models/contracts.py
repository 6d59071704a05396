"""Canonical payload contracts for the feature store and the caller.

Every dict that crosses the pipeline boundary is defined here as a
``TypedDict``: the per-plot payload handed to ``FeatureStore.bulk_insert``
and the import report returned to the uploader.

Design notes:
- ``TypedDict`` rather than ``dataclass`` because both payloads are
  serialised to JSON (HTTP response, ``json`` column) unchanged.
- Report keys are camelCase to match the caller-facing JSON surface.
"""

from __future__ import annotations

from typing import Any, NotRequired, TypedDict

# ---------------------------------------------------------------------------
# Feature store (pipeline → store)
# ---------------------------------------------------------------------------


class GeometryPayload(TypedDict):
    """GeoJSON geometry (``Polygon`` or ``MultiPolygon``) in EPSG:4326."""

    type: str
    coordinates: list[Any]


class PlotPayload(TypedDict):
    """Serialised ``CanonicalPlot`` as submitted for bulk insertion."""

    plot_code: str
    geometry: GeometryPayload
    area_sqm: float
    land_use: str | None
    owner_name: str | None
    price_usd: float | None
    notes: str | None
    attributes: dict[str, Any]


# ---------------------------------------------------------------------------
# Import report (pipeline → caller)
# ---------------------------------------------------------------------------


class SkipReasonPayload(TypedDict):
    """One rejected plot and every rule it triggered."""

    plotCode: str
    reasons: list[str]
    messages: NotRequired[list[str]]


class ImportReport(TypedDict):
    """Terminal output of ``run_import``."""

    importId: str
    importedCount: int
    skippedCount: int
    skipReasons: list[SkipReasonPayload]
    status: NotRequired[str]
    failedCount: NotRequired[int]
    errors: NotRequired[list[str]]
