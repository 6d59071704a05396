"""Data model for a normalized land plot.

A CanonicalPlot is a RawFeature after field mapping, reprojection to
WGS 84 and derived-value computation. It is the output of the
normalize_plot activity and the input to validate_plots; accepted plots
are serialised with ``to_payload()`` for the feature store.

Area is always recomputed from the geometry and never read from
source attributes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from plot_ingest.models.contracts import GeometryPayload, PlotPayload
    from plot_ingest.models.feature import Ring


@dataclass(frozen=True, slots=True)
class CanonicalPlot:
    """A land plot ready for validation.

    Attributes:
        plot_code: Plot identifier, mapped from attributes or synthesized.
        geometry_type: Geometry type carried over from the decoder.
        rings: Rings of the first polygon as ``(lon, lat)`` in EPSG:4326.
        extra_parts: Further polygons of a multi-part record.
        area_sqm: Geodesic area in square metres, computed from ``rings``.
        bbox: ``(min_lon, min_lat, max_lon, max_lat)`` over all rings.
        land_use: Land-use classification, if mapped.
        owner_name: Owner name, if mapped.
        price_usd: Non-negative finite price, if mapped and coercible.
        notes: Free-text notes, if mapped.
        attributes: JSON-safe copy of the source attribute row (audit).
        record_index: Zero-based record number in the source package.
        source_crs: CRS the decoder reported for the source coordinates.
        plot_code_generated: Whether ``plot_code`` was synthesized.
        decode_error: Carried from the RawFeature; non-empty means the
            record never produced usable geometry.
    """

    plot_code: str
    geometry_type: str = "Polygon"
    rings: list[Ring] = field(default_factory=list)
    extra_parts: list[list[Ring]] = field(default_factory=list)
    area_sqm: float = 0.0
    bbox: tuple[float, float, float, float] | None = None
    land_use: str | None = None
    owner_name: str | None = None
    price_usd: float | None = None
    notes: str | None = None
    attributes: dict[str, object] = field(default_factory=dict)
    record_index: int = 0
    source_crs: str = "EPSG:4326"
    plot_code_generated: bool = False
    decode_error: str = ""

    @property
    def exterior(self) -> Ring:
        return self.rings[0] if self.rings else []

    @property
    def is_multipart(self) -> bool:
        return bool(self.extra_parts)

    @property
    def geometry(self) -> GeometryPayload:
        """GeoJSON geometry: ``Polygon`` or, for multi-part records, ``MultiPolygon``."""
        if self.extra_parts:
            polygons = [self.rings, *self.extra_parts]
            return {
                "type": "MultiPolygon",
                "coordinates": [
                    [[list(c) for c in ring] for ring in polygon] for polygon in polygons
                ],
            }
        return {
            "type": "Polygon",
            "coordinates": [[list(c) for c in ring] for ring in self.rings],
        }

    def to_payload(self) -> PlotPayload:
        """Serialise to the feature-store bulk-insert contract."""
        return {
            "plot_code": self.plot_code,
            "geometry": self.geometry,
            "area_sqm": self.area_sqm,
            "land_use": self.land_use,
            "owner_name": self.owner_name,
            "price_usd": self.price_usd,
            "notes": self.notes,
            "attributes": dict(self.attributes),
        }
