"""Data model for a decoded shapefile record.

A RawFeature pairs the rings of one ``.shp`` record with the matching
``.dbf`` row. It is the output of the decode_features activity and the
input to normalize_plot. Coordinates are exactly as stored in the file,
in the CRS named by ``crs``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

Coordinate = tuple[float, float]
Ring = list[Coordinate]


@dataclass(frozen=True, slots=True)
class RawFeature:
    """One geometry/attribute record before normalization.

    Attributes:
        record_index: Zero-based record number shared by ``.shp`` and ``.dbf``.
        geometry_type: ``"Polygon"``, ``"MultiPolygon"``, ``"Point"``,
            ``"LineString"`` ... or ``""`` for a null shape.
        rings: Rings of the first polygon; ``rings[0]`` is the exterior,
            any further rings are holes. Every ring is closed and has at
            least four coordinate pairs.
        extra_parts: Further polygons of a multi-part shape, each a list
            of rings in the same layout as ``rings``.
        attributes: Attribute row from the ``.dbf`` (untyped values).
        crs: Coordinate reference of the coordinates (e.g. ``"EPSG:4326"``).
        decode_error: Non-empty when the record could not be decoded
            into a usable polygon; the feature is then invalid.
    """

    record_index: int
    geometry_type: str = "Polygon"
    rings: list[Ring] = field(default_factory=list)
    extra_parts: list[list[Ring]] = field(default_factory=list)
    attributes: dict[str, object] = field(default_factory=dict)
    crs: str = "EPSG:4326"
    decode_error: str = ""

    @property
    def is_valid(self) -> bool:
        """Whether the record decoded into usable geometry."""
        return not self.decode_error

    @property
    def exterior(self) -> Ring:
        return self.rings[0] if self.rings else []

    @property
    def holes(self) -> list[Ring]:
        return self.rings[1:]

    @property
    def part_count(self) -> int:
        """Number of polygons in the record (0 for non-polygon shapes)."""
        if not self.rings:
            return 0
        return 1 + len(self.extra_parts)
