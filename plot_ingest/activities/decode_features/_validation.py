"""Validation helpers for shapefile decoding.

Responsibilities:
- Decoder exception taxonomy (fatal vs per-record)
- Ring structure validation (closure, vertex count, finite coordinates)
- Grouping shapefile parts into polygons by ring orientation
- Building valid / invalid ``RawFeature`` records
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

from plot_ingest.activities.decode_features._constants import STAGE
from plot_ingest.core.constants import MIN_RING_VERTICES
from plot_ingest.core.exceptions import ValidationError
from plot_ingest.models.feature import RawFeature

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from plot_ingest.models.feature import Ring

logger = logging.getLogger("plot_ingest.activities.decode_features")


# ---------------------------------------------------------------------------
# Exceptions (public API, re-exported from __init__)
# ---------------------------------------------------------------------------


class FeatureDecodeError(ValidationError):
    """Raised when the package's dataset cannot be decoded at all."""

    default_stage = STAGE
    default_code = "DECODE_FAILED"


class RecordCountMismatchError(FeatureDecodeError):
    """Raised when ``.shp`` and ``.dbf`` disagree on the number of records."""

    default_code = "RECORD_COUNT_MISMATCH"

    def __init__(self, geometry_count: int, attribute_count: int) -> None:
        self.geometry_count = geometry_count
        self.attribute_count = attribute_count
        super().__init__(
            f"Geometry file has {geometry_count} record(s) but attribute file has "
            f"{attribute_count}; records are joined by position and must match"
        )


class ProjectionError(FeatureDecodeError):
    """Raised when the ``.prj`` member is not a readable CRS definition."""

    default_code = "PROJECTION_INVALID"


class UnknownDecoderError(FeatureDecodeError):
    """Raised when no decoder strategy is registered under a name."""

    default_code = "DECODER_UNKNOWN"


class MalformedGeometryError(FeatureDecodeError):
    """Raised for a single record that yields no usable polygon ring.

    Caught inside the decoder and turned into an invalid ``RawFeature``;
    it never aborts the decode.
    """

    default_code = "MALFORMED_GEOMETRY"


# ---------------------------------------------------------------------------
# Ring validation
# ---------------------------------------------------------------------------


def close_ring(points: Iterable[Sequence[float]], context: str) -> Ring:
    """Validate one ring and return it as closed ``(x, y)`` tuples.

    Drops any Z/M values. Unclosed rings are closed by repeating the
    first point.

    Raises:
        MalformedGeometryError: If a coordinate is not a finite pair, or
            the ring has fewer than 3 distinct points / 4 points closed.
    """
    ring: Ring = []
    for idx, point in enumerate(points):
        if not isinstance(point, list | tuple):
            msg = f"Coordinate {idx} of {context} is a {type(point).__name__}, not a pair"
            raise MalformedGeometryError(msg)
        if len(point) < 2:
            msg = f"Coordinate {idx} of {context} has {len(point)} value(s), need 2"
            raise MalformedGeometryError(msg)
        try:
            x, y = float(point[0]), float(point[1])
        except (TypeError, ValueError) as exc:
            msg = f"Coordinate {idx} of {context} is not numeric: {point!r}"
            raise MalformedGeometryError(msg) from exc
        if not (math.isfinite(x) and math.isfinite(y)):
            msg = f"Coordinate {idx} of {context} is not finite: ({x}, {y})"
            raise MalformedGeometryError(msg)
        ring.append((x, y))

    if not ring:
        msg = f"{context} has no coordinates"
        raise MalformedGeometryError(msg)

    if ring[0] != ring[-1]:
        logger.warning("Auto-closing unclosed ring in %s", context)
        ring.append(ring[0])

    if len(ring) < MIN_RING_VERTICES:
        msg = (
            f"{context} has {len(ring)} point(s) including closure, "
            f"need at least {MIN_RING_VERTICES}"
        )
        raise MalformedGeometryError(msg)

    if len(set(ring)) < 3:
        msg = f"{context} has fewer than 3 distinct points"
        raise MalformedGeometryError(msg)

    return ring


def group_rings(rings: list[Ring]) -> list[list[Ring]]:
    """Group shapefile parts into polygons.

    Shapefile exteriors are clockwise and holes counter-clockwise; each
    clockwise ring opens a new polygon and following counter-clockwise
    rings belong to it. A leading counter-clockwise ring is treated as
    an exterior. Orientation is taken on the closed ring, so it does
    not depend on whether the file repeats the first vertex.
    """
    polygons: list[list[Ring]] = []
    for ring in rings:
        if not polygons or _is_clockwise(ring):
            polygons.append([ring])
        else:
            polygons[-1].append(ring)
    return polygons


def _is_clockwise(ring: Ring) -> bool:
    from shapely.geometry import LinearRing

    closed = list(ring)
    if closed and closed[0] != closed[-1]:
        closed.append(closed[0])
    if len(closed) < MIN_RING_VERTICES:
        # Degenerate; close_ring reports it once the ring is placed
        return False
    return not LinearRing(closed).is_ccw


# ---------------------------------------------------------------------------
# Feature construction
# ---------------------------------------------------------------------------


def build_polygon_feature(
    polygons: Sequence[Sequence[Sequence[Sequence[float]]]],
    *,
    record_index: int,
    attributes: dict[str, object],
    crs: str,
) -> RawFeature:
    """Validate polygon rings and build a ``RawFeature``.

    Args:
        polygons: Polygons, each a list of rings (exterior first).
        record_index: Record number used in messages and on the feature.
        attributes: Attribute row paired with the record.
        crs: CRS of the run.

    Raises:
        MalformedGeometryError: If no polygon has a usable exterior ring.
    """
    context = f"record {record_index}"
    parts: list[list[Ring]] = []
    for part_idx, polygon in enumerate(polygons):
        if not polygon:
            continue
        exterior = close_ring(polygon[0], f"{context} part {part_idx} exterior")
        holes: list[Ring] = []
        for hole_idx, raw_hole in enumerate(polygon[1:]):
            try:
                holes.append(close_ring(raw_hole, f"{context} part {part_idx} hole {hole_idx}"))
            except MalformedGeometryError as exc:
                logger.warning("Dropping degenerate hole: %s", exc)
        parts.append([exterior, *holes])

    if not parts:
        msg = f"{context} has no polygon rings"
        raise MalformedGeometryError(msg)

    return RawFeature(
        record_index=record_index,
        geometry_type="MultiPolygon" if len(parts) > 1 else "Polygon",
        rings=parts[0],
        extra_parts=parts[1:],
        attributes=attributes,
        crs=crs,
    )


def malformed_feature(
    record_index: int,
    reason: str,
    *,
    attributes: dict[str, object],
    crs: str,
    geometry_type: str = "",
) -> RawFeature:
    """Build the invalid ``RawFeature`` that stands in for an undecodable record."""
    logger.warning("Malformed geometry in record %d: %s", record_index, reason)
    return RawFeature(
        record_index=record_index,
        geometry_type=geometry_type,
        attributes=attributes,
        crs=crs,
        decode_error=reason,
    )
