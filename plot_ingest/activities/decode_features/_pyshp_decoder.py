"""pyshp-based shapefile decoder (default).

Reads ``.shp``/``.shx``/``.dbf`` straight from memory with pyshp. Every
record is fetched by index, so a corrupt record is reported on its own
and does not stop the records after it. When the package ships no
``.shx`` (or one that disagrees with the ``.shp``), pyshp locates each
record by walking the ``.shp`` record headers instead.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from plot_ingest.activities.decode_features._base import FeatureDecoder
from plot_ingest.activities.decode_features._constants import (
    NULL_SHAPE_TYPE,
    POLYGON_SHAPE_TYPES,
    SHAPE_TYPE_NAMES,
    STAGE,
)
from plot_ingest.activities.decode_features._reader import (
    READ_ERRORS,
    open_reader,
    usable_index,
)
from plot_ingest.activities.decode_features._validation import (
    MalformedGeometryError,
    build_polygon_feature,
    group_rings,
    malformed_feature,
)
from plot_ingest.core.constants import PYSHP_DECODER
from plot_ingest.models.feature import RawFeature

if TYPE_CHECKING:
    from collections.abc import Iterator

    from plot_ingest.core.deadline import Deadline
    from plot_ingest.models.archive import ArchiveContents
    from plot_ingest.models.feature import Ring

logger = logging.getLogger("plot_ingest.activities.decode_features")


class PyshpDecoder(FeatureDecoder):
    """Decode shapefile records with pyshp."""

    name = PYSHP_DECODER

    def decode(
        self,
        contents: ArchiveContents,
        *,
        crs: str,
        deadline: Deadline | None = None,
    ) -> Iterator[RawFeature]:
        with open_reader(contents, usable_index(contents)) as reader:
            for idx in range(len(reader)):
                if deadline is not None:
                    deadline.check(STAGE)
                yield _decode_record(reader, idx, crs)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _decode_record(reader: Any, idx: int, crs: str) -> RawFeature:
    """Decode record *idx*, turning any per-record failure into an invalid feature."""
    # KeyError: shape type code outside the ESRI table
    read_errors = (*READ_ERRORS, IndexError, KeyError)

    try:
        attributes = _read_attributes(reader, idx)
    except read_errors as exc:
        return malformed_feature(idx, f"Unreadable attribute row: {exc}", attributes={}, crs=crs)

    try:
        shape = reader.shape(idx)
    except read_errors as exc:
        return malformed_feature(
            idx, f"Unreadable geometry record: {exc}", attributes=attributes, crs=crs
        )

    shape_type = int(shape.shapeType) if shape is not None else NULL_SHAPE_TYPE
    type_name = SHAPE_TYPE_NAMES.get(shape_type, f"ShapeType{shape_type}")

    if shape_type == NULL_SHAPE_TYPE:
        return malformed_feature(idx, "Null shape", attributes=attributes, crs=crs)

    if shape_type not in POLYGON_SHAPE_TYPES:
        if type_name == "LineString" and len(shape.parts) > 1:
            type_name = "MultiLineString"
        return RawFeature(record_index=idx, geometry_type=type_name, attributes=attributes, crs=crs)

    try:
        rings = _split_parts(shape.points, list(shape.parts))
        return build_polygon_feature(
            group_rings(rings),
            record_index=idx,
            attributes=attributes,
            crs=crs,
        )
    except MalformedGeometryError as exc:
        return malformed_feature(
            idx, exc.message, attributes=attributes, crs=crs, geometry_type="Polygon"
        )


def _read_attributes(reader: Any, idx: int) -> dict[str, object]:
    record = reader.record(idx)
    if record is None:
        # Row flagged as deleted in the .dbf
        return {}
    return dict(record.as_dict())


def _split_parts(points: list[Any], parts: list[int]) -> list[Ring]:
    """Split a flat point list into rings at the part start indices."""
    if not points or not parts:
        msg = "Polygon record has no points"
        raise MalformedGeometryError(msg)
    bounds = [*parts, len(points)]
    return [
        [(p[0], p[1]) for p in points[start:end]]
        for start, end in zip(bounds, bounds[1:], strict=False)
    ]
