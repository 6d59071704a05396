"""Fiona-based shapefile decoder (OGR ESRI Shapefile driver).

OGR needs the dataset on disk, so the package members are written to a
temporary directory under one common stem for the duration of the run.
A missing or inconsistent ``.shx`` is left out and OGR restores it from
the ``.shp`` (``SHAPE_RESTORE_SHX``). OGR already groups shapefile rings
into polygons; coordinates are taken as OGR reports them.
"""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any

from plot_ingest.activities.decode_features._base import FeatureDecoder
from plot_ingest.activities.decode_features._constants import STAGE
from plot_ingest.activities.decode_features._projection import resolve_encoding
from plot_ingest.activities.decode_features._reader import usable_index
from plot_ingest.activities.decode_features._validation import (
    FeatureDecodeError,
    MalformedGeometryError,
    build_polygon_feature,
    malformed_feature,
)
from plot_ingest.core.constants import (
    ATTRIBUTES_SUFFIX,
    FIONA_DECODER,
    GEOMETRY_SUFFIX,
    INDEX_SUFFIX,
)
from plot_ingest.models.feature import RawFeature

if TYPE_CHECKING:
    from collections.abc import Iterator

    from plot_ingest.core.deadline import Deadline
    from plot_ingest.models.archive import ArchiveContents

logger = logging.getLogger("plot_ingest.activities.decode_features")

_DATASET_STEM = "dataset"


class FionaDecoder(FeatureDecoder):
    """Decode shapefile records through fiona/OGR."""

    name = FIONA_DECODER

    def decode(
        self,
        contents: ArchiveContents,
        *,
        crs: str,
        deadline: Deadline | None = None,
    ) -> Iterator[RawFeature]:
        import fiona
        from fiona.errors import FionaError

        if contents.geometry is None or contents.attributes is None:
            msg = "Archive contents have no geometry/attribute pair to decode"
            raise FeatureDecodeError(msg)

        members = {
            GEOMETRY_SUFFIX: contents.geometry.content,
            ATTRIBUTES_SUFFIX: contents.attributes.content,
        }
        index = usable_index(contents)
        if index is not None:
            members[INDEX_SUFFIX] = index

        with tempfile.TemporaryDirectory(prefix="plot_ingest_") as tmp:
            shp_path = Path(tmp) / f"{_DATASET_STEM}{GEOMETRY_SUFFIX}"
            for suffix, content in members.items():
                (Path(tmp) / f"{_DATASET_STEM}{suffix}").write_bytes(content)

            try:
                with fiona.Env(SHAPE_RESTORE_SHX="YES"):
                    collection = fiona.open(
                        str(shp_path),
                        driver="ESRI Shapefile",
                        encoding=resolve_encoding(contents),
                    )
            except FionaError as exc:
                msg = f"Cannot open shapefile dataset {contents.dataset_name!r}: {exc}"
                raise FeatureDecodeError(msg) from exc

            with collection:
                for idx in range(len(collection)):
                    if deadline is not None:
                        deadline.check(STAGE)
                    yield _decode_record(collection, idx, crs)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _decode_record(collection: Any, idx: int, crs: str) -> RawFeature:
    """Decode record *idx*, turning any per-record failure into an invalid feature."""
    from fiona.errors import FionaError

    try:
        record = collection[idx]
    except (FionaError, KeyError, IndexError, ValueError) as exc:
        return malformed_feature(idx, f"Unreadable record: {exc}", attributes={}, crs=crs)

    attributes = dict(record.properties or {})
    geometry = record.geometry
    if geometry is None:
        return malformed_feature(idx, "Null shape", attributes=attributes, crs=crs)

    geom_type = geometry.type
    coordinates = geometry.coordinates
    if geom_type not in ("Polygon", "MultiPolygon"):
        return RawFeature(record_index=idx, geometry_type=geom_type, attributes=attributes, crs=crs)

    polygons = [coordinates] if geom_type == "Polygon" else list(coordinates)
    try:
        return build_polygon_feature(
            polygons,
            record_index=idx,
            attributes=attributes,
            crs=crs,
        )
    except MalformedGeometryError as exc:
        return malformed_feature(
            idx, exc.message, attributes=attributes, crs=crs, geometry_type=geom_type
        )
